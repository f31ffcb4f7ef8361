from .base import *

DEBUG = True

ALLOWED_HOSTS = ["127.0.0.1", "localhost"]

# SQLite local si pas de Postgres sous la main
if env("DEV_SQLITE", "0") == "1":
    DATABASES = {"default": {"ENGINE": "django.db.backends.sqlite3", "NAME": BASE_DIR / "dev.sqlite3"}}

# Cookies non sécurisés en dev
SESSION_COOKIE_SECURE = False
CSRF_COOKIE_SECURE = False

# DRF renderers plus larges en dev (browsable API)
REST_FRAMEWORK["DEFAULT_RENDERER_CLASSES"] = (
    "rest_framework.renderers.JSONRenderer",
    "rest_framework.renderers.BrowsableAPIRenderer",
)

# Pas de worker en dev : tâches exécutées en ligne
CELERY_TASK_ALWAYS_EAGER = env("CELERY_EAGER", "1") == "1"

LOGGING["handlers"]["console"]["formatter"] = "simple"
LOGGING["loggers"]["solarsign"]["level"] = "DEBUG"
