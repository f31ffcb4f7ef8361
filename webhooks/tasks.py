import logging
import math
from functools import partial

from celery import shared_task
from django.db import transaction

from .models import WebhookConfig
from .services.sender import send_webhook

logger = logging.getLogger("solarsign.webhooks")


@shared_task(bind=True, max_retries=10, default_retry_delay=5)
def deliver_webhook_task(self, config_id: int, event: str, data: dict, attempt: int = 1):
    """
    Tâche Celery avec retry exponentiel (backoff_s * 2^(attempt-1)).
    """
    try:
        config = WebhookConfig.objects.get(id=config_id, active=True)
    except WebhookConfig.DoesNotExist:
        return

    delivery = send_webhook(config, event, data, attempt=attempt)
    if delivery.ok:
        return

    if attempt >= (config.max_retries or 0):
        logger.error("webhook gave up: config=%s event=%s after %s attempts", config_id, event, attempt)
        return

    backoff = config.backoff_s or 5
    next_delay = int(backoff * math.pow(2, attempt - 1))  # 5,10,20,40...
    raise self.retry(countdown=next_delay, kwargs={"config_id": config_id, "event": event, "data": data, "attempt": attempt + 1})


def emit_event(tenant_id: int, event: str, data: dict) -> int:
    """
    Met en file une livraison par config abonnée à l'événement, après commit de la transaction
    courante. Retourne le nombre de configs concernées.
    """
    configs = [c for c in WebhookConfig.objects.filter(tenant_id=tenant_id, active=True) if c.wants(event)]
    for cfg in configs:
        transaction.on_commit(partial(deliver_webhook_task.delay, cfg.id, event, data, attempt=1))
    return len(configs)
