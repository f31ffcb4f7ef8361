from django.urls import path

from .views.integrity import ContractIntegrityView

urlpatterns = [
    path("<uuid:uuid>/integrity", ContractIntegrityView.as_view(), name="contract-integrity"),
]
