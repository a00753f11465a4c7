from django.urls import path
from .views import AdministrationBatchView, CarePlanDosesView, MedicationAdministrationView

urlpatterns = [
    path('care-plans/<str:care_plan_id>/doses/', CarePlanDosesView.as_view(), name='care-plan-doses'),
    path('medications/<uuid:medication_id>/administrations/', MedicationAdministrationView.as_view(), name='medication-administrations'),
    path('administrations/batch/', AdministrationBatchView.as_view(), name='administration-batch'),
]
