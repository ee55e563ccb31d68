# api/urls.py

from django.urls import path, include
from rest_framework.routers import DefaultRouter
from . import views

# Transfusions and blood requests are registered before recipients so their
# prefixes are not captured by the recipient detail route
router = DefaultRouter()
router.register(r'blood-units', views.BloodUnitViewSet, basename='blood-unit')
router.register(r'donors', views.DonorViewSet, basename='donor')
router.register(r'deferrals', views.DeferralViewSet, basename='deferral')
router.register(r'recipients/transfusions', views.TransfusionViewSet, basename='transfusion')
router.register(r'recipients/blood-requests', views.BloodRequestViewSet, basename='blood-request')
router.register(r'recipients', views.RecipientViewSet, basename='recipient')

app_name = 'api'

urlpatterns = [
    path('inventory/expiry-tracking/', views.expiry_tracking, name='expiry-tracking'),
    path('', include(router.urls)),
]

# Available endpoints:
# POST   /api/blood-units/                                  - Register a collected unit
# PUT    /api/blood-units/{unit_id}/status/                 - Change unit status
# PUT    /api/blood-units/batch-status/                     - Change status of many units
# DELETE /api/blood-units/{unit_id}/                        - Soft delete a unit
# GET    /api/blood-units/{unit_id}/expiry/                 - Expiry status of a unit
# GET    /api/inventory/expiry-tracking/?days=&bloodType=   - Expiry report
#
# GET    /api/donors/status/?donorId=                       - Donor eligibility report
# POST   /api/donors/{donor_id}/deferrals/                  - Defer a donor
# POST   /api/donors/{donor_id}/health-assessments/         - Record a screening
# POST   /api/deferrals/{deferral_id}/reinstate/            - End a deferral early
# POST   /api/deferrals/{deferral_id}/expire/               - Close a lapsed deferral
#
# POST   /api/recipients/transfusions/                      - Record a transfusion
# PATCH  /api/recipients/transfusions/{transfusion_id}/     - Correct clinical details
# DELETE /api/recipients/transfusions/{transfusion_id}/     - Withdraw a transfusion
# POST   /api/recipients/blood-requests/                    - Open a blood request
# PUT    /api/recipients/blood-requests/{request_id}/status/ - Move a request along
