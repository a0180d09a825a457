from django.contrib import admin
from django.urls import path, include
from rest_framework.routers import DefaultRouter
from users.views import RegisterView, UserDetailView
from logistics.views import (
    OrderViewSet, PosEligibilityView, DriverLocationView, DriverAvailabilityView, TankSizeListView,
)

router = DefaultRouter()
router.register(r'orders', OrderViewSet, basename='order')

urlpatterns = [
    path('admin/', admin.site.urls),
    path('api/v1/', include(router.urls)),
    path('api/v1/auth/register/', RegisterView.as_view(), name='register'),
    path('api/v1/auth/me/', UserDetailView.as_view(), name='user-detail'),
    path('api/v1/payment/pos-eligibility/', PosEligibilityView.as_view(), name='pos-eligibility'),
    path('api/v1/drivers/location/', DriverLocationView.as_view(), name='driver-location'),
    path('api/v1/drivers/availability/', DriverAvailabilityView.as_view(), name='driver-availability'),
    path('api/v1/tank-sizes/', TankSizeListView.as_view(), name='tank-sizes'),
]
