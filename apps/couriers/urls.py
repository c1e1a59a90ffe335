from rest_framework.routers import DefaultRouter

from apps.couriers.views import CourierViewSet

router = DefaultRouter()
router.register("couriers", CourierViewSet, basename="courier")

urlpatterns = router.urls
