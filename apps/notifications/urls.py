from rest_framework.routers import DefaultRouter

from apps.notifications.views import BranchNotificationViewSet

router = DefaultRouter()
router.register("notifications", BranchNotificationViewSet, basename="notification")

urlpatterns = router.urls
