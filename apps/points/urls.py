from django.urls import path
from rest_framework.routers import DefaultRouter

from apps.points.views import PointsSettingsView, UserPointsViewSet

router = DefaultRouter()
router.register("points", UserPointsViewSet, basename="points")

urlpatterns = [
    path("points-settings/", PointsSettingsView.as_view(), name="points-settings"),
]
urlpatterns += router.urls
