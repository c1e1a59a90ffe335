from django.urls import include, path
from rest_framework_simplejwt.views import TokenObtainPairView, TokenRefreshView

urlpatterns = [
    path("auth/token/", TokenObtainPairView.as_view(), name="token-obtain-pair"),
    path("auth/token/refresh/", TokenRefreshView.as_view(), name="token-refresh"),
    path("", include("apps.orders.urls")),
    path("", include("apps.couriers.urls")),
    path("", include("apps.notifications.urls")),
    path("", include("apps.points.urls")),
]
