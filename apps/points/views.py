from django.contrib.auth import get_user_model
from django.shortcuts import get_object_or_404
from rest_framework import generics, viewsets
from rest_framework.decorators import action
from rest_framework.response import Response

from apps.audit.services import record_audit
from apps.common.permissions import RolePermission
from apps.points.models import PointsSettings
from apps.points.serializers import PointsAdjustmentSerializer, PointsSettingsSerializer, UserPointsSerializer
from apps.points.services import add_points, get_user_points

User = get_user_model()


class UserPointsViewSet(viewsets.GenericViewSet):
    serializer_class = UserPointsSerializer
    permission_classes = [RolePermission]
    capability_map = {
        "me": ["points.view.own"],
        "retrieve": ["points.view"],
        "adjust": ["points.manage"],
    }

    def retrieve(self, request, pk=None):
        user = get_object_or_404(User, pk=pk)
        return Response(self.get_serializer(get_user_points(user)).data)

    @action(detail=False, methods=["get"])
    def me(self, request):
        return Response(self.get_serializer(get_user_points(request.user)).data)

    @action(detail=True, methods=["post"])
    def adjust(self, request, pk=None):
        user = get_object_or_404(User, pk=pk)
        serializer = PointsAdjustmentSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        points = add_points(
            user=user,
            amount=serializer.validated_data["amount"],
            note=serializer.validated_data["note"],
            actor=request.user,
        )
        record_audit(
            actor=request.user,
            action="points.adjust",
            entity_type="user_points",
            entity_id=points.id,
            payload={"amount": serializer.validated_data["amount"]},
        )
        return Response(self.get_serializer(points).data)


class PointsSettingsView(generics.RetrieveUpdateAPIView):
    serializer_class = PointsSettingsSerializer
    permission_classes = [RolePermission]
    capability_map = {"put": ["points.manage"], "patch": ["points.manage"]}

    def get_object(self):
        return PointsSettings.load()

    def perform_update(self, serializer):
        before = PointsSettingsSerializer(serializer.instance).data
        instance = serializer.save(updated_by=self.request.user)
        record_audit(
            actor=self.request.user,
            action="points.settings.update",
            entity_type="points_settings",
            entity_id=instance.pk,
            payload={"before": dict(before), "after": dict(PointsSettingsSerializer(instance).data)},
        )
