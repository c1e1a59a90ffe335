from rest_framework import mixins, viewsets
from rest_framework.decorators import action
from rest_framework.exceptions import ValidationError
from rest_framework.response import Response

from apps.accounts.models import Branch, UserRole
from apps.common.permissions import RolePermission, resolve_role
from apps.notifications.models import BranchNotification
from apps.notifications.serializers import BranchNotificationSerializer
from apps.notifications.services import mark_all_read, mark_notification_read, unread_count


class BranchNotificationViewSet(mixins.ListModelMixin, mixins.RetrieveModelMixin, viewsets.GenericViewSet):
    queryset = BranchNotification.objects.select_related("order", "delivery")
    serializer_class = BranchNotificationSerializer
    permission_classes = [RolePermission]
    capability_map = {
        "list": ["notifications.view"],
        "retrieve": ["notifications.view"],
        "read": ["notifications.manage"],
        "read_all": ["notifications.manage"],
        "unread_count": ["notifications.view"],
    }

    def get_queryset(self):
        queryset = super().get_queryset()
        user = self.request.user
        if resolve_role(user) == UserRole.ADMIN:
            branch_id = self.request.query_params.get("branch")
            if branch_id:
                queryset = queryset.filter(branch_id=branch_id)
        else:
            queryset = queryset.filter(branch_id=user.branch_id) if user.branch_id else queryset.none()

        if str(self.request.query_params.get("unread")).lower() in {"1", "true", "yes"}:
            queryset = queryset.filter(read=False)
        return queryset

    def _branch(self):
        user = self.request.user
        if resolve_role(user) == UserRole.ADMIN:
            branch_id = self.request.query_params.get("branch") or self.request.data.get("branch")
            branch = Branch.objects.filter(pk=branch_id).first() if branch_id else None
        else:
            branch = user.branch
        if branch is None:
            raise ValidationError({"branch": ["Sucursal requerida."]})
        return branch

    @action(detail=True, methods=["post"])
    def read(self, request, pk=None):
        notification = mark_notification_read(self.get_object())
        return Response(self.get_serializer(notification).data)

    @action(detail=False, methods=["post"], url_path="read-all")
    def read_all(self, request):
        return Response({"updated": mark_all_read(self._branch())})

    @action(detail=False, methods=["get"], url_path="unread-count")
    def unread_count(self, request):
        return Response({"unread": unread_count(self._branch())})
