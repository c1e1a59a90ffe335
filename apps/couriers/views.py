import logging

from django.db import models, transaction
from rest_framework import status, viewsets
from rest_framework.decorators import action
from rest_framework.exceptions import ValidationError
from rest_framework.response import Response

from apps.accounts.models import UserRole
from apps.audit.services import record_audit
from apps.common.exceptions import IllegalTransition
from apps.common.permissions import RolePermission, resolve_role
from apps.couriers.models import Courier, CourierStatus
from apps.couriers.serializers import CourierDutySerializer, CourierRegisterSerializer, CourierSerializer
from apps.orders.models import COURIER_ACTIVE_STATUSES

logger = logging.getLogger(__name__)


def annotate_courier_stats(queryset):
    return queryset.annotate(
        average_rating=models.Avg("ratings__rating"),
        rating_count=models.Count("ratings", distinct=True),
        active_orders=models.Count(
            "orders",
            filter=models.Q(orders__status__in=COURIER_ACTIVE_STATUSES),
            distinct=True,
        ),
    )


class CourierViewSet(viewsets.ModelViewSet):
    queryset = Courier.objects.select_related("user", "branch").order_by("name")
    serializer_class = CourierSerializer
    permission_classes = [RolePermission]
    http_method_names = ["get", "post", "patch", "head", "options"]
    capability_map = {
        "list": ["couriers.view"],
        "retrieve": ["couriers.view"],
        "create": ["couriers.manage"],
        "partial_update": ["couriers.manage"],
        "approve": ["couriers.manage"],
        "reject": ["couriers.manage"],
        "me": ["couriers.view.own"],
        "duty": ["couriers.view.own"],
    }

    def get_queryset(self):
        queryset = annotate_courier_stats(super().get_queryset())
        user = self.request.user
        if resolve_role(user) == UserRole.BRANCH:
            queryset = queryset.filter(branch_id=user.branch_id) if user.branch_id else queryset.none()

        status_param = self.request.query_params.get("status")
        branch = self.request.query_params.get("branch")
        on_duty = self.request.query_params.get("on_duty")
        query = self.request.query_params.get("q")
        if status_param:
            queryset = queryset.filter(status=status_param)
        if branch:
            queryset = queryset.filter(branch_id=branch)
        if str(on_duty).lower() in {"1", "true", "yes"}:
            queryset = queryset.filter(is_active=True)
        if query:
            queryset = queryset.filter(models.Q(name__icontains=query) | models.Q(delivery_code__icontains=query))
        return queryset

    def _courier_response(self, courier, status_code=status.HTTP_200_OK):
        courier = annotate_courier_stats(Courier.objects.select_related("user", "branch")).get(pk=courier.pk)
        return Response(CourierSerializer(courier, context=self.get_serializer_context()).data, status=status_code)

    def perform_create(self, serializer):
        courier = serializer.save()
        record_audit(
            actor=self.request.user,
            action="courier.create",
            entity_type="courier",
            entity_id=courier.id,
            branch=courier.branch,
            payload={"delivery_code": courier.delivery_code},
        )

    def perform_update(self, serializer):
        courier = serializer.save()
        record_audit(
            actor=self.request.user,
            action="courier.update",
            entity_type="courier",
            entity_id=courier.id,
            branch=courier.branch,
            payload={"fields": sorted(serializer.validated_data.keys())},
        )

    @action(detail=False, methods=["post"])
    def register(self, request):
        if Courier.objects.filter(user=request.user).exists():
            raise ValidationError({"user": ["El usuario ya tiene perfil de repartidor."]})
        serializer = CourierRegisterSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        courier = Courier.objects.create(user=request.user, **serializer.validated_data)
        record_audit(
            actor=request.user,
            action="courier.register",
            entity_type="courier",
            entity_id=courier.id,
            branch=courier.branch,
            payload={"delivery_code": courier.delivery_code},
        )
        logger.info("Courier %s registered for branch %s", courier.delivery_code, courier.branch.code)
        return self._courier_response(courier, status.HTTP_201_CREATED)

    @action(detail=True, methods=["post"])
    def approve(self, request, pk=None):
        with transaction.atomic():
            courier = Courier.objects.select_for_update().get(pk=self.get_object().pk)
            if courier.status == CourierStatus.APPROVED:
                raise IllegalTransition("El repartidor ya esta aprobado.")
            courier.status = CourierStatus.APPROVED
            courier.save(update_fields=["status", "updated_at"])
            user = courier.user
            if user.role == UserRole.CUSTOMER:
                user.role = UserRole.DELIVERY
                user.branch = courier.branch
                user.save(update_fields=["role", "branch"])
            record_audit(
                actor=request.user,
                action="courier.approve",
                entity_type="courier",
                entity_id=courier.id,
                branch=courier.branch,
            )
        logger.info("Courier %s approved", courier.delivery_code)
        return self._courier_response(courier)

    @action(detail=True, methods=["post"])
    def reject(self, request, pk=None):
        with transaction.atomic():
            courier = Courier.objects.select_for_update().get(pk=self.get_object().pk)
            if Courier.objects.filter(pk=courier.pk, orders__status__in=COURIER_ACTIVE_STATUSES).exists():
                raise IllegalTransition("El repartidor tiene pedidos en curso.")
            courier.status = CourierStatus.REJECTED
            courier.is_active = False
            courier.save(update_fields=["status", "is_active", "updated_at"])
            record_audit(
                actor=request.user,
                action="courier.reject",
                entity_type="courier",
                entity_id=courier.id,
                branch=courier.branch,
                payload={"reason": str(request.data.get("reason", ""))},
            )
        logger.info("Courier %s rejected", courier.delivery_code)
        return self._courier_response(courier)

    @action(detail=False, methods=["get"])
    def me(self, request):
        return self._courier_response(Courier.for_user(request.user))

    @action(detail=False, methods=["post"], url_path="me/duty")
    def duty(self, request):
        serializer = CourierDutySerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        with transaction.atomic():
            courier = Courier.objects.select_for_update().get(pk=Courier.for_user(request.user).pk)
            if courier.status != CourierStatus.APPROVED:
                raise IllegalTransition("El repartidor aun no ha sido aprobado.")
            courier.is_active = serializer.validated_data.get("is_active", not courier.is_active)
            courier.save(update_fields=["is_active", "updated_at"])
            record_audit(
                actor=request.user,
                action="courier.duty",
                entity_type="courier",
                entity_id=courier.id,
                branch=courier.branch,
                payload={"is_active": courier.is_active},
            )
        logger.info("Courier %s on duty: %s", courier.delivery_code, courier.is_active)
        return self._courier_response(courier)
