from django.db import models
from django.db.models import Prefetch
from rest_framework import status, viewsets
from rest_framework.decorators import action
from rest_framework.response import Response

from apps.accounts.models import UserRole
from apps.common.permissions import RolePermission, resolve_role
from apps.couriers.models import Courier
from apps.orders.claims import (
    approve_order_claim,
    claimable_orders,
    confirm_assign_delivery,
    confirm_received as confirm_courier_received,
    request_order_claim,
)
from apps.orders.models import STATUS_PRIORITY, Order, OrderDelay
from apps.orders.recorders import add_delivery_rating, add_order_cancellation, add_order_delay
from apps.orders.serializers import (
    AssignDeliverySerializer,
    ClaimDecisionSerializer,
    DelayCreateSerializer,
    DeliveryRatingSerializer,
    OrderCancellationSerializer,
    OrderCreateSerializer,
    OrderDelaySerializer,
    OrderSerializer,
    OrderStatusSerializer,
    RatingCreateSerializer,
    ReasonSerializer,
)
from apps.orders.services import approve_order, create_order, reject_order, update_order_status
from apps.orders.services import authorize_transfer as authorize_order_transfer


class OrderViewSet(viewsets.ModelViewSet):
    queryset = (
        Order.objects.select_related("branch", "customer", "delivery", "cancellation", "delivery_rating")
        .prefetch_related("lines", Prefetch("delays", queryset=OrderDelay.objects.order_by("-created_at")))
        .order_by(
            models.Case(
                *[models.When(status=value, then=priority) for value, priority in STATUS_PRIORITY.items()],
                default=999,
                output_field=models.IntegerField(),
            ),
            "created_at",
        )
    )
    serializer_class = OrderSerializer
    permission_classes = [RolePermission]
    http_method_names = ["get", "post", "head", "options"]
    capability_map = {
        "list": ["orders.view"],
        "retrieve": ["orders.view"],
        "create": ["orders.create"],
        "change_status": ["orders.status"],
        "approve": ["orders.approve"],
        "authorize_transfer": ["orders.approve"],
        "assign": ["orders.assign"],
        "claim": ["orders.claim"],
        "available": ["orders.claim"],
        "claim_decision": ["claims.decide"],
        "confirm_received": ["orders.deliver"],
        "reject": ["orders.reject"],
        "cancel": ["orders.cancel"],
        "delay": ["orders.delay"],
        "rate": ["orders.rate"],
    }

    def get_queryset(self):
        queryset = super().get_queryset()
        user = self.request.user
        role = resolve_role(user)
        if role == UserRole.BRANCH:
            queryset = queryset.filter(branch_id=user.branch_id) if user.branch_id else queryset.none()
        elif role == UserRole.DELIVERY:
            courier = Courier.objects.filter(user=user).first()
            if courier is None:
                return queryset.none()
            queryset = queryset.filter(models.Q(delivery=courier) | models.Q(delivery_requested_by=courier))
        elif role == UserRole.CUSTOMER:
            queryset = queryset.filter(customer=user)

        status_param = self.request.query_params.get("status")
        branch = self.request.query_params.get("branch")
        courier_param = self.request.query_params.get("courier")
        if status_param:
            queryset = queryset.filter(status__in=[value.strip() for value in status_param.split(",") if value.strip()])
        if branch:
            queryset = queryset.filter(branch_id=branch)
        if courier_param:
            queryset = queryset.filter(delivery_id=courier_param)
        return queryset

    def get_serializer_class(self):
        if self.action == "create":
            return OrderCreateSerializer
        return OrderSerializer

    def _order_response(self, order, status_code=status.HTTP_200_OK):
        order = Order.objects.select_related("branch", "delivery").prefetch_related("lines", "delays").get(pk=order.pk)
        return Response(OrderSerializer(order, context=self.get_serializer_context()).data, status=status_code)

    def create(self, request, *args, **kwargs):
        serializer = self.get_serializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        order = create_order(customer=request.user, **serializer.validated_data)
        return self._order_response(order, status.HTTP_201_CREATED)

    @action(detail=True, methods=["post"], url_path="status")
    def change_status(self, request, pk=None):
        serializer = OrderStatusSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        order = update_order_status(
            pk,
            serializer.validated_data["status"],
            request.user,
            delivery=serializer.validated_data.get("delivery"),
        )
        return self._order_response(order)

    @action(detail=True, methods=["post"])
    def approve(self, request, pk=None):
        return self._order_response(approve_order(pk, request.user))

    @action(detail=True, methods=["post"], url_path="authorize-transfer")
    def authorize_transfer(self, request, pk=None):
        return self._order_response(authorize_order_transfer(pk, request.user))

    @action(detail=True, methods=["post"])
    def assign(self, request, pk=None):
        serializer = AssignDeliverySerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        order = confirm_assign_delivery(pk, serializer.validated_data["delivery"], request.user)
        return self._order_response(order)

    @action(detail=True, methods=["post"])
    def claim(self, request, pk=None):
        result = request_order_claim(pk, Courier.for_user(request.user))
        order = Order.objects.get(pk=pk)
        payload = dict(result)
        payload["order"] = OrderSerializer(order, context=self.get_serializer_context()).data
        return Response(payload, status=status.HTTP_200_OK)

    @action(detail=False, methods=["get"])
    def available(self, request):
        queryset = claimable_orders(Courier.for_user(request.user)).prefetch_related("lines")
        page = self.paginate_queryset(queryset)
        if page is not None:
            return self.get_paginated_response(OrderSerializer(page, many=True).data)
        return Response(OrderSerializer(queryset, many=True).data)

    @action(detail=True, methods=["post"], url_path="claim-decision")
    def claim_decision(self, request, pk=None):
        serializer = ClaimDecisionSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        order = approve_order_claim(pk, serializer.validated_data["approved"], request.user)
        return self._order_response(order)

    @action(detail=True, methods=["post"], url_path="confirm-received")
    def confirm_received(self, request, pk=None):
        order = confirm_courier_received(pk, Courier.for_user(request.user))
        return self._order_response(order)

    @action(detail=True, methods=["post"])
    def reject(self, request, pk=None):
        serializer = ReasonSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        order = reject_order(pk, request.user, serializer.validated_data["reason"])
        return self._order_response(order)

    @action(detail=True, methods=["post"])
    def cancel(self, request, pk=None):
        serializer = ReasonSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        cancellation = add_order_cancellation(pk, request.user, serializer.validated_data["reason"])
        return Response(OrderCancellationSerializer(cancellation).data, status=status.HTTP_201_CREATED)

    @action(detail=True, methods=["post"])
    def delay(self, request, pk=None):
        serializer = DelayCreateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        delay = add_order_delay(pk, Courier.for_user(request.user), **serializer.validated_data)
        return Response(OrderDelaySerializer(delay).data, status=status.HTTP_201_CREATED)

    @action(detail=True, methods=["post"])
    def rate(self, request, pk=None):
        serializer = RatingCreateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        rating = add_delivery_rating(pk, request.user, **serializer.validated_data)
        return Response(DeliveryRatingSerializer(rating).data, status=status.HTTP_201_CREATED)
