"""Courier claim arbitration.

A courier with no active orders takes a ``preparing`` order straight away. A
courier already carrying work only leaves a request on the order, which the
branch approves or turns down. While that request is pending the order is
reserved for the requesting courier.
"""

import logging

from django.conf import settings
from django.db import transaction
from django.utils import timezone
from rest_framework.exceptions import PermissionDenied

from apps.accounts.models import UserRole
from apps.audit.services import record_audit
from apps.common.exceptions import IllegalTransition
from apps.common.permissions import resolve_role
from apps.couriers.models import Courier
from apps.notifications.models import NotificationType
from apps.notifications.services import notify_branch
from apps.orders.models import COURIER_ACTIVE_STATUSES, DeliveryType, Order, OrderStatus
from apps.orders.services import (
    _locked_order,
    _resolve_courier,
    ensure_order_access,
    update_order_status,
)
from apps.orders.transitions import check_transition

logger = logging.getLogger(__name__)


def active_orders_count(courier, exclude_order_id=None):
    queryset = Order.objects.filter(delivery=courier, status__in=COURIER_ACTIVE_STATUSES)
    if exclude_order_id is not None:
        queryset = queryset.exclude(pk=exclude_order_id)
    return queryset.count()


def claimable_orders(courier):
    return Order.objects.filter(
        branch_id=courier.branch_id,
        status=OrderStatus.PREPARING,
        delivery_type=DeliveryType.DELIVERY,
        delivery__isnull=True,
        delivery_requested_by__isnull=True,
    ).order_by("created_at")


def request_order_claim(order_id, courier):
    with transaction.atomic():
        # Lock the courier first so one courier's concurrent claims see each other's writes.
        courier = Courier.objects.select_for_update().get(pk=courier.pk)
        order = _locked_order(order_id)

        if not courier.can_take_orders:
            raise IllegalTransition("El repartidor no esta aprobado o no esta en turno.")
        if courier.branch_id != order.branch_id:
            raise PermissionDenied("El pedido pertenece a otra sucursal.")
        if order.status != OrderStatus.PREPARING:
            raise IllegalTransition(f"Solo se pueden reclamar pedidos en preparacion (estado actual: {order.status}).")
        check_transition(order, OrderStatus.DISPATCHED, UserRole.DELIVERY)
        if order.delivery_type != DeliveryType.DELIVERY:
            raise IllegalTransition("Los pedidos para recoger no se asignan a repartidores.")
        if order.delivery_id is not None:
            raise IllegalTransition("El pedido ya fue tomado por otro repartidor.")

        if order.delivery_requested_by_id is not None:
            if order.delivery_requested_by_id == courier.pk:
                return {"needs_approval": True}
            raise IllegalTransition("El pedido tiene una solicitud pendiente de otro repartidor.")

        active = active_orders_count(courier, exclude_order_id=order.pk)
        if active >= settings.COURIER_CLAIM_APPROVAL_THRESHOLD:
            order.delivery_requested_by = courier
            order.request_approved = False
            order.save(update_fields=["delivery_requested_by", "request_approved", "updated_at"])
            notify_branch(
                order=order,
                type=NotificationType.ORDER_CLAIM_REQUEST,
                delivery=courier,
                title="Solicitud de Orden Adicional",
                message=(
                    f"{courier.name or 'Repartidor'} solicita tomar el pedido {order.order_number}. "
                    f"Ya tiene {active} orden(es) en curso."
                ),
            )
            record_audit(
                actor=courier.user,
                action="order.claim_requested",
                entity_type="order",
                entity_id=order.id,
                branch=order.branch,
                payload={"courier_id": str(courier.pk), "active_orders": active},
            )
            logger.info(
                "Courier %s requested order %s with %s active orders",
                courier.delivery_code,
                order.order_number,
                active,
            )
            return {"needs_approval": True}

        claimed = Order.objects.filter(
            pk=order.pk,
            status=OrderStatus.PREPARING,
            delivery__isnull=True,
            delivery_requested_by__isnull=True,
        ).update(
            delivery=courier,
            status=OrderStatus.DISPATCHED,
            assigned_by_branch=False,
            updated_at=timezone.now(),
        )
        if claimed == 0:
            logger.warning("Courier %s lost the race for order %s", courier.delivery_code, order.order_number)
            raise IllegalTransition("El pedido ya fue tomado por otro repartidor.")

        record_audit(
            actor=courier.user,
            action="order.claimed",
            entity_type="order",
            entity_id=order.id,
            branch=order.branch,
            payload={"courier_id": str(courier.pk)},
        )

    logger.info("Courier %s claimed order %s", courier.delivery_code, order.order_number)
    return {"needs_approval": False}


def approve_order_claim(order_id, approved, actor):
    role = resolve_role(actor)
    if role not in (UserRole.ADMIN, UserRole.BRANCH):
        raise PermissionDenied("Solo la sucursal o administracion deciden las solicitudes de reclamo.")

    with transaction.atomic():
        order = _locked_order(order_id)
        ensure_order_access(order, actor, role)
        if order.delivery_requested_by_id is None:
            raise IllegalTransition("El pedido no tiene solicitudes pendientes.")
        requested_by = order.delivery_requested_by

        if approved:
            order = update_order_status(
                order.pk,
                OrderStatus.DISPATCHED,
                actor,
                delivery=requested_by,
                assigned_by_branch=True,
            )
        else:
            order.delivery_requested_by = None
            order.request_approved = False
            order.save(update_fields=["delivery_requested_by", "request_approved", "updated_at"])

        record_audit(
            actor=actor,
            action="order.claim_approved" if approved else "order.claim_declined",
            entity_type="order",
            entity_id=order.id,
            branch=order.branch,
            payload={"courier_id": str(requested_by.pk)},
        )

    logger.info(
        "Claim on order %s by courier %s %s",
        order.order_number,
        requested_by.delivery_code,
        "approved" if approved else "declined",
    )
    return order


def confirm_assign_delivery(order_id, courier, actor):
    """Branch hands a ready order to a courier, skipping arbitration."""
    courier = _resolve_courier(courier)
    return update_order_status(
        order_id,
        OrderStatus.DISPATCHED,
        actor,
        delivery=courier,
        assigned_by_branch=True,
    )


def confirm_received(order_id, courier):
    with transaction.atomic():
        order = _locked_order(order_id)
        if order.status != OrderStatus.DISPATCHED:
            raise IllegalTransition("Solo se confirma la recepcion de pedidos despachados.")
        if order.delivery_id != courier.pk:
            raise PermissionDenied("El pedido no esta asignado a este repartidor.")
        if not order.assigned_by_branch:
            raise IllegalTransition("El pedido ya fue confirmado.")

        order.assigned_by_branch = False
        order.save(update_fields=["assigned_by_branch", "updated_at"])
        record_audit(
            actor=courier.user,
            action="order.received",
            entity_type="order",
            entity_id=order.id,
            branch=order.branch,
            payload={"courier_id": str(courier.pk)},
        )

    logger.info("Courier %s confirmed receipt of order %s", courier.delivery_code, order.order_number)
    return order
