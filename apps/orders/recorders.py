import logging
from datetime import timedelta

from django.conf import settings
from django.db import transaction
from django.utils import timezone
from rest_framework.exceptions import PermissionDenied, ValidationError

from apps.accounts.models import UserRole
from apps.audit.services import record_audit
from apps.common.exceptions import IllegalTransition, WindowExpired
from apps.notifications.models import NotificationType
from apps.notifications.services import notify_branch
from apps.orders.models import DeliveryRating, OrderCancellation, OrderDelay, OrderStatus
from apps.orders.services import _locked_order, ensure_courier_holds, ensure_order_access, update_order_status

logger = logging.getLogger(__name__)


def _required_reason(reason, message):
    reason = (reason or "").strip()
    if not reason:
        raise ValidationError({"reason": [message]})
    return reason


def add_order_cancellation(order_id, customer, reason):
    reason = _required_reason(reason, "Indica el motivo de la cancelacion.")
    window = settings.ORDER_CANCELLATION_WINDOW_MINUTES

    with transaction.atomic():
        order = _locked_order(order_id)
        ensure_order_access(order, customer, UserRole.CUSTOMER)
        elapsed = timezone.now() - order.created_at
        if elapsed > timedelta(minutes=window):
            logger.warning("Cancellation of order %s refused after %s", order.order_number, elapsed)
            raise WindowExpired(
                f"Solo puedes cancelar dentro de los primeros {window} minutos; "
                f"han pasado {elapsed.total_seconds() / 60:.1f} minutos."
            )

        order = update_order_status(order.pk, OrderStatus.REJECTED, customer)
        order.rejection_reason = reason
        order.save(update_fields=["rejection_reason", "updated_at"])
        cancellation = OrderCancellation.objects.create(order=order, customer=customer, reason=reason)
        notify_branch(
            order=order,
            type=NotificationType.ORDER_CANCELLED,
            title="Pedido Cancelado",
            message=f"El cliente cancelo el pedido {order.order_number}. Motivo: {reason}",
        )

    logger.info("Order %s cancelled by customer %s", order.order_number, customer.pk)
    return cancellation


def add_order_delay(order_id, courier, delay_minutes, reason, compensation="", compensation_amount=None):
    reason = _required_reason(reason, "Indica el motivo del retraso.")
    if int(delay_minutes) <= 0:
        raise ValidationError({"delay_minutes": ["El retraso debe ser mayor a 0 minutos."]})

    with transaction.atomic():
        order = _locked_order(order_id)
        if order.status != OrderStatus.DISPATCHED:
            raise IllegalTransition("Solo se reportan retrasos en pedidos despachados.")
        ensure_courier_holds(order, courier)

        delay = OrderDelay.objects.create(
            order=order,
            courier=courier,
            delay_minutes=int(delay_minutes),
            reason=reason,
            compensation=compensation or "",
            compensation_amount=compensation_amount,
        )
        notify_branch(
            order=order,
            type=NotificationType.ORDER_DELAYED,
            delivery=courier,
            title="Retraso en Entrega",
            message=(
                f"El repartidor reporta un retraso de {delay.delay_minutes} minutos "
                f"en el pedido {order.order_number}"
            ),
        )
        record_audit(
            actor=courier.user,
            action="order.delayed",
            entity_type="order",
            entity_id=order.id,
            branch=order.branch,
            payload={"delay_minutes": delay.delay_minutes, "reason": reason},
        )

    logger.info("Order %s delayed %s minutes", order.order_number, delay.delay_minutes)
    return delay


def add_delivery_rating(order_id, customer, rating, reason=""):
    rating = int(rating)
    if rating < 1 or rating > 5:
        raise ValidationError({"rating": ["La calificacion debe estar entre 1 y 5."]})

    with transaction.atomic():
        order = _locked_order(order_id)
        if order.customer_id != customer.pk:
            raise PermissionDenied("El pedido pertenece a otro cliente.")
        if order.status != OrderStatus.DELIVERED or order.delivery_id is None:
            raise IllegalTransition("Solo se califican pedidos entregados a domicilio.")
        if DeliveryRating.objects.filter(order=order).exists():
            raise IllegalTransition("El pedido ya fue calificado.")

        delivery_rating = DeliveryRating.objects.create(
            order=order,
            courier_id=order.delivery_id,
            customer=customer,
            rating=rating,
            reason=(reason or "").strip(),
        )

    logger.info("Order %s rated %s", order.order_number, rating)
    return delivery_rating
