import logging
from decimal import Decimal

from django.conf import settings
from django.core.exceptions import ValidationError as DjangoValidationError
from django.db import transaction
from django.utils import timezone
from rest_framework.exceptions import NotFound, PermissionDenied, ValidationError

from apps.accounts.models import UserRole
from apps.audit.services import record_audit
from apps.common.exceptions import IllegalTransition
from apps.common.permissions import resolve_role
from apps.couriers.models import Courier
from apps.notifications.models import NotificationType
from apps.notifications.services import notify_branch
from apps.orders.models import (
    DeliveryType,
    Order,
    OrderLine,
    OrderSequence,
    OrderStatus,
    PaymentMethod,
)
from apps.orders.transitions import check_transition
from apps.points.services import earn_points_from_order, redeem_points

logger = logging.getLogger(__name__)

ORDER_SEQUENCE = "order"

REJECTED_BY = {
    UserRole.ADMIN: "Administracion",
    UserRole.BRANCH: "La sucursal",
    UserRole.DELIVERY: "El repartidor",
    UserRole.CUSTOMER: "El cliente",
}


def next_order_number():
    """Reserve the next FRY-NNNNNN number. Callers must hold a transaction."""
    OrderSequence.objects.get_or_create(name=ORDER_SEQUENCE)
    sequence = OrderSequence.objects.select_for_update().get(name=ORDER_SEQUENCE)
    sequence.last_value += 1
    sequence.save(update_fields=["last_value"])
    return f"{settings.ORDER_NUMBER_PREFIX}-{sequence.last_value:06d}"


def _locked_order(order_id):
    try:
        return Order.objects.select_for_update(of=("self",)).select_related("branch", "customer").get(pk=order_id)
    except (Order.DoesNotExist, DjangoValidationError, ValueError):
        raise NotFound("Pedido no encontrado.")


def ensure_order_access(order, actor, role=None):
    """Tenant scoping: staff act on their branch, couriers on their branch, customers on their orders."""
    role = role or resolve_role(actor)
    if role == UserRole.ADMIN:
        return
    if role == UserRole.BRANCH:
        if actor.branch_id != order.branch_id:
            raise PermissionDenied("El pedido pertenece a otra sucursal.")
    elif role == UserRole.DELIVERY:
        if Courier.for_user(actor).branch_id != order.branch_id:
            raise PermissionDenied("El pedido pertenece a otra sucursal.")
    elif order.customer_id != actor.pk:
        raise PermissionDenied("El pedido pertenece a otro cliente.")


def ensure_courier_can_dispatch(order, courier):
    if order.delivery_type != DeliveryType.DELIVERY:
        raise IllegalTransition("Los pedidos para recoger no se asignan a repartidores.")
    if courier is None:
        raise ValidationError({"delivery": ["Se requiere un repartidor para despachar el pedido."]})
    if courier.branch_id != order.branch_id:
        raise PermissionDenied("El repartidor pertenece a otra sucursal.")
    if not courier.can_take_orders:
        raise IllegalTransition("El repartidor no esta aprobado o no esta en turno.")


def ensure_courier_holds(order, courier):
    if order.delivery_id != courier.pk:
        raise PermissionDenied("El pedido no esta asignado a este repartidor.")
    if order.assigned_by_branch:
        raise IllegalTransition("Confirma la recepcion del pedido antes de continuar.")


def _resolve_courier(delivery):
    if delivery is None or isinstance(delivery, Courier):
        return delivery
    try:
        return Courier.objects.get(pk=delivery)
    except (Courier.DoesNotExist, DjangoValidationError, ValueError):
        raise ValidationError({"delivery": ["Repartidor no encontrado."]})


def create_order(
    *,
    customer,
    branch,
    delivery_type,
    lines,
    payment_method=PaymentMethod.CASH,
    delivery_fee=Decimal("0.00"),
    discount=Decimal("0.00"),
    delivery_address="",
    customer_name="",
    customer_phone="",
    notes="",
):
    if not lines:
        raise ValidationError({"lines": ["El pedido debe tener al menos un producto."]})
    if not branch.is_active:
        raise ValidationError({"branch": ["La sucursal no esta activa."]})
    if delivery_type == DeliveryType.DELIVERY and not delivery_address:
        raise ValidationError({"delivery_address": ["La direccion es obligatoria para entregas a domicilio."]})

    delivery_fee = Decimal(delivery_fee).quantize(Decimal("0.01"))
    discount = Decimal(discount).quantize(Decimal("0.01"))
    subtotal = Decimal("0.00")
    points_required = 0
    for line in lines:
        if line.get("is_prize_redemption"):
            points_required += int(line.get("points_used", 0))
        else:
            subtotal += Decimal(line["price"]) * int(line["quantity"])
    subtotal = subtotal.quantize(Decimal("0.01"))
    total = subtotal + delivery_fee - discount
    if total < 0:
        raise ValidationError({"discount": ["El descuento no puede superar el subtotal mas el envio."]})

    with transaction.atomic():
        order = Order.objects.create(
            order_number=next_order_number(),
            branch=branch,
            customer=customer,
            customer_name=customer_name or customer.get_full_name() or customer.username,
            customer_phone=customer_phone or getattr(customer, "phone", ""),
            delivery_type=delivery_type,
            delivery_address=delivery_address,
            payment_method=payment_method,
            subtotal=subtotal,
            delivery_fee=delivery_fee,
            discount=discount,
            total=total,
            total_points_redeemed=points_required,
            is_prize_order=points_required > 0,
            notes=notes,
        )
        for position, line in enumerate(lines):
            prize = bool(line.get("is_prize_redemption"))
            if int(line["quantity"]) <= 0:
                raise ValidationError({"lines": [f"Cantidad invalida para {line['product_name']}."]})
            if not prize and Decimal(line["price"]) < 0:
                raise ValidationError({"lines": [f"Precio invalido para {line['product_name']}."]})
            OrderLine.objects.create(
                order=order,
                position=position,
                product_id=str(line["product_id"]),
                product_name=line["product_name"],
                quantity=int(line["quantity"]),
                price=Decimal("0.00") if prize else Decimal(line["price"]),
                points_used=int(line.get("points_used", 0)) if prize else 0,
                is_prize_redemption=prize,
            )

        if points_required:
            redeem_points(
                user=customer,
                amount=points_required,
                order=order,
                note=f"Premios del pedido {order.order_number}",
            )

        record_audit(
            actor=customer,
            action="order.create",
            entity_type="order",
            entity_id=order.id,
            branch=branch,
            payload={"order_number": order.order_number, "total": str(total), "points_redeemed": points_required},
        )

    logger.info("Order %s created for branch %s (total %s)", order.order_number, branch.code, total)
    return order


def update_order_status(order_id, new_status, actor, delivery=None, assigned_by_branch=None):
    role = resolve_role(actor)
    with transaction.atomic():
        order = _locked_order(order_id)
        ensure_order_access(order, actor, role)
        check_transition(order, new_status, role)
        if (
            order.status == OrderStatus.READY
            and new_status == OrderStatus.DELIVERED
            and order.delivery_type != DeliveryType.PICKUP
        ):
            raise IllegalTransition("Los pedidos a domicilio se entregan mediante un repartidor.")
        if order.assigned_by_branch and new_status in (OrderStatus.DELIVERED, OrderStatus.REJECTED):
            raise IllegalTransition("El repartidor debe confirmar la recepcion del pedido antes de cerrarlo.")

        previous = order.status
        update_fields = ["status", "updated_at"]

        if new_status == OrderStatus.DISPATCHED:
            if role == UserRole.DELIVERY:
                raise IllegalTransition("Los repartidores toman pedidos mediante una solicitud de reclamo.")
            courier = _resolve_courier(delivery)
            ensure_courier_can_dispatch(order, courier)
            order.delivery = courier
            order.delivery_requested_by = None
            update_fields += ["delivery", "delivery_requested_by"]
            # Staff hand-offs always need the courier to confirm receipt.
            order.assigned_by_branch = assigned_by_branch is not False
            update_fields.append("assigned_by_branch")
            if order.assigned_by_branch:
                order.request_approved = True
                update_fields.append("request_approved")
        elif new_status in (OrderStatus.DELIVERED, OrderStatus.REJECTED) and role == UserRole.DELIVERY:
            ensure_courier_holds(order, Courier.for_user(actor))

        if new_status == OrderStatus.REJECTED and order.delivery_requested_by_id:
            order.delivery_requested_by = None
            order.request_approved = False
            update_fields += ["delivery_requested_by", "request_approved"]

        order.status = new_status
        order.updated_at = timezone.now()
        order.save(update_fields=update_fields)

        earned = 0
        if new_status == OrderStatus.DELIVERED:
            earned = earn_points_from_order(order)
            notify_branch(
                order=order,
                type=NotificationType.DELIVERY_COMPLETED,
                delivery=order.delivery,
                title="Pedido Entregado",
                message=f"El pedido {order.order_number} fue entregado al cliente.",
            )

        record_audit(
            actor=actor,
            action="order.status",
            entity_type="order",
            entity_id=order.id,
            branch=order.branch,
            payload={
                "from": previous,
                "to": new_status,
                "delivery_id": str(order.delivery_id) if order.delivery_id else None,
                "points_earned": earned,
            },
        )

    logger.info("Order %s moved %s -> %s by %s", order.order_number, previous, new_status, role)
    return order


def approve_order(order_id, actor):
    with transaction.atomic():
        order = _locked_order(order_id)
        check_transition(order, OrderStatus.CONFIRMED, resolve_role(actor))
        if order.payment_method == PaymentMethod.TRANSFER and not order.transfer_authorized:
            raise IllegalTransition("La transferencia del pedido aun no ha sido autorizada.")
        now = timezone.now()
        order.status = OrderStatus.CONFIRMED
        order.admin_approved = True
        order.admin_approved_by = actor
        order.admin_approved_at = now
        order.updated_at = now
        order.save(update_fields=["status", "admin_approved", "admin_approved_by", "admin_approved_at", "updated_at"])
        record_audit(
            actor=actor,
            action="order.approve",
            entity_type="order",
            entity_id=order.id,
            branch=order.branch,
            payload={"order_number": order.order_number},
        )
    logger.info("Order %s approved by %s", order.order_number, actor.pk)
    return order


def authorize_transfer(order_id, actor):
    with transaction.atomic():
        order = _locked_order(order_id)
        if order.is_terminal:
            raise IllegalTransition(f"El pedido {order.order_number} ya esta {order.status} y no admite cambios.")
        if order.payment_method != PaymentMethod.TRANSFER:
            raise IllegalTransition("El pedido no se paga por transferencia.")
        if order.transfer_authorized:
            return order
        now = timezone.now()
        order.transfer_authorized = True
        order.transfer_authorized_by = actor
        order.transfer_authorized_at = now
        order.updated_at = now
        order.save(
            update_fields=["transfer_authorized", "transfer_authorized_by", "transfer_authorized_at", "updated_at"]
        )
        record_audit(
            actor=actor,
            action="order.transfer_authorized",
            entity_type="order",
            entity_id=order.id,
            branch=order.branch,
            payload={"total": str(order.total)},
        )
    logger.info("Transfer authorized for order %s", order.order_number)
    return order


def reject_order(order_id, actor, reason):
    reason = (reason or "").strip()
    if not reason:
        raise ValidationError({"reason": ["Indica el motivo del rechazo."]})

    with transaction.atomic():
        order = update_order_status(order_id, OrderStatus.REJECTED, actor)
        order.rejection_reason = reason
        order.save(update_fields=["rejection_reason", "updated_at"])
        role = resolve_role(actor)
        who = REJECTED_BY.get(role, "La sucursal")
        notify_branch(
            order=order,
            type=NotificationType.ORDER_REJECTED,
            delivery=order.delivery if role == UserRole.DELIVERY else None,
            title="Pedido Rechazado",
            message=f"{who} rechazo el pedido {order.order_number}. Motivo: {reason}",
        )
    logger.warning("Order %s rejected: %s", order.order_number, reason)
    return order
