import logging
from decimal import ROUND_FLOOR, Decimal

from django.db import transaction
from rest_framework.exceptions import ValidationError

from apps.audit.services import record_audit
from apps.common.exceptions import InsufficientBalance
from apps.points.models import PointsEntry, PointsEntryType, PointsSettings, UserPoints

logger = logging.getLogger(__name__)


def get_user_points(user):
    points, created = UserPoints.objects.get_or_create(user=user)
    if created:
        logger.info("Points account opened for user %s", user.pk)
    return points


def _locked_points(user):
    get_user_points(user)
    return UserPoints.objects.select_for_update().get(user=user)


def _validate_amount(amount):
    try:
        amount = int(amount)
    except (TypeError, ValueError):
        raise ValidationError({"amount": ["Cantidad de puntos invalida."]})
    if amount <= 0:
        raise ValidationError({"amount": ["La cantidad de puntos debe ser mayor a 0."]})
    return amount


def add_points(*, user, amount, order=None, entry_type=PointsEntryType.ADJUSTMENT, note="", actor=None):
    amount = _validate_amount(amount)
    with transaction.atomic():
        points = _locked_points(user)
        points.available_points += amount
        points.total_points += amount
        points.save(update_fields=["available_points", "total_points", "last_updated"])
        PointsEntry.objects.create(
            user=user,
            entry_type=entry_type,
            points_delta=amount,
            order=order,
            note=note,
            created_by=actor,
        )
    logger.info("Added %s points to user %s (%s)", amount, user.pk, entry_type)
    return points


def earn_points_from_order(order):
    """Mint floor(total) points for a delivered order, at most once per order.

    Must run inside the transaction that moved the order to delivered so the
    points_awarded flag commits together with the status change.
    """
    from apps.orders.models import Order, OrderStatus

    policy = PointsSettings.load()
    if not policy.enabled or order.status != OrderStatus.DELIVERED:
        return 0
    if order.points_awarded or PointsEntry.objects.filter(order=order, entry_type=PointsEntryType.EARN).exists():
        logger.warning("Order %s already awarded points", order.order_number)
        return 0

    earned = int(Decimal(order.total).to_integral_value(rounding=ROUND_FLOOR))
    with transaction.atomic():
        if earned > 0:
            add_points(
                user=order.customer,
                amount=earned,
                order=order,
                entry_type=PointsEntryType.EARN,
                note=f"Pedido {order.order_number}",
            )
        Order.objects.filter(pk=order.pk).update(points_awarded=True)
        order.points_awarded = True
    return earned


def redeem_points(*, user, amount, order=None, note="", actor=None):
    policy = PointsSettings.load()
    if not policy.enabled:
        raise ValidationError({"points": ["El sistema de puntos esta deshabilitado."]})
    amount = _validate_amount(amount)

    with transaction.atomic():
        points = _locked_points(user)
        if points.available_points < amount:
            logger.warning(
                "Redeem of %s points refused for user %s: %s available",
                amount,
                user.pk,
                points.available_points,
            )
            raise InsufficientBalance(
                f"Puntos insuficientes: disponibles {points.available_points}, requeridos {amount}."
            )
        points.available_points -= amount
        points.save(update_fields=["available_points", "last_updated"])
        PointsEntry.objects.create(
            user=user,
            entry_type=PointsEntryType.REDEEM,
            points_delta=-amount,
            order=order,
            note=note,
            created_by=actor,
        )
        record_audit(
            actor=actor or user,
            action="points.redeem",
            entity_type="user_points",
            entity_id=points.id,
            payload={"amount": amount, "order_id": str(order.id) if order else None},
        )

    logger.info("User %s redeemed %s points", user.pk, amount)
    return amount // policy.conversion_rate
