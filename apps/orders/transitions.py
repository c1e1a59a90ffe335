"""Who may move an order from one status to another.

Every status change in the service layer is checked against ``TRANSITIONS``;
anything missing from the table is an illegal transition, including skipping
states and any move out of a terminal status.
"""

from apps.accounts.models import UserRole
from apps.common.exceptions import IllegalTransition
from apps.orders.models import TERMINAL_STATUSES, OrderStatus

ADMIN = UserRole.ADMIN
BRANCH = UserRole.BRANCH
DELIVERY = UserRole.DELIVERY
CUSTOMER = UserRole.CUSTOMER

TRANSITIONS = {
    (OrderStatus.PENDING, OrderStatus.CONFIRMED): {ADMIN},
    # Branches start preparing only once an admin confirmed the order.
    (OrderStatus.PENDING, OrderStatus.PREPARING): {ADMIN},
    (OrderStatus.CONFIRMED, OrderStatus.PREPARING): {ADMIN, BRANCH},
    (OrderStatus.PREPARING, OrderStatus.READY): {ADMIN, BRANCH},
    (OrderStatus.PREPARING, OrderStatus.DISPATCHED): {ADMIN, BRANCH, DELIVERY},
    (OrderStatus.READY, OrderStatus.DISPATCHED): {ADMIN, BRANCH},
    # Pickup orders are handed over at the counter.
    (OrderStatus.READY, OrderStatus.DELIVERED): {ADMIN, BRANCH},
    (OrderStatus.DISPATCHED, OrderStatus.DELIVERED): {ADMIN, DELIVERY},
    (OrderStatus.PENDING, OrderStatus.REJECTED): {ADMIN, BRANCH, CUSTOMER},
    (OrderStatus.CONFIRMED, OrderStatus.REJECTED): {ADMIN, BRANCH, CUSTOMER},
    (OrderStatus.PREPARING, OrderStatus.REJECTED): {ADMIN, BRANCH, CUSTOMER},
    (OrderStatus.READY, OrderStatus.REJECTED): {ADMIN, BRANCH, CUSTOMER},
    (OrderStatus.DISPATCHED, OrderStatus.REJECTED): {ADMIN, DELIVERY, CUSTOMER},
}


def is_allowed(current, new_status, role):
    return role in TRANSITIONS.get((current, new_status), set())


def check_transition(order, new_status, role):
    if order.status in TERMINAL_STATUSES:
        raise IllegalTransition(f"El pedido {order.order_number} ya esta {order.status} y no admite cambios.")
    if new_status not in OrderStatus.values:
        raise IllegalTransition(f"Estado desconocido: {new_status}.")
    if (order.status, new_status) not in TRANSITIONS:
        raise IllegalTransition(f"No se puede pasar de {order.status} a {new_status}.")
    if not is_allowed(order.status, new_status, role):
        raise IllegalTransition(f"El rol {role} no puede pasar el pedido de {order.status} a {new_status}.")


def allowed_transitions(order, role):
    return sorted(
        target
        for (source, target), roles in TRANSITIONS.items()
        if source == order.status and role in roles
    )
