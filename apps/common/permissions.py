from rest_framework.permissions import BasePermission

from apps.accounts.models import UserRole


ROLE_CAPABILITIES = {
    UserRole.ADMIN: {
        "orders.view",
        "orders.create",
        "orders.status",
        "orders.approve",
        "orders.assign",
        "orders.reject",
        "claims.decide",
        "couriers.view",
        "couriers.manage",
        "notifications.view",
        "notifications.manage",
        "points.view.own",
        "points.view",
        "points.manage",
    },
    UserRole.BRANCH: {
        "orders.view",
        "orders.status",
        "orders.assign",
        "orders.reject",
        "claims.decide",
        "couriers.view",
        "notifications.view",
        "notifications.manage",
    },
    UserRole.DELIVERY: {
        "orders.view",
        "orders.status",
        "orders.claim",
        "orders.deliver",
        "orders.reject",
        "orders.delay",
        "couriers.view.own",
    },
    UserRole.CUSTOMER: {
        "orders.view",
        "orders.create",
        "orders.cancel",
        "orders.rate",
        "points.view.own",
    },
}


def resolve_role(user):
    group_names = set(user.groups.values_list("name", flat=True))
    for role in (UserRole.ADMIN, UserRole.BRANCH, UserRole.DELIVERY, UserRole.CUSTOMER):
        if role in group_names:
            return role
    return getattr(user, "role", UserRole.CUSTOMER)


class RolePermission(BasePermission):
    def has_permission(self, request, view):
        if not request.user or not request.user.is_authenticated:
            return False

        capability_map = getattr(view, "capability_map", {})
        action = getattr(view, "action", None) or request.method.lower()
        required = capability_map.get(action) or capability_map.get(request.method.lower()) or set()
        if not required:
            return True

        user_caps = ROLE_CAPABILITIES.get(resolve_role(request.user), set())
        return all(cap in user_caps for cap in required)
