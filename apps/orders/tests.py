from datetime import timedelta
from decimal import Decimal

from django.contrib.auth import get_user_model
from django.test import override_settings
from django.utils import timezone
from rest_framework.exceptions import PermissionDenied
from rest_framework.test import APITestCase

from apps.accounts.models import Branch
from apps.audit.models import AuditLog
from apps.common.exceptions import IllegalTransition, InsufficientBalance, WindowExpired
from apps.couriers.models import Courier, CourierStatus
from apps.notifications.models import BranchNotification, NotificationType
from apps.notifications.services import unread_count
from apps.orders.claims import approve_order_claim, confirm_assign_delivery, request_order_claim
from apps.orders.models import DeliveryType, Order, OrderCancellation, OrderStatus, PaymentMethod
from apps.orders.recorders import add_order_cancellation
from apps.orders.services import create_order, update_order_status
from apps.orders.transitions import TRANSITIONS, allowed_transitions, check_transition
from apps.points.models import UserPoints
from apps.points.services import add_points, redeem_points

User = get_user_model()


class OrderFlowTestCase(APITestCase):
    def setUp(self):
        self.branch = Branch.objects.create(code="CEN", name="Centro")
        self.other_branch = Branch.objects.create(code="NOR", name="Norte")

        self.admin = User.objects.create_user(username="admin", password="admin123", role="ADMIN")
        self.staff = User.objects.create_user(
            username="sucursal", password="sucursal123", role="BRANCH", branch=self.branch
        )
        self.other_staff = User.objects.create_user(
            username="sucursal_norte", password="sucursal123", role="BRANCH", branch=self.other_branch
        )
        self.customer = User.objects.create_user(username="cliente", password="cliente123", role="CUSTOMER")
        self.other_customer = User.objects.create_user(username="cliente2", password="cliente123", role="CUSTOMER")

        self.rider_a_user = User.objects.create_user(
            username="rider_a", password="rider123", role="DELIVERY", branch=self.branch
        )
        self.rider_b_user = User.objects.create_user(
            username="rider_b", password="rider123", role="DELIVERY", branch=self.branch
        )
        self.courier_a = Courier.objects.create(
            user=self.rider_a_user,
            branch=self.branch,
            name="Repartidor A",
            status=CourierStatus.APPROVED,
            is_active=True,
        )
        self.courier_b = Courier.objects.create(
            user=self.rider_b_user,
            branch=self.branch,
            name="Repartidor B",
            status=CourierStatus.APPROVED,
            is_active=True,
        )

    def auth(self, username, password):
        return self.client.post(
            "/api/v1/auth/token/",
            {"username": username, "password": password},
            format="json",
        )

    def auth_as(self, username, password):
        token = self.auth(username, password).data["access"]
        self.client.credentials(HTTP_AUTHORIZATION=f"Bearer {token}")

    def make_order(self, *, price="200.00", delivery_fee="50.00", delivery_type=DeliveryType.DELIVERY, **state):
        order = create_order(
            customer=self.customer,
            branch=self.branch,
            delivery_type=delivery_type,
            delivery_address="Col. Palmira, casa 12" if delivery_type == DeliveryType.DELIVERY else "",
            delivery_fee=Decimal(delivery_fee),
            lines=[
                {"product_id": "pollo-8", "product_name": "Balde 8 piezas", "quantity": 1, "price": Decimal(price)},
            ],
        )
        if state:
            Order.objects.filter(pk=order.pk).update(**state)
            order.refresh_from_db()
        return order

    def preparing_order(self, **extra):
        return self.make_order(status=OrderStatus.PREPARING, admin_approved=True, **extra)

    def post_status(self, order, status, **payload):
        return self.client.post(f"/api/v1/orders/{order.id}/status/", {"status": status, **payload}, format="json")


class OrderCreateTests(OrderFlowTestCase):
    def test_customer_creates_order_with_sequential_number_and_totals(self):
        self.auth_as("cliente", "cliente123")
        payload = {
            "branch": str(self.branch.id),
            "delivery_type": "delivery",
            "delivery_address": "Col. Palmira, casa 12",
            "delivery_fee": "50.00",
            "lines": [
                {"product_id": "pollo-8", "product_name": "Balde 8 piezas", "quantity": 2, "price": "90.00"},
                {"product_id": "papas", "product_name": "Papas grandes", "quantity": 1, "price": "20.00"},
            ],
        }
        first = self.client.post("/api/v1/orders/", payload, format="json")
        second = self.client.post("/api/v1/orders/", payload, format="json")

        self.assertEqual(first.status_code, 201)
        self.assertEqual(first.data["order_number"], "FRY-000001")
        self.assertEqual(second.data["order_number"], "FRY-000002")
        self.assertEqual(first.data["subtotal"], "200.00")
        self.assertEqual(first.data["total"], "250.00")
        self.assertEqual(first.data["status"], "pending")
        self.assertEqual([line["product_id"] for line in first.data["lines"]], ["pollo-8", "papas"])
        self.assertTrue(AuditLog.objects.filter(action="order.create", entity_id=first.data["id"]).exists())

    def test_delivery_order_requires_address(self):
        self.auth_as("cliente", "cliente123")
        response = self.client.post(
            "/api/v1/orders/",
            {
                "branch": str(self.branch.id),
                "delivery_type": "delivery",
                "lines": [{"product_id": "papas", "product_name": "Papas", "quantity": 1, "price": "20.00"}],
            },
            format="json",
        )
        self.assertEqual(response.status_code, 400)
        self.assertIn("delivery_address", response.data["fields"])

    def test_branch_staff_cannot_create_orders(self):
        self.auth_as("sucursal", "sucursal123")
        response = self.client.post("/api/v1/orders/", {}, format="json")
        self.assertEqual(response.status_code, 403)

    def test_prize_lines_redeem_points_in_same_transaction(self):
        add_points(user=self.customer, amount=300)
        order = create_order(
            customer=self.customer,
            branch=self.branch,
            delivery_type=DeliveryType.PICKUP,
            lines=[
                {"product_id": "papas", "product_name": "Papas", "quantity": 1, "price": Decimal("20.00")},
                {
                    "product_id": "postre",
                    "product_name": "Postre de premio",
                    "quantity": 1,
                    "price": Decimal("35.00"),
                    "points_used": 200,
                    "is_prize_redemption": True,
                },
            ],
        )

        points = UserPoints.objects.get(user=self.customer)
        self.assertEqual(points.available_points, 100)
        self.assertEqual(points.total_points, 300)
        self.assertTrue(order.is_prize_order)
        self.assertEqual(order.total_points_redeemed, 200)
        self.assertEqual(order.subtotal, Decimal("20.00"))
        self.assertEqual(order.lines.get(product_id="postre").price, Decimal("0.00"))

    def test_failed_redemption_leaves_no_order_behind(self):
        with self.assertRaises(InsufficientBalance):
            create_order(
                customer=self.customer,
                branch=self.branch,
                delivery_type=DeliveryType.PICKUP,
                lines=[
                    {
                        "product_id": "postre",
                        "product_name": "Postre de premio",
                        "quantity": 1,
                        "price": Decimal("0.00"),
                        "points_used": 50,
                        "is_prize_redemption": True,
                    },
                ],
            )
        self.assertEqual(Order.objects.count(), 0)

        # The sequence rolled back with the order.
        self.assertEqual(self.make_order().order_number, "FRY-000001")

    def test_customer_only_lists_own_orders(self):
        own = self.make_order()
        Order.objects.create(
            order_number="FRY-999999",
            branch=self.branch,
            customer=self.other_customer,
            delivery_type=DeliveryType.PICKUP,
        )
        self.auth_as("cliente", "cliente123")
        response = self.client.get("/api/v1/orders/")
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.data["count"], 1)
        self.assertEqual(response.data["results"][0]["id"], str(own.id))

    def test_list_sorted_by_status_priority_then_age(self):
        dispatched = self.make_order(status=OrderStatus.DISPATCHED, delivery=self.courier_a)
        preparing = self.preparing_order()
        pending = self.make_order()

        self.auth_as("sucursal", "sucursal123")
        response = self.client.get("/api/v1/orders/")
        ids = [row["id"] for row in response.data["results"]]
        self.assertEqual(ids, [str(pending.id), str(preparing.id), str(dispatched.id)])

        filtered = self.client.get("/api/v1/orders/?status=preparing,dispatched")
        self.assertEqual(filtered.data["count"], 2)


class OrderLifecycleTests(OrderFlowTestCase):
    def test_every_edge_outside_the_table_is_illegal(self):
        roles = {"ADMIN", "BRANCH", "DELIVERY", "CUSTOMER"}
        for current in OrderStatus.values:
            for target in OrderStatus.values:
                for role in roles:
                    order = Order(order_number="FRY-TEST", status=current)
                    allowed = role in TRANSITIONS.get((current, target), set())
                    if allowed:
                        check_transition(order, target, role)
                    else:
                        with self.assertRaises(IllegalTransition):
                            check_transition(order, target, role)

    def test_allowed_transitions_per_role(self):
        order = Order(order_number="FRY-TEST", status=OrderStatus.PREPARING)
        self.assertEqual(allowed_transitions(order, "BRANCH"), ["dispatched", "ready", "rejected"])
        self.assertEqual(allowed_transitions(order, "CUSTOMER"), ["rejected"])

        pending = Order(order_number="FRY-TEST", status=OrderStatus.PENDING)
        self.assertEqual(allowed_transitions(pending, "BRANCH"), ["rejected"])
        self.assertEqual(allowed_transitions(pending, "ADMIN"), ["confirmed", "preparing", "rejected"])

    def test_pending_cannot_jump_to_dispatched(self):
        order = self.make_order()
        self.auth_as("admin", "admin123")
        response = self.post_status(order, "dispatched", delivery=str(self.courier_a.id))
        self.assertEqual(response.status_code, 409)
        self.assertEqual(response.data["code"], "invalid_state")
        order.refresh_from_db()
        self.assertEqual(order.status, OrderStatus.PENDING)
        self.assertIsNone(order.delivery_id)

    def test_full_sequence_to_delivered_earns_points(self):
        order = self.make_order()
        self.auth_as("admin", "admin123")

        self.assertEqual(self.post_status(order, "preparing").status_code, 200)
        self.assertEqual(self.post_status(order, "ready").status_code, 200)
        dispatched = self.post_status(order, "dispatched", delivery=str(self.courier_a.id))
        self.assertEqual(dispatched.status_code, 200)
        self.assertEqual(dispatched.data["delivery"], self.courier_a.id)
        self.assertTrue(dispatched.data["assigned_by_branch"])

        self.auth_as("rider_a", "rider123")
        self.assertEqual(
            self.client.post(f"/api/v1/orders/{order.id}/confirm-received/", {}, format="json").status_code, 200
        )

        self.auth_as("admin", "admin123")
        delivered = self.post_status(order, "delivered")
        self.assertEqual(delivered.status_code, 200)
        self.assertEqual(delivered.data["status"], "delivered")
        self.assertTrue(delivered.data["points_awarded"])

        points = UserPoints.objects.get(user=self.customer)
        self.assertEqual(points.available_points, 250)
        self.assertEqual(points.total_points, 250)
        self.assertTrue(
            BranchNotification.objects.filter(order=order, type=NotificationType.DELIVERY_COMPLETED).exists()
        )

    def test_pickup_order_handed_over_at_counter_earns_points(self):
        order = self.make_order(
            delivery_type=DeliveryType.PICKUP,
            price="199.90",
            delivery_fee="0.00",
            status=OrderStatus.READY,
            admin_approved=True,
        )
        self.auth_as("sucursal", "sucursal123")
        response = self.post_status(order, "delivered")

        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.data["status"], "delivered")
        self.assertTrue(response.data["points_awarded"])
        self.assertEqual(UserPoints.objects.get(user=self.customer).total_points, 199)

    def test_delivery_order_cannot_skip_courier_from_ready(self):
        order = self.make_order(status=OrderStatus.READY, admin_approved=True)
        self.auth_as("sucursal", "sucursal123")
        response = self.post_status(order, "delivered")
        self.assertEqual(response.status_code, 409)
        order.refresh_from_db()
        self.assertEqual(order.status, OrderStatus.READY)
        self.assertFalse(UserPoints.objects.filter(user=self.customer, total_points__gt=0).exists())

    def test_admin_cannot_close_order_before_courier_confirms(self):
        order = self.make_order(status=OrderStatus.READY, admin_approved=True)
        confirm_assign_delivery(order.pk, self.courier_a, self.staff)

        self.auth_as("admin", "admin123")
        self.assertEqual(self.post_status(order, "delivered").status_code, 409)
        rejected = self.client.post(f"/api/v1/orders/{order.id}/reject/", {"reason": "Sin respuesta"}, format="json")
        self.assertEqual(rejected.status_code, 409)

        order.refresh_from_db()
        self.assertEqual(order.status, OrderStatus.DISPATCHED)
        self.assertTrue(order.assigned_by_branch)
        self.assertFalse(order.points_awarded)

    def test_delivered_and_redeem_scenario(self):
        order = self.preparing_order()
        self.assertEqual(request_order_claim(order.pk, self.courier_a), {"needs_approval": False})
        update_order_status(order.pk, OrderStatus.DELIVERED, self.rider_a_user)

        points = UserPoints.objects.get(user=self.customer)
        self.assertEqual(points.available_points, 250)

        self.assertEqual(redeem_points(user=self.customer, amount=100), 10)
        points.refresh_from_db()
        self.assertEqual(points.available_points, 150)
        self.assertEqual(points.total_points, 250)

    def test_terminal_orders_reject_every_status_change(self):
        order = self.make_order(status=OrderStatus.DISPATCHED, delivery=self.courier_a)
        update_order_status(order.pk, OrderStatus.DELIVERED, self.rider_a_user)

        for target in OrderStatus.values:
            with self.assertRaises(IllegalTransition):
                update_order_status(order.pk, target, self.admin)

        rejected = self.make_order(status=OrderStatus.REJECTED)
        self.auth_as("sucursal", "sucursal123")
        response = self.client.post(f"/api/v1/orders/{rejected.id}/reject/", {"reason": "Otra vez"}, format="json")
        self.assertEqual(response.status_code, 409)

    def test_second_delivery_call_does_not_award_twice(self):
        order = self.make_order(status=OrderStatus.DISPATCHED, delivery=self.courier_a)
        self.auth_as("rider_a", "rider123")
        self.assertEqual(self.post_status(order, "delivered").status_code, 200)
        retry = self.post_status(order, "delivered")
        self.assertEqual(retry.status_code, 409)
        self.assertEqual(UserPoints.objects.get(user=self.customer).total_points, 250)

    def test_branch_needs_admin_approval_before_preparing(self):
        order = self.make_order()
        self.auth_as("sucursal", "sucursal123")
        self.assertEqual(self.post_status(order, "preparing").status_code, 409)

        self.auth_as("admin", "admin123")
        approved = self.client.post(f"/api/v1/orders/{order.id}/approve/", {}, format="json")
        self.assertEqual(approved.status_code, 200)
        self.assertEqual(approved.data["status"], "confirmed")
        self.assertTrue(approved.data["admin_approved"])

        self.auth_as("sucursal", "sucursal123")
        self.assertEqual(self.post_status(order, "preparing").status_code, 200)

    def test_transfer_orders_need_authorization_before_approval(self):
        order = self.make_order(payment_method=PaymentMethod.TRANSFER)
        self.auth_as("admin", "admin123")
        self.assertEqual(self.client.post(f"/api/v1/orders/{order.id}/approve/", {}, format="json").status_code, 409)

        authorized = self.client.post(f"/api/v1/orders/{order.id}/authorize-transfer/", {}, format="json")
        self.assertEqual(authorized.status_code, 200)
        self.assertTrue(authorized.data["transfer_authorized"])
        self.assertEqual(self.client.post(f"/api/v1/orders/{order.id}/approve/", {}, format="json").status_code, 200)

    def test_other_branch_staff_is_forbidden(self):
        order = self.preparing_order()
        self.auth_as("sucursal_norte", "sucursal123")
        response = self.post_status(order, "ready")
        self.assertEqual(response.status_code, 403)
        order.refresh_from_db()
        self.assertEqual(order.status, OrderStatus.PREPARING)

    def test_customer_cannot_use_status_endpoint(self):
        order = self.make_order()
        self.auth_as("cliente", "cliente123")
        self.assertEqual(self.post_status(order, "rejected").status_code, 403)

    def test_unknown_order_is_not_found(self):
        self.auth_as("admin", "admin123")
        response = self.client.post(
            "/api/v1/orders/00000000-0000-0000-0000-000000000000/status/",
            {"status": "preparing"},
            format="json",
        )
        self.assertEqual(response.status_code, 404)

    def test_courier_cannot_self_dispatch_through_status(self):
        order = self.preparing_order()
        self.auth_as("rider_a", "rider123")
        self.assertEqual(self.post_status(order, "dispatched").status_code, 409)

    def test_branch_reject_records_reason_and_notifies(self):
        order = self.preparing_order()
        self.auth_as("sucursal", "sucursal123")
        response = self.client.post(
            f"/api/v1/orders/{order.id}/reject/",
            {"reason": "Sin existencias"},
            format="json",
        )
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.data["status"], "rejected")
        self.assertEqual(response.data["rejection_reason"], "Sin existencias")
        notice = BranchNotification.objects.get(order=order, type=NotificationType.ORDER_REJECTED)
        self.assertIn("Sin existencias", notice.message)


class ClaimArbitrationTests(OrderFlowTestCase):
    def test_idle_courier_claims_directly(self):
        order = self.preparing_order()
        self.auth_as("rider_a", "rider123")
        response = self.client.post(f"/api/v1/orders/{order.id}/claim/", {}, format="json")

        self.assertEqual(response.status_code, 200)
        self.assertFalse(response.data["needs_approval"])
        order.refresh_from_db()
        self.assertEqual(order.status, OrderStatus.DISPATCHED)
        self.assertEqual(order.delivery_id, self.courier_a.id)
        self.assertFalse(order.assigned_by_branch)

    def test_busy_courier_request_is_queued_for_branch(self):
        held = self.make_order(status=OrderStatus.DISPATCHED, delivery=self.courier_a)
        idle_target = self.preparing_order()
        third = self.preparing_order()

        self.assertEqual(request_order_claim(idle_target.pk, self.courier_b), {"needs_approval": False})
        idle_target.refresh_from_db()
        self.assertEqual(idle_target.status, OrderStatus.DISPATCHED)
        self.assertEqual(idle_target.delivery_id, self.courier_b.id)

        self.assertEqual(request_order_claim(third.pk, self.courier_a), {"needs_approval": True})
        third.refresh_from_db()
        self.assertEqual(third.status, OrderStatus.PREPARING)
        self.assertIsNone(third.delivery_id)
        self.assertEqual(third.delivery_requested_by_id, self.courier_a.id)
        self.assertFalse(third.request_approved)

        notice = BranchNotification.objects.get(order=third, type=NotificationType.ORDER_CLAIM_REQUEST)
        self.assertEqual(notice.branch_id, self.branch.id)
        self.assertEqual(notice.delivery_id, self.courier_a.id)
        self.assertIn("Ya tiene 1 orden(es) en curso", notice.message)
        self.assertEqual(unread_count(self.branch), 1)
        self.assertEqual(held.delivery_id, self.courier_a.id)

    def test_repeated_request_does_not_duplicate_notice(self):
        self.make_order(status=OrderStatus.DISPATCHED, delivery=self.courier_a)
        order = self.preparing_order()
        request_order_claim(order.pk, self.courier_a)
        self.assertEqual(request_order_claim(order.pk, self.courier_a), {"needs_approval": True})
        self.assertEqual(BranchNotification.objects.filter(type=NotificationType.ORDER_CLAIM_REQUEST).count(), 1)

    def test_pending_request_reserves_order(self):
        self.make_order(status=OrderStatus.DISPATCHED, delivery=self.courier_a)
        order = self.preparing_order()
        request_order_claim(order.pk, self.courier_a)

        self.auth_as("rider_b", "rider123")
        response = self.client.post(f"/api/v1/orders/{order.id}/claim/", {}, format="json")
        self.assertEqual(response.status_code, 409)

        self.auth_as("sucursal", "sucursal123")
        declined = self.client.post(f"/api/v1/orders/{order.id}/claim-decision/", {"approved": False}, format="json")
        self.assertEqual(declined.status_code, 200)
        self.assertIsNone(declined.data["delivery_requested_by"])

        self.auth_as("rider_b", "rider123")
        retry = self.client.post(f"/api/v1/orders/{order.id}/claim/", {}, format="json")
        self.assertEqual(retry.status_code, 200)
        self.assertFalse(retry.data["needs_approval"])

    def test_only_staff_decide_claim_requests(self):
        self.make_order(status=OrderStatus.DISPATCHED, delivery=self.courier_a)
        order = self.preparing_order()
        request_order_claim(order.pk, self.courier_a)

        for actor in (self.customer, self.rider_b_user, self.rider_a_user):
            with self.assertRaises(PermissionDenied):
                approve_order_claim(order.pk, False, actor)

        order.refresh_from_db()
        self.assertEqual(order.delivery_requested_by_id, self.courier_a.id)

        approve_order_claim(order.pk, False, self.staff)
        order.refresh_from_db()
        self.assertIsNone(order.delivery_requested_by_id)

    def test_claimed_order_cannot_be_claimed_again(self):
        order = self.preparing_order()
        request_order_claim(order.pk, self.courier_a)
        with self.assertRaises(IllegalTransition):
            request_order_claim(order.pk, self.courier_b)

    def test_claim_requires_eligible_courier_and_order(self):
        pickup = self.preparing_order(delivery_type=DeliveryType.PICKUP)
        with self.assertRaises(IllegalTransition):
            request_order_claim(pickup.pk, self.courier_a)

        ready = self.make_order(status=OrderStatus.READY, admin_approved=True)
        with self.assertRaises(IllegalTransition):
            request_order_claim(ready.pk, self.courier_a)

        Courier.objects.filter(pk=self.courier_b.pk).update(is_active=False)
        order = self.preparing_order()
        with self.assertRaises(IllegalTransition):
            request_order_claim(order.pk, self.courier_b)

    def test_courier_from_other_branch_is_forbidden(self):
        outsider = User.objects.create_user(username="rider_n", password="rider123", role="DELIVERY")
        Courier.objects.create(
            user=outsider,
            branch=self.other_branch,
            name="Repartidor Norte",
            status=CourierStatus.APPROVED,
            is_active=True,
        )
        order = self.preparing_order()
        self.auth_as("rider_n", "rider123")
        response = self.client.post(f"/api/v1/orders/{order.id}/claim/", {}, format="json")
        self.assertEqual(response.status_code, 403)

    def test_available_lists_only_unassigned_delivery_orders_in_branch(self):
        open_order = self.preparing_order()
        self.preparing_order(delivery_type=DeliveryType.PICKUP)
        self.make_order(status=OrderStatus.DISPATCHED, delivery=self.courier_b)
        self.auth_as("rider_a", "rider123")
        response = self.client.get("/api/v1/orders/available/")
        self.assertEqual(response.status_code, 200)
        self.assertEqual([row["id"] for row in response.data["results"]], [str(open_order.id)])

    def test_courier_list_shows_held_and_requested_orders(self):
        held = self.make_order(status=OrderStatus.DISPATCHED, delivery=self.courier_a)
        requested = self.preparing_order()
        request_order_claim(requested.pk, self.courier_a)
        self.preparing_order()

        self.auth_as("rider_a", "rider123")
        response = self.client.get("/api/v1/orders/")
        self.assertEqual({row["id"] for row in response.data["results"]}, {str(held.id), str(requested.id)})


class BranchHandshakeTests(OrderFlowTestCase):
    def test_approved_claim_needs_confirm_received_before_delivery(self):
        self.make_order(status=OrderStatus.DISPATCHED, delivery=self.courier_a)
        order = self.preparing_order()
        request_order_claim(order.pk, self.courier_a)

        self.auth_as("sucursal", "sucursal123")
        approved = self.client.post(f"/api/v1/orders/{order.id}/claim-decision/", {"approved": True}, format="json")
        self.assertEqual(approved.status_code, 200)
        self.assertEqual(approved.data["status"], "dispatched")
        self.assertEqual(approved.data["delivery"], self.courier_a.id)
        self.assertTrue(approved.data["assigned_by_branch"])
        self.assertTrue(approved.data["request_approved"])
        self.assertIsNone(approved.data["delivery_requested_by"])

        self.auth_as("rider_a", "rider123")
        self.assertEqual(self.post_status(order, "delivered").status_code, 409)
        blocked_reject = self.client.post(f"/api/v1/orders/{order.id}/reject/", {"reason": "Cliente ausente"}, format="json")
        self.assertEqual(blocked_reject.status_code, 409)
        blocked_delay = self.client.post(
            f"/api/v1/orders/{order.id}/delay/",
            {"delay_minutes": 10, "reason": "Trafico"},
            format="json",
        )
        self.assertEqual(blocked_delay.status_code, 409)

        received = self.client.post(f"/api/v1/orders/{order.id}/confirm-received/", {}, format="json")
        self.assertEqual(received.status_code, 200)
        self.assertFalse(received.data["assigned_by_branch"])

        self.assertEqual(self.post_status(order, "delivered").status_code, 200)

    def test_branch_assigns_ready_order(self):
        order = self.make_order(status=OrderStatus.READY, admin_approved=True)
        self.auth_as("sucursal", "sucursal123")
        response = self.client.post(
            f"/api/v1/orders/{order.id}/assign/",
            {"delivery": str(self.courier_b.id)},
            format="json",
        )
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.data["status"], "dispatched")
        self.assertEqual(response.data["delivery"], self.courier_b.id)
        self.assertTrue(response.data["assigned_by_branch"])

        self.auth_as("rider_a", "rider123")
        foreign = self.client.post(f"/api/v1/orders/{order.id}/confirm-received/", {}, format="json")
        self.assertEqual(foreign.status_code, 403)

    def test_branch_cannot_assign_unapproved_courier(self):
        Courier.objects.filter(pk=self.courier_b.pk).update(status=CourierStatus.PENDING)
        order = self.make_order(status=OrderStatus.READY, admin_approved=True)
        self.auth_as("sucursal", "sucursal123")
        response = self.client.post(
            f"/api/v1/orders/{order.id}/assign/",
            {"delivery": str(self.courier_b.id)},
            format="json",
        )
        self.assertEqual(response.status_code, 409)

    def test_direct_assignment_releases_pending_request(self):
        self.make_order(status=OrderStatus.DISPATCHED, delivery=self.courier_a)
        order = self.preparing_order()
        request_order_claim(order.pk, self.courier_a)

        self.auth_as("sucursal", "sucursal123")
        response = self.client.post(
            f"/api/v1/orders/{order.id}/assign/",
            {"delivery": str(self.courier_b.id)},
            format="json",
        )
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.data["delivery"], self.courier_b.id)
        self.assertIsNone(response.data["delivery_requested_by"])


class CancellationTests(OrderFlowTestCase):
    def backdate(self, order, **delta):
        Order.objects.filter(pk=order.pk).update(created_at=timezone.now() - timedelta(**delta))

    def test_cancel_inside_window(self):
        order = self.make_order()
        self.backdate(order, minutes=4, seconds=59)

        cancellation = add_order_cancellation(order.pk, self.customer, "Me equivoque de direccion")

        order.refresh_from_db()
        self.assertEqual(order.status, OrderStatus.REJECTED)
        self.assertEqual(cancellation.reason, "Me equivoque de direccion")
        notice = BranchNotification.objects.get(order=order, type=NotificationType.ORDER_CANCELLED)
        self.assertIn(order.order_number, notice.message)

    def test_cancel_after_window_fails_without_mutation(self):
        order = self.make_order()
        self.backdate(order, minutes=5, seconds=1)

        with self.assertRaises(WindowExpired):
            add_order_cancellation(order.pk, self.customer, "Tarde")

        order.refresh_from_db()
        self.assertEqual(order.status, OrderStatus.PENDING)
        self.assertFalse(OrderCancellation.objects.filter(order=order).exists())

    def test_cancel_endpoint_reports_window_expired(self):
        order = self.make_order()
        self.backdate(order, minutes=6)
        self.auth_as("cliente", "cliente123")
        response = self.client.post(f"/api/v1/orders/{order.id}/cancel/", {"reason": "Tarde"}, format="json")
        self.assertEqual(response.status_code, 403)
        self.assertEqual(response.data["code"], "window_expired")

    @override_settings(ORDER_CANCELLATION_WINDOW_MINUTES=10)
    def test_cancellation_window_is_configurable(self):
        order = self.make_order()
        self.backdate(order, minutes=7)
        self.auth_as("cliente", "cliente123")
        response = self.client.post(f"/api/v1/orders/{order.id}/cancel/", {"reason": "Cambio de planes"}, format="json")
        self.assertEqual(response.status_code, 201)

    def test_customer_cannot_cancel_someone_elses_order(self):
        order = self.make_order()
        self.auth_as("cliente2", "cliente123")
        response = self.client.post(f"/api/v1/orders/{order.id}/cancel/", {"reason": "No es mio"}, format="json")
        self.assertEqual(response.status_code, 403)


class DelayAndRatingTests(OrderFlowTestCase):
    def test_courier_reports_delay_without_status_change(self):
        order = self.make_order(status=OrderStatus.DISPATCHED, delivery=self.courier_a)
        self.auth_as("rider_a", "rider123")
        response = self.client.post(
            f"/api/v1/orders/{order.id}/delay/",
            {"delay_minutes": 15, "reason": "Trafico en el bulevar"},
            format="json",
        )
        self.assertEqual(response.status_code, 201)
        self.assertEqual(response.data["delay_minutes"], 15)
        order.refresh_from_db()
        self.assertEqual(order.status, OrderStatus.DISPATCHED)
        notice = BranchNotification.objects.get(order=order, type=NotificationType.ORDER_DELAYED)
        self.assertIn("15 minutos", notice.message)

        again = self.client.post(
            f"/api/v1/orders/{order.id}/delay/",
            {"delay_minutes": 5, "reason": "Lluvia"},
            format="json",
        )
        self.assertEqual(again.status_code, 201)
        self.assertEqual(order.delays.count(), 2)

    def test_other_courier_cannot_report_delay(self):
        order = self.make_order(status=OrderStatus.DISPATCHED, delivery=self.courier_a)
        self.auth_as("rider_b", "rider123")
        response = self.client.post(
            f"/api/v1/orders/{order.id}/delay/",
            {"delay_minutes": 15, "reason": "Trafico"},
            format="json",
        )
        self.assertEqual(response.status_code, 403)

    def test_customer_rates_delivered_order_once(self):
        order = self.make_order(status=OrderStatus.DISPATCHED, delivery=self.courier_a)
        update_order_status(order.pk, OrderStatus.DELIVERED, self.rider_a_user)

        self.auth_as("cliente", "cliente123")
        first = self.client.post(f"/api/v1/orders/{order.id}/rate/", {"rating": 5, "reason": "Rapido"}, format="json")
        self.assertEqual(first.status_code, 201)
        self.assertEqual(first.data["courier"], self.courier_a.id)

        second = self.client.post(f"/api/v1/orders/{order.id}/rate/", {"rating": 1}, format="json")
        self.assertEqual(second.status_code, 409)

        out_of_range = self.client.post(f"/api/v1/orders/{order.id}/rate/", {"rating": 6}, format="json")
        self.assertEqual(out_of_range.status_code, 400)

    def test_cannot_rate_undelivered_order(self):
        order = self.make_order(status=OrderStatus.DISPATCHED, delivery=self.courier_a)
        self.auth_as("cliente", "cliente123")
        response = self.client.post(f"/api/v1/orders/{order.id}/rate/", {"rating": 4}, format="json")
        self.assertEqual(response.status_code, 409)
