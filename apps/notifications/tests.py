from django.contrib.auth import get_user_model
from django.core.exceptions import ValidationError
from rest_framework.test import APITestCase

from apps.accounts.models import Branch
from apps.notifications.models import BranchNotification, NotificationType
from apps.notifications.services import notify_branch, unread_count
from apps.orders.models import DeliveryType, Order

User = get_user_model()


class BranchNotificationApiTests(APITestCase):
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

        self.order = self.make_order("FRY-000001", self.branch)
        self.other_order = self.make_order("FRY-000002", self.other_branch)
        self.delayed = notify_branch(
            order=self.order,
            type=NotificationType.ORDER_DELAYED,
            title="Retraso en Entrega",
            message="El repartidor reporta un retraso de 10 minutos en el pedido FRY-000001",
        )
        self.cancelled = notify_branch(
            order=self.order,
            type=NotificationType.ORDER_CANCELLED,
            title="Pedido Cancelado",
            message="El cliente cancelo el pedido FRY-000001. Motivo: Tarde",
        )
        notify_branch(
            order=self.other_order,
            type=NotificationType.ORDER_REJECTED,
            title="Pedido Rechazado",
            message="La sucursal rechazo el pedido FRY-000002. Motivo: Cerrado",
        )

    def make_order(self, number, branch):
        return Order.objects.create(
            order_number=number,
            branch=branch,
            customer=self.customer,
            delivery_type=DeliveryType.PICKUP,
        )

    def auth_as(self, username, password):
        response = self.client.post(
            "/api/v1/auth/token/",
            {"username": username, "password": password},
            format="json",
        )
        self.client.credentials(HTTP_AUTHORIZATION=f"Bearer {response.data['access']}")

    def test_staff_only_sees_own_branch(self):
        self.auth_as("sucursal", "sucursal123")
        response = self.client.get("/api/v1/notifications/")
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.data["count"], 2)
        self.assertEqual({row["order_number"] for row in response.data["results"]}, {"FRY-000001"})

        foreign = BranchNotification.objects.get(branch=self.other_branch)
        self.assertEqual(self.client.get(f"/api/v1/notifications/{foreign.id}/").status_code, 404)

    def test_admin_filters_by_branch(self):
        self.auth_as("admin", "admin123")
        self.assertEqual(self.client.get("/api/v1/notifications/").data["count"], 3)
        response = self.client.get(f"/api/v1/notifications/?branch={self.other_branch.id}")
        self.assertEqual(response.data["count"], 1)

    def test_customer_has_no_access(self):
        self.auth_as("cliente", "cliente123")
        self.assertEqual(self.client.get("/api/v1/notifications/").status_code, 403)

    def test_mark_one_read(self):
        self.auth_as("sucursal", "sucursal123")
        response = self.client.post(f"/api/v1/notifications/{self.delayed.id}/read/", {}, format="json")
        self.assertEqual(response.status_code, 200)
        self.assertTrue(response.data["read"])

        unread = self.client.get("/api/v1/notifications/?unread=true")
        self.assertEqual([row["id"] for row in unread.data["results"]], [str(self.cancelled.id)])
        self.assertEqual(self.client.get("/api/v1/notifications/unread-count/").data, {"unread": 1})

    def test_read_all_only_touches_own_branch(self):
        self.auth_as("sucursal", "sucursal123")
        response = self.client.post("/api/v1/notifications/read-all/", {}, format="json")
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.data, {"updated": 2})
        self.assertEqual(unread_count(self.branch), 0)
        self.assertEqual(unread_count(self.other_branch), 1)

    def test_admin_needs_branch_for_unread_count(self):
        self.auth_as("admin", "admin123")
        self.assertEqual(self.client.get("/api/v1/notifications/unread-count/").status_code, 400)
        response = self.client.get(f"/api/v1/notifications/unread-count/?branch={self.branch.id}")
        self.assertEqual(response.data, {"unread": 2})

    def test_notifications_are_append_only(self):
        self.delayed.title = "Otro titulo"
        with self.assertRaises(ValidationError):
            self.delayed.save()

        self.delayed.read = True
        self.delayed.save(update_fields=["read"])
        self.delayed.refresh_from_db()
        self.assertTrue(self.delayed.read)
        self.assertEqual(self.delayed.title, "Retraso en Entrega")
