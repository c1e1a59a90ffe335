from django.contrib.auth import get_user_model
from rest_framework.test import APITestCase

from apps.accounts.models import Branch
from apps.audit.models import AuditLog
from apps.couriers.models import Courier, CourierStatus
from apps.orders.models import DeliveryRating, DeliveryType, Order, OrderStatus

User = get_user_model()


class CourierApiTests(APITestCase):
    def setUp(self):
        self.branch = Branch.objects.create(code="CEN", name="Centro")
        self.other_branch = Branch.objects.create(code="NOR", name="Norte")
        self.admin = User.objects.create_user(username="admin", password="admin123", role="ADMIN")
        self.staff = User.objects.create_user(
            username="sucursal", password="sucursal123", role="BRANCH", branch=self.branch
        )
        self.customer = User.objects.create_user(username="cliente", password="cliente123", role="CUSTOMER")
        self.rider_user = User.objects.create_user(
            username="rider", password="rider123", role="DELIVERY", branch=self.branch
        )
        self.courier = Courier.objects.create(
            user=self.rider_user,
            branch=self.branch,
            name="Juan Repartidor",
            status=CourierStatus.APPROVED,
            is_active=True,
        )
        north_user = User.objects.create_user(username="rider_norte", password="rider123", role="DELIVERY")
        self.north_courier = Courier.objects.create(
            user=north_user,
            branch=self.other_branch,
            name="Pedro Norte",
            status=CourierStatus.APPROVED,
        )

    def auth_as(self, username, password):
        response = self.client.post(
            "/api/v1/auth/token/",
            {"username": username, "password": password},
            format="json",
        )
        self.client.credentials(HTTP_AUTHORIZATION=f"Bearer {response.data['access']}")

    def delivered_order(self, number):
        return Order.objects.create(
            order_number=number,
            branch=self.branch,
            customer=self.customer,
            delivery_type=DeliveryType.DELIVERY,
            delivery_address="Centro",
            status=OrderStatus.DELIVERED,
            delivery=self.courier,
        )

    def test_delivery_code_is_generated(self):
        self.assertEqual(len(self.courier.delivery_code), 6)
        self.assertTrue(self.courier.delivery_code.isdigit())
        self.assertNotEqual(self.courier.delivery_code, self.north_courier.delivery_code)

    def test_customer_registers_and_admin_approves(self):
        self.auth_as("cliente", "cliente123")
        response = self.client.post(
            "/api/v1/couriers/register/",
            {"branch": str(self.branch.id), "name": "Maria Ruiz", "phone": "6121234567", "vehicle_type": "bicycle"},
            format="json",
        )
        self.assertEqual(response.status_code, 201)
        self.assertEqual(response.data["status"], "pending")
        self.assertFalse(response.data["is_active"])
        courier_id = response.data["id"]

        duplicate = self.client.post(
            "/api/v1/couriers/register/",
            {"branch": str(self.branch.id), "name": "Maria Ruiz"},
            format="json",
        )
        self.assertEqual(duplicate.status_code, 400)

        self.auth_as("admin", "admin123")
        approved = self.client.post(f"/api/v1/couriers/{courier_id}/approve/", {}, format="json")
        self.assertEqual(approved.status_code, 200)
        self.assertEqual(approved.data["status"], "approved")

        self.customer.refresh_from_db()
        self.assertEqual(self.customer.role, "DELIVERY")
        self.assertEqual(self.customer.branch_id, self.branch.id)
        self.assertTrue(AuditLog.objects.filter(action="courier.approve", entity_id=courier_id).exists())

        again = self.client.post(f"/api/v1/couriers/{courier_id}/approve/", {}, format="json")
        self.assertEqual(again.status_code, 409)

    def test_branch_cannot_approve(self):
        pending_user = User.objects.create_user(username="nuevo", password="nuevo123", role="CUSTOMER")
        pending = Courier.objects.create(user=pending_user, branch=self.branch, name="Nuevo")
        self.auth_as("sucursal", "sucursal123")
        response = self.client.post(f"/api/v1/couriers/{pending.id}/approve/", {}, format="json")
        self.assertEqual(response.status_code, 403)

    def test_branch_lists_only_own_couriers(self):
        self.auth_as("sucursal", "sucursal123")
        response = self.client.get("/api/v1/couriers/")
        self.assertEqual(response.status_code, 200)
        self.assertEqual([row["name"] for row in response.data["results"]], ["Juan Repartidor"])

        on_duty = self.client.get("/api/v1/couriers/?on_duty=true")
        self.assertEqual(on_duty.data["count"], 1)

    def test_average_rating_from_customer_ratings(self):
        for number, score in (("FRY-000001", 5), ("FRY-000002", 4), ("FRY-000003", 4)):
            DeliveryRating.objects.create(
                order=self.delivered_order(number),
                courier=self.courier,
                customer=self.customer,
                rating=score,
            )
        self.auth_as("admin", "admin123")
        response = self.client.get(f"/api/v1/couriers/{self.courier.id}/")
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.data["average_rating"], 4.33)
        self.assertEqual(response.data["rating_count"], 3)
        self.assertEqual(response.data["active_orders"], 0)

        unrated = self.client.get(f"/api/v1/couriers/{self.north_courier.id}/")
        self.assertIsNone(unrated.data["average_rating"])

    def test_courier_reads_own_profile(self):
        self.auth_as("rider", "rider123")
        response = self.client.get("/api/v1/couriers/me/")
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.data["delivery_code"], self.courier.delivery_code)

        self.assertEqual(self.client.get("/api/v1/couriers/").status_code, 403)

    def test_duty_toggle(self):
        self.auth_as("rider", "rider123")
        off = self.client.post("/api/v1/couriers/me/duty/", {}, format="json")
        self.assertEqual(off.status_code, 200)
        self.assertFalse(off.data["is_active"])

        on = self.client.post("/api/v1/couriers/me/duty/", {"is_active": True}, format="json")
        self.assertTrue(on.data["is_active"])

    def test_unapproved_courier_cannot_go_on_duty(self):
        Courier.objects.filter(pk=self.courier.pk).update(status=CourierStatus.PENDING, is_active=False)
        self.auth_as("rider", "rider123")
        response = self.client.post("/api/v1/couriers/me/duty/", {"is_active": True}, format="json")
        self.assertEqual(response.status_code, 409)

    def test_reject_blocked_while_carrying_orders(self):
        Order.objects.create(
            order_number="FRY-000010",
            branch=self.branch,
            customer=self.customer,
            delivery_type=DeliveryType.DELIVERY,
            delivery_address="Centro",
            status=OrderStatus.DISPATCHED,
            delivery=self.courier,
        )
        self.auth_as("admin", "admin123")
        blocked = self.client.post(f"/api/v1/couriers/{self.courier.id}/reject/", {}, format="json")
        self.assertEqual(blocked.status_code, 409)

        rejected = self.client.post(
            f"/api/v1/couriers/{self.north_courier.id}/reject/",
            {"reason": "Documentos vencidos"},
            format="json",
        )
        self.assertEqual(rejected.status_code, 200)
        self.assertEqual(rejected.data["status"], "rejected")
        self.assertFalse(rejected.data["is_active"])
