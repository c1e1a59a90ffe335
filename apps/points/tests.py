from decimal import Decimal

from django.contrib.auth import get_user_model
from rest_framework.exceptions import ValidationError
from rest_framework.test import APITestCase

from apps.accounts.models import Branch
from apps.audit.models import AuditLog
from apps.common.exceptions import InsufficientBalance
from apps.orders.models import DeliveryType, Order, OrderStatus
from apps.points.models import PointsEntry, PointsEntryType, PointsSettings, UserPoints
from apps.points.services import add_points, earn_points_from_order, get_user_points, redeem_points

User = get_user_model()


class PointsTestCase(APITestCase):
    def setUp(self):
        self.branch = Branch.objects.create(code="CEN", name="Centro")
        self.admin = User.objects.create_user(username="admin", password="admin123", role="ADMIN")
        self.staff = User.objects.create_user(
            username="sucursal", password="sucursal123", role="BRANCH", branch=self.branch
        )
        self.customer = User.objects.create_user(username="cliente", password="cliente123", role="CUSTOMER")
        self.counter = 0

    def auth_as(self, username, password):
        response = self.client.post(
            "/api/v1/auth/token/",
            {"username": username, "password": password},
            format="json",
        )
        self.client.credentials(HTTP_AUTHORIZATION=f"Bearer {response.data['access']}")

    def delivered_order(self, total):
        self.counter += 1
        return Order.objects.create(
            order_number=f"FRY-{self.counter:06d}",
            branch=self.branch,
            customer=self.customer,
            delivery_type=DeliveryType.PICKUP,
            status=OrderStatus.DELIVERED,
            subtotal=Decimal(total),
            total=Decimal(total),
        )


class EarnAndRedeemTests(PointsTestCase):
    def test_delivered_order_earns_floor_of_total(self):
        self.assertEqual(earn_points_from_order(self.delivered_order("250.00")), 250)
        self.assertEqual(earn_points_from_order(self.delivered_order("49.99")), 49)

        points = UserPoints.objects.get(user=self.customer)
        self.assertEqual(points.available_points, 299)
        self.assertEqual(points.total_points, 299)
        self.assertEqual(PointsEntry.objects.filter(entry_type=PointsEntryType.EARN).count(), 2)

    def test_order_awards_points_once(self):
        order = self.delivered_order("250.00")
        earn_points_from_order(order)
        order.refresh_from_db()
        self.assertTrue(order.points_awarded)
        self.assertEqual(earn_points_from_order(order), 0)
        self.assertEqual(get_user_points(self.customer).total_points, 250)

    def test_undelivered_order_earns_nothing(self):
        order = self.delivered_order("120.00")
        Order.objects.filter(pk=order.pk).update(status=OrderStatus.DISPATCHED)
        order.refresh_from_db()
        self.assertEqual(earn_points_from_order(order), 0)
        self.assertFalse(UserPoints.objects.filter(user=self.customer, total_points__gt=0).exists())

    def test_redeem_reduces_available_only(self):
        earn_points_from_order(self.delivered_order("250.00"))

        self.assertEqual(redeem_points(user=self.customer, amount=100), 10)

        points = UserPoints.objects.get(user=self.customer)
        self.assertEqual(points.available_points, 150)
        self.assertEqual(points.total_points, 250)
        entry = PointsEntry.objects.get(entry_type=PointsEntryType.REDEEM)
        self.assertEqual(entry.points_delta, -100)
        self.assertTrue(AuditLog.objects.filter(action="points.redeem").exists())

    def test_insufficient_balance_leaves_account_untouched(self):
        add_points(user=self.customer, amount=50)
        with self.assertRaises(InsufficientBalance):
            redeem_points(user=self.customer, amount=80)

        points = UserPoints.objects.get(user=self.customer)
        self.assertEqual(points.available_points, 50)
        self.assertEqual(points.total_points, 50)
        self.assertFalse(PointsEntry.objects.filter(entry_type=PointsEntryType.REDEEM).exists())

    def test_total_points_never_decrease(self):
        add_points(user=self.customer, amount=300)
        totals = [get_user_points(self.customer).total_points]
        for amount in (100, 50, 150):
            redeem_points(user=self.customer, amount=amount)
            totals.append(get_user_points(self.customer).total_points)
        earn_points_from_order(self.delivered_order("80.00"))
        totals.append(get_user_points(self.customer).total_points)

        self.assertEqual(totals, sorted(totals))
        points = get_user_points(self.customer)
        self.assertEqual(points.available_points, 80)
        self.assertLessEqual(points.available_points, points.total_points)

    def test_non_positive_amounts_are_rejected(self):
        for amount in (0, -5):
            with self.assertRaises(ValidationError):
                add_points(user=self.customer, amount=amount)
            with self.assertRaises(ValidationError):
                redeem_points(user=self.customer, amount=amount)

    def test_disabled_program_neither_earns_nor_redeems(self):
        add_points(user=self.customer, amount=100)
        policy = PointsSettings.load()
        policy.enabled = False
        policy.save()

        self.assertEqual(earn_points_from_order(self.delivered_order("250.00")), 0)
        with self.assertRaises(ValidationError):
            redeem_points(user=self.customer, amount=10)
        self.assertEqual(get_user_points(self.customer).available_points, 100)

    def test_conversion_rate_drives_redeem_value(self):
        add_points(user=self.customer, amount=100)
        PointsSettings.objects.filter(pk=PointsSettings.load().pk).update(conversion_rate=20)
        self.assertEqual(redeem_points(user=self.customer, amount=100), 5)


class PointsApiTests(PointsTestCase):
    def test_customer_reads_own_balance(self):
        earn_points_from_order(self.delivered_order("250.00"))
        self.auth_as("cliente", "cliente123")
        response = self.client.get("/api/v1/points/me/")
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.data["available_points"], 250)
        self.assertEqual(response.data["recent_entries"][0]["order_number"], "FRY-000001")

    def test_customer_cannot_read_other_balances(self):
        self.auth_as("cliente", "cliente123")
        response = self.client.get(f"/api/v1/points/{self.admin.id}/")
        self.assertEqual(response.status_code, 403)

    def test_admin_adjusts_balance(self):
        self.auth_as("admin", "admin123")
        response = self.client.post(
            f"/api/v1/points/{self.customer.id}/adjust/",
            {"amount": 40, "note": "Compensacion por retraso"},
            format="json",
        )
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.data["available_points"], 40)
        self.assertEqual(response.data["total_points"], 40)
        entry = PointsEntry.objects.get(user=self.customer)
        self.assertEqual(entry.entry_type, PointsEntryType.ADJUSTMENT)
        self.assertEqual(entry.created_by, self.admin)
        self.assertTrue(AuditLog.objects.filter(action="points.adjust").exists())

    def test_branch_cannot_adjust_balance(self):
        self.auth_as("sucursal", "sucursal123")
        response = self.client.post(f"/api/v1/points/{self.customer.id}/adjust/", {"amount": 40}, format="json")
        self.assertEqual(response.status_code, 403)

    def test_settings_update_is_admin_only(self):
        payload = {"enabled": True, "conversion_rate": 25, "redeemable_categories": ["postres", "bebidas"]}

        self.auth_as("cliente", "cliente123")
        self.assertEqual(self.client.get("/api/v1/points-settings/").status_code, 200)
        self.assertEqual(self.client.put("/api/v1/points-settings/", payload, format="json").status_code, 403)

        self.auth_as("admin", "admin123")
        response = self.client.put("/api/v1/points-settings/", payload, format="json")
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.data["conversion_rate"], 25)
        self.assertEqual(PointsSettings.load().redeemable_categories, ["postres", "bebidas"])
        self.assertTrue(AuditLog.objects.filter(action="points.settings.update").exists())

    def test_settings_reject_zero_conversion_rate(self):
        self.auth_as("admin", "admin123")
        response = self.client.patch("/api/v1/points-settings/", {"conversion_rate": 0}, format="json")
        self.assertEqual(response.status_code, 400)
