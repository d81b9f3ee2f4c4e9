from datetime import timedelta
from decimal import Decimal
from unittest.mock import MagicMock, patch

from django.db import DatabaseError
from django.test import TestCase, override_settings
from django.utils import timezone

from accounts.models import User
from drivers.models import DriverProfile
from merchants.models import Merchant, Product
from notifications.models import Notification
from orders.models import Order, OrderStatus
from services.dispatch import DispatchCoordinator, GeoMatcher, NotificationFanout
from services.order_management import OrderAlreadyTakenError

# Pickup point in Mehsana
PICKUP = (23.5880, 72.3693)

DISPATCH_DEFAULTS = {
	"CANDIDATE_RADIUS_METERS": 5000,
	"BROADCAST_CITIES": [],
	"MIN_PRIMARY_CANDIDATES": 1,
	"ELIGIBLE_DRIVER_STATUSES": ["active"],
	"AVAILABLE_ORDERS_WINDOW_HOURS": 3,
}


class RecordingPublisher:
	"""Collects (group, payload) pairs instead of talking to a channel layer."""

	def __init__(self):
		self.sent = []

	def publish(self, group, payload):
		self.sent.append((group, payload))
		return True

	def publish_many(self, groups, payload):
		return sum(1 for group in groups if self.publish(group, payload))

	def groups(self, event_type=None):
		return [group for group, payload in self.sent if event_type is None or payload["type"] == event_type]


def make_driver(username, lat=None, lon=None, city="", online=True, status="active", push_token=""):
	user = User.objects.create_user(username=username, password="driver1234", role="driver")
	profile = DriverProfile.objects.create(
		user=user,
		vehicle_number=f"GJ-02-{username[-2:].upper()}",
		status=status,
		is_online=online,
		city=city,
		current_latitude=lat,
		current_longitude=lon,
		push_token=push_token,
	)
	return user, profile


class GeoMatcherTests(TestCase):
	def setUp(self):
		self.matcher = GeoMatcher()

	@override_settings(DISPATCH={**DISPATCH_DEFAULTS, "BROADCAST_CITIES": ["Mehsana"]})
	def test_mehsana_scenario(self):
		# 2 km north, variant spelling
		_, near = make_driver("near_driver", PICKUP[0] + 0.018, PICKUP[1], city="Mahesana")
		# ~50 km north, same city
		_, far = make_driver("far_driver", PICKUP[0] + 0.45, PICKUP[1], city="Mehsana")
		# Offline, right next to the merchant
		_, offline = make_driver("off_driver", PICKUP[0], PICKUP[1], city="Mehsana", online=False)

		candidates = self.matcher.find_candidates(PICKUP[0], PICKUP[1], "Mehsana")
		ids = [profile.pk for profile in candidates]

		self.assertCountEqual(ids, [near.pk, far.pk])
		self.assertNotIn(offline.pk, ids)
		self.assertEqual(ids[0], near.pk)

	def test_nearby_match_skips_fallback_by_default(self):
		_, near = make_driver("near_driver", PICKUP[0] + 0.018, PICKUP[1], city="Mahesana")
		make_driver("far_driver", PICKUP[0] + 0.45, PICKUP[1], city="Mehsana")

		candidates = self.matcher.find_candidates(PICKUP[0], PICKUP[1], "Mehsana")

		self.assertEqual([profile.pk for profile in candidates], [near.pk])

	def test_fallback_broadens_to_whole_city_when_nobody_is_near(self):
		_, far = make_driver("far_driver", PICKUP[0] + 0.45, PICKUP[1], city="Mehesana")
		make_driver("other_city", PICKUP[0] + 0.45, PICKUP[1], city="Surat")

		candidates = self.matcher.find_candidates(PICKUP[0], PICKUP[1], "Mehsana")

		self.assertEqual([profile.pk for profile in candidates], [far.pk])

	def test_city_filter_skipped_when_driver_has_no_city(self):
		_, nearby = make_driver("no_city", PICKUP[0] + 0.01, PICKUP[1], city="")
		_, other = make_driver("other_city", PICKUP[0] + 0.01, PICKUP[1], city="Surat")

		ids = [profile.pk for profile in self.matcher.find_candidates(PICKUP[0], PICKUP[1], "Mehsana")]

		self.assertIn(nearby.pk, ids)
		self.assertNotIn(other.pk, ids)

	def test_ineligible_drivers_are_never_candidates(self):
		make_driver("suspended", PICKUP[0], PICKUP[1], city="Mehsana", status="suspended")
		make_driver("blocked", PICKUP[0], PICKUP[1], city="Mehsana", status="blocked")
		make_driver("pending", PICKUP[0], PICKUP[1], city="Mehsana", status="pending")

		self.assertEqual(self.matcher.find_candidates(PICKUP[0], PICKUP[1], "Mehsana"), [])

	def test_no_city_and_nobody_near_returns_empty(self):
		make_driver("far_driver", PICKUP[0] + 0.45, PICKUP[1], city="Mehsana")

		self.assertEqual(self.matcher.find_candidates(PICKUP[0], PICKUP[1], ""), [])


class NotificationFanoutTests(TestCase):
	def setUp(self):
		self.customer = User.objects.create_user(username="customer", password="pass1234", role="customer")
		self.merchant = Merchant.objects.create(
			name="Shree Bhojnalay", city="Mehsana", latitude=PICKUP[0], longitude=PICKUP[1]
		)
		self.order = Order.objects.create(
			customer=self.customer,
			merchant=self.merchant,
			item_total=Decimal("100.00"),
			delivery_fee=Decimal("40.00"),
			taxes=Decimal("5.00"),
			grand_total=Decimal("145.00"),
			driver_payout=Decimal("70.00"),
			pickup_latitude=PICKUP[0],
			pickup_longitude=PICKUP[1],
			city_token="mehsana",
		)
		_, self.with_token = make_driver("with_token", city="Mehsana", push_token="ExponentPushToken[abc123]")
		_, self.without_token = make_driver("no_token", city="Mehsana")
		self.publisher = RecordingPublisher()
		self.push_sender = MagicMock()
		self.fanout = NotificationFanout(self.publisher, push_sender=self.push_sender)

	def test_offer_reaches_candidates_city_and_push(self):
		result = self.fanout.offer(self.order, [self.with_token, self.without_token], "mehsana")

		offer_groups = self.publisher.groups("order_offer")
		self.assertIn(f"driver_{self.with_token.user_id}", offer_groups)
		self.assertIn(f"driver_{self.without_token.user_id}", offer_groups)
		self.assertIn("city_mehsana", offer_groups)
		self.assertTrue(result.city_broadcast)
		self.assertEqual(result.realtime_sent, 2)

		# Only the driver with a push token gets a push and a stored notification
		self.assertEqual(result.push_queued, 1)
		payloads = self.push_sender.call_args[0][0]
		self.assertEqual(payloads[0]["to"], "ExponentPushToken[abc123]")
		self.assertEqual(payloads[0]["data"]["order_id"], self.order.id)
		self.assertEqual(payloads[0]["data"]["delivery_fee"], "40.00")

		notification = Notification.objects.get()
		self.assertEqual(notification.recipient_kind, Notification.RECIPIENT_DRIVER)
		self.assertEqual(notification.recipient_id, self.with_token.pk)
		self.assertEqual(notification.resolve_recipient(), self.with_token)

	def test_push_failure_does_not_break_offer(self):
		self.push_sender.side_effect = RuntimeError("broker down")

		result = self.fanout.offer(self.order, [self.with_token], "mehsana")

		self.assertEqual(result.push_queued, 0)
		self.assertEqual(result.realtime_sent, 1)

	def test_notification_persistence_failure_does_not_block_delivery(self):
		with patch.object(Notification.objects, "bulk_create", side_effect=DatabaseError("disk full")):
			result = self.fanout.offer(self.order, [self.with_token], "mehsana")

		self.assertEqual(result.notifications_saved, 0)
		self.assertEqual(result.push_queued, 1)
		self.push_sender.assert_called_once()

	def test_withdraw_goes_to_all_drivers(self):
		self.assertTrue(self.fanout.withdraw(self.order.id, "taken"))

		group, payload = self.publisher.sent[-1]
		self.assertEqual(group, "drivers")
		self.assertEqual(payload, {"type": "order_withdrawn", "order_id": self.order.id, "reason": "taken"})

	def test_notify_customer_uses_user_recipient(self):
		self.customer.push_token = "ExponentPushToken[cust]"
		self.customer.save(update_fields=["push_token"])

		self.fanout.notify_customer(self.order, "order_accepted", "Order accepted", "On the way")

		self.assertCountEqual(
			self.publisher.groups("order_accepted"),
			[f"order_{self.order.id}", f"user_{self.customer.id}"],
		)
		notification = Notification.objects.get()
		self.assertEqual(notification.recipient_kind, Notification.RECIPIENT_USER)
		self.assertEqual(notification.resolve_recipient(), self.customer)
		self.push_sender.assert_called_once()


class DispatchCoordinatorTests(TestCase):
	def setUp(self):
		self.customer = User.objects.create_user(username="customer", password="pass1234", role="customer")
		self.merchant = Merchant.objects.create(
			name="Shree Bhojnalay", city="Mahesana", latitude=PICKUP[0], longitude=PICKUP[1]
		)
		self.thali = Product.objects.create(merchant=self.merchant, name="Gujarati Thali", price=Decimal("120.00"))
		self.driver_a, self.profile_a = make_driver("driver_a", PICKUP[0] + 0.01, PICKUP[1], city="Mehsana")
		self.driver_b, self.profile_b = make_driver("driver_b", PICKUP[0] + 0.02, PICKUP[1], city="Mehsana")
		self.publisher = RecordingPublisher()
		self.coordinator = DispatchCoordinator(
			self.publisher,
			fanout=NotificationFanout(self.publisher, push_sender=MagicMock()),
		)

	def place(self):
		return self.coordinator.place_order(
			self.customer,
			self.merchant.id,
			[{"product_id": self.thali.id, "quantity": 1}],
			{"street": "Modhera Road", "city": "Mehsana"},
		)

	def test_place_order_offers_to_candidates(self):
		result = self.place()

		self.assertEqual(result.extra["driver_candidates"], 2)
		self.assertEqual(result.order.status, OrderStatus.PLACED)
		self.assertEqual(result.order.city_token, "mehsana")
		self.assertIn("city_mehsana", self.publisher.groups("order_offer"))

	def test_place_order_survives_fanout_failure(self):
		with patch.object(self.coordinator.fanout, "offer", side_effect=RuntimeError("boom")):
			result = self.place()

		self.assertTrue(result.success)
		self.assertTrue(Order.objects.filter(pk=result.order.id).exists())

	def test_accept_withdraws_order_from_everyone(self):
		order = self.place().order

		self.coordinator.accept(self.driver_a, order.id)

		withdrawn = [p for g, p in self.publisher.sent if p["type"] == "order_withdrawn"]
		self.assertEqual(withdrawn, [{"type": "order_withdrawn", "order_id": order.id, "reason": "taken"}])
		self.assertIn(f"user_{self.customer.id}", self.publisher.groups("order_accepted"))

		with self.assertRaises(OrderAlreadyTakenError) as ctx:
			self.coordinator.accept(self.driver_b, order.id)
		self.assertEqual(ctx.exception.winner_id, self.driver_a.id)

	def test_cancel_withdraws_order(self):
		order = self.place().order

		self.coordinator.cancel(self.customer, order.id, "Changed my mind")

		withdrawn = [p for g, p in self.publisher.sent if p["type"] == "order_withdrawn"]
		self.assertEqual(withdrawn[0]["reason"], "cancelled")
		self.assertIn(f"order_{order.id}", self.publisher.groups("order_cancelled"))

	def test_available_orders_rederived_per_driver(self):
		order = self.place().order
		_, far_other_city = make_driver("surat_driver", 21.17, 72.83, city="Surat")

		self.assertEqual([o.id for o in self.coordinator.available_orders(self.driver_a)], [order.id])
		self.assertEqual(self.coordinator.available_orders(far_other_city.user), [])

		# Offline drivers see nothing
		self.profile_b.is_online = False
		self.profile_b.save(update_fields=["is_online"])
		self.assertEqual(self.coordinator.available_orders(self.driver_b), [])

	def test_available_orders_include_far_driver_in_same_city(self):
		order = self.place().order
		far_user, _ = make_driver("far_driver", PICKUP[0] + 0.45, PICKUP[1], city="Mehesana")

		self.assertEqual([o.id for o in self.coordinator.available_orders(far_user)], [order.id])

	def test_available_orders_respect_recency_window(self):
		order = self.place().order
		Order.objects.filter(pk=order.id).update(created_at=timezone.now() - timedelta(hours=4))

		self.assertEqual(self.coordinator.available_orders(self.driver_a), [])

	def test_accepted_orders_leave_available_list(self):
		order = self.place().order
		self.coordinator.accept(self.driver_a, order.id)

		self.assertEqual(self.coordinator.available_orders(self.driver_b), [])
