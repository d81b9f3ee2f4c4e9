import threading
from decimal import Decimal

from django.db import connections
from django.test import TestCase, TransactionTestCase
from rest_framework.test import APIRequestFactory, force_authenticate

from accounts.models import User
from drivers.models import DriverProfile
from merchants.models import Merchant, Product
from services.order_management import (
	DriverNotEligibleError,
	InvalidOrderError,
	InvalidTransitionError,
	MerchantNotFoundError,
	NotAuthorizedError,
	OrderAlreadyTakenError,
	OrderNotFoundError,
	accept_order,
	advance_order_status,
	cancel_order,
	compute_bill,
	create_order,
)
from .models import Order, OrderStatus
from .views import accept_order as accept_order_view
from .views import available_orders, cancel_order as cancel_order_view, orders_collection, update_order_status


def make_driver(username, status='active', online=True, lat=23.5890, lon=72.3700, city='Mehsana'):
	user = User.objects.create_user(
		username=username,
		password='driver1234',
		role='driver',
		first_name=username.title(),
		phone_number='90000%05d' % User.objects.count()
	)
	DriverProfile.objects.create(
		user=user,
		vehicle_number='GJ-02-%s' % username[-2:].upper(),
		status=status,
		is_online=online,
		city=city,
		current_latitude=lat,
		current_longitude=lon,
	)
	return user


class OrderFixtureMixin:
	def setUp(self):
		self.factory = APIRequestFactory()
		self.customer = User.objects.create_user(
			username='customer',
			password='pass1234',
			role='customer',
			phone_number='9100000000'
		)
		self.owner = User.objects.create_user(username='owner', password='pass1234', role='merchant')
		self.merchant = Merchant.objects.create(
			owner=self.owner,
			name='Shree Bhojnalay',
			city='Mehsana',
			latitude=23.5880,
			longitude=72.3693,
		)
		self.thali = Product.objects.create(merchant=self.merchant, name='Gujarati Thali', price=Decimal('50.00'))
		self.lassi = Product.objects.create(merchant=self.merchant, name='Lassi', price=Decimal('125.00'))
		self.driver_one = make_driver('driver_one')
		self.driver_two = make_driver('driver_two')

	def place_order(self, items=None, payment_method='COD'):
		items = items or [{'product_id': self.thali.id, 'quantity': 2}]
		return create_order(
			self.customer,
			self.merchant.id,
			items,
			{'street': 'Modhera Road', 'city': 'Mehsana', 'latitude': 23.60, 'longitude': 72.38},
			payment_method,
		).order


class OrderCreationTests(OrderFixtureMixin, TestCase):
	def test_bill_below_free_delivery_threshold(self):
		order = self.place_order()

		self.assertEqual(order.item_total, Decimal('100.00'))
		self.assertEqual(order.delivery_fee, Decimal('40.00'))
		self.assertEqual(order.taxes, Decimal('5.00'))
		self.assertEqual(order.grand_total, Decimal('145.00'))
		self.assertEqual(order.driver_payout, Decimal('70.00'))
		self.assertEqual(order.status, OrderStatus.PLACED)
		self.assertIsNone(order.driver_id)
		self.assertEqual(order.city_token, 'mehsana')
		self.assertEqual(order.timeline.count(), 1)

	def test_bill_above_threshold_rounds_tax(self):
		bill = compute_bill(Decimal('250.00'))

		self.assertEqual(bill['delivery_fee'], Decimal('0.00'))
		self.assertEqual(bill['taxes'], Decimal('13.00'))
		self.assertEqual(bill['grand_total'], Decimal('263.00'))
		self.assertEqual(bill['driver_payout'], Decimal('30.00'))

	def test_items_snapshot_catalog_price(self):
		order = self.place_order([{'product_id': self.lassi.id, 'quantity': 2}])
		self.lassi.price = Decimal('999.00')
		self.lassi.save()

		item = order.items.get()
		self.assertEqual(item.unit_price, Decimal('125.00'))
		self.assertEqual(item.line_total, Decimal('250.00'))
		self.assertEqual(item.name, 'Lassi')

	def test_payment_status_follows_method(self):
		cod = self.place_order()
		upi = self.place_order(payment_method='UPI')

		self.assertEqual(cod.payment_status, 'pending')
		self.assertEqual(cod.transaction_id, '')
		self.assertEqual(upi.payment_status, 'completed')
		self.assertTrue(upi.transaction_id.startswith('TXN'))

	def test_rejects_bad_input(self):
		with self.assertRaises(MerchantNotFoundError):
			create_order(self.customer, 9999, [{'product_id': self.thali.id}])

		with self.assertRaises(InvalidOrderError):
			create_order(self.customer, self.merchant.id, [])

		other = Merchant.objects.create(name='Other', city='Surat')
		foreign = Product.objects.create(merchant=other, name='Khaman', price=Decimal('30.00'))
		with self.assertRaises(InvalidOrderError):
			create_order(self.customer, self.merchant.id, [{'product_id': foreign.id}])

		self.thali.is_available = False
		self.thali.save()
		with self.assertRaises(InvalidOrderError):
			create_order(self.customer, self.merchant.id, [{'product_id': self.thali.id}])

		self.merchant.is_open = False
		self.merchant.save()
		with self.assertRaises(InvalidOrderError):
			create_order(self.customer, self.merchant.id, [{'product_id': self.lassi.id}])


class OrderAcceptTests(OrderFixtureMixin, TestCase):
	def test_first_accept_wins_second_is_told_who_won(self):
		order = self.place_order()
		# Both drivers saw the order while it was still unassigned
		stale_view = Order.objects.get(pk=order.id)
		self.assertIsNone(stale_view.driver_id)

		result = accept_order(self.driver_one, order.id)
		self.assertTrue(result.success)

		with self.assertRaises(OrderAlreadyTakenError) as ctx:
			accept_order(self.driver_two, stale_view.id)

		self.assertEqual(ctx.exception.winner_id, self.driver_one.id)
		self.assertEqual(ctx.exception.code, 'order_already_taken')

		order.refresh_from_db()
		self.assertEqual(order.driver_id, self.driver_one.id)
		self.assertEqual(order.status, OrderStatus.CONFIRMED)

	def test_exactly_one_of_many_drivers_wins(self):
		order = self.place_order()
		drivers = [self.driver_one, self.driver_two] + [make_driver('racer_%02d' % i) for i in range(6)]

		winners, losers = [], []
		for driver in drivers:
			try:
				accept_order(driver, order.id)
				winners.append(driver.id)
			except OrderAlreadyTakenError as exc:
				losers.append(exc.winner_id)

		self.assertEqual(len(winners), 1)
		self.assertEqual(len(losers), len(drivers) - 1)
		self.assertEqual(set(losers), set(winners))

		order.refresh_from_db()
		self.assertEqual(order.driver_id, winners[0])
		self.assertEqual(order.timeline.filter(status=OrderStatus.CONFIRMED).count(), 1)

	def test_accept_snapshots_driver_details(self):
		order = self.place_order()
		accept_order(self.driver_one, order.id)

		self.driver_one.phone_number = '9999999999'
		self.driver_one.save()
		order.refresh_from_db()

		self.assertEqual(order.driver_name, 'Driver_One')
		self.assertNotEqual(order.driver_phone, '9999999999')
		self.assertEqual(order.driver_vehicle_number, 'GJ-02-NE')
		self.assertIsNotNone(order.accepted_at)

	def test_accept_unknown_or_cancelled_order(self):
		with self.assertRaises(OrderNotFoundError):
			accept_order(self.driver_one, 424242)

		order = self.place_order()
		cancel_order(self.customer, order.id)
		with self.assertRaises(InvalidTransitionError):
			accept_order(self.driver_one, order.id)

	def test_accept_view_returns_structured_conflict(self):
		order = self.place_order()

		request = self.factory.post('/api/orders/%d/accept/' % order.id)
		force_authenticate(request, user=self.driver_one)
		response = accept_order_view(request, order_id=order.id)
		self.assertEqual(response.status_code, 200)
		self.assertTrue(response.data['success'])

		request = self.factory.post('/api/orders/%d/accept/' % order.id)
		force_authenticate(request, user=self.driver_two)
		response = accept_order_view(request, order_id=order.id)

		self.assertEqual(response.status_code, 409)
		self.assertEqual(response.data['error'], 'order_already_taken')
		self.assertEqual(response.data['winner_driver_id'], self.driver_one.id)
		self.assertEqual(response.data['order_id'], order.id)

	def test_suspended_driver_cannot_accept(self):
		order = self.place_order()
		suspended = make_driver('suspended', status='suspended')

		request = self.factory.post('/api/orders/%d/accept/' % order.id)
		force_authenticate(request, user=suspended)
		response = accept_order_view(request, order_id=order.id)

		self.assertEqual(response.status_code, 403)
		order.refresh_from_db()
		self.assertIsNone(order.driver_id)

	def test_unapproved_driver_cannot_accept(self):
		order = self.place_order()
		unapproved = [
			make_driver('pending', status='pending'),
			make_driver('onboarding', status='onboarding', online=False),
			make_driver('reupload', status='reupload_required'),
		]

		for driver in unapproved:
			request = self.factory.post('/api/orders/%d/accept/' % order.id)
			force_authenticate(request, user=driver)
			response = accept_order_view(request, order_id=order.id)
			self.assertEqual(response.status_code, 403)

		order.refresh_from_db()
		self.assertIsNone(order.driver_id)
		self.assertEqual(order.status, OrderStatus.PLACED)

	def test_accept_service_refuses_unapproved_driver(self):
		order = self.place_order()

		for status in ('pending', 'onboarding'):
			driver = make_driver('svc_' + status, status=status)
			with self.assertRaises(DriverNotEligibleError):
				accept_order(driver, order.id)

		order.refresh_from_db()
		self.assertIsNone(order.driver_id)

	def test_customer_cannot_accept(self):
		order = self.place_order()

		request = self.factory.post('/api/orders/%d/accept/' % order.id)
		force_authenticate(request, user=self.customer)
		response = accept_order_view(request, order_id=order.id)

		self.assertEqual(response.status_code, 403)


class OrderStatusFlowTests(OrderFixtureMixin, TestCase):
	def deliver(self, order):
		accept_order(self.driver_one, order.id)
		advance_order_status(self.driver_one, order.id, OrderStatus.PREPARING)
		advance_order_status(self.driver_one, order.id, OrderStatus.OUT_FOR_DELIVERY)
		return advance_order_status(self.driver_one, order.id, OrderStatus.DELIVERED)

	def test_timeline_has_five_entries_in_order(self):
		order = self.place_order()
		self.deliver(order)

		timeline = list(order.timeline.all())
		self.assertEqual(
			[entry.status for entry in timeline],
			['placed', 'confirmed', 'preparing', 'out_for_delivery', 'delivered'],
		)
		stamps = [entry.created_at for entry in timeline]
		self.assertEqual(stamps, sorted(stamps))

	def test_delivery_credit_happens_once(self):
		order = self.place_order()
		self.deliver(order)

		with self.assertRaises(InvalidTransitionError):
			advance_order_status(self.driver_one, order.id, OrderStatus.DELIVERED)

		profile = DriverProfile.objects.get(user=self.driver_one)
		self.assertEqual(profile.wallet_balance, Decimal('70.00'))
		self.assertEqual(profile.lifetime_earnings, Decimal('70.00'))
		self.assertEqual(profile.total_orders, 1)

		order.refresh_from_db()
		self.assertEqual(order.payment_status, 'completed')
		self.assertIsNotNone(order.delivered_at)
		self.assertEqual(order.timeline.count(), 5)

	def test_steps_cannot_be_skipped(self):
		order = self.place_order()
		accept_order(self.driver_one, order.id)

		with self.assertRaises(InvalidTransitionError):
			advance_order_status(self.driver_one, order.id, OrderStatus.DELIVERED)
		with self.assertRaises(InvalidTransitionError):
			advance_order_status(self.driver_one, order.id, OrderStatus.CANCELLED)

		order.refresh_from_db()
		self.assertEqual(order.status, OrderStatus.CONFIRMED)

	def test_only_assigned_driver_advances(self):
		order = self.place_order()
		accept_order(self.driver_one, order.id)

		with self.assertRaises(NotAuthorizedError):
			advance_order_status(self.driver_two, order.id, OrderStatus.PREPARING)
		with self.assertRaises(NotAuthorizedError):
			advance_order_status(self.customer, order.id, OrderStatus.PREPARING)

	def test_merchant_owner_can_start_preparing_only(self):
		order = self.place_order()
		accept_order(self.driver_one, order.id)

		advance_order_status(self.owner, order.id, OrderStatus.PREPARING)
		with self.assertRaises(NotAuthorizedError):
			advance_order_status(self.owner, order.id, OrderStatus.OUT_FOR_DELIVERY)

		order.refresh_from_db()
		self.assertEqual(order.status, OrderStatus.PREPARING)

	def test_status_view(self):
		order = self.place_order()
		accept_order(self.driver_one, order.id)

		request = self.factory.put('/api/orders/%d/status/' % order.id, {'status': 'preparing'}, format='json')
		force_authenticate(request, user=self.driver_one)
		response = update_order_status(request, order_id=order.id)
		self.assertEqual(response.status_code, 200)
		self.assertEqual(response.data['order']['status'], 'preparing')

		request = self.factory.put('/api/orders/%d/status/' % order.id, {'status': 'delivered'}, format='json')
		force_authenticate(request, user=self.driver_one)
		response = update_order_status(request, order_id=order.id)
		self.assertEqual(response.status_code, 409)
		self.assertEqual(response.data['error'], 'invalid_transition')


class OrderCancelTests(OrderFixtureMixin, TestCase):
	def test_customer_cancels_placed_order(self):
		order = self.place_order()

		request = self.factory.put('/api/orders/%d/cancel/' % order.id, {'reason': 'Ordered twice'}, format='json')
		force_authenticate(request, user=self.customer)
		response = cancel_order_view(request, order_id=order.id)

		self.assertEqual(response.status_code, 200)
		order.refresh_from_db()
		self.assertEqual(order.status, OrderStatus.CANCELLED)
		self.assertEqual(order.cancellation_reason, 'Ordered twice')
		self.assertEqual(order.timeline.last().status, OrderStatus.CANCELLED)

	def test_cancel_rejected_after_placed(self):
		for target in ['confirmed', 'preparing', 'out_for_delivery', 'delivered', 'cancelled']:
			order = self.place_order()
			Order.objects.filter(pk=order.id).update(status=target, driver=self.driver_one)

			with self.assertRaises(InvalidTransitionError):
				cancel_order(self.customer, order.id)

			order.refresh_from_db()
			self.assertEqual(order.status, target)

	def test_cancel_someone_elses_order(self):
		order = self.place_order()
		stranger = User.objects.create_user(username='stranger', password='pass1234', role='customer')

		with self.assertRaises(NotAuthorizedError):
			cancel_order(stranger, order.id)

		with self.assertRaises(OrderNotFoundError):
			cancel_order(self.customer, 123456)

		order.refresh_from_db()
		self.assertEqual(order.status, OrderStatus.PLACED)

	def test_cancel_view_conflict(self):
		order = self.place_order()
		accept_order(self.driver_one, order.id)

		request = self.factory.put('/api/orders/%d/cancel/' % order.id, {}, format='json')
		force_authenticate(request, user=self.customer)
		response = cancel_order_view(request, order_id=order.id)

		self.assertEqual(response.status_code, 409)
		self.assertEqual(response.data['error'], 'invalid_transition')


class OrderApiTests(OrderFixtureMixin, TestCase):
	def test_customer_places_order(self):
		payload = {
			'merchant_id': self.merchant.id,
			'items': [{'product_id': self.thali.id, 'quantity': 3}],
			'delivery_address': {'street': 'Modhera Road', 'city': 'Mahesana'},
			'payment_method': 'COD',
		}
		request = self.factory.post('/api/orders/', payload, format='json')
		force_authenticate(request, user=self.customer)
		response = orders_collection(request)

		self.assertEqual(response.status_code, 201)
		self.assertEqual(response.data['order']['item_total'], '150.00')
		self.assertEqual(response.data['driver_candidates'], 2)
		self.assertEqual(len(response.data['order']['items']), 1)

	def test_driver_cannot_place_order(self):
		request = self.factory.post('/api/orders/', {'merchant_id': self.merchant.id, 'items': []}, format='json')
		force_authenticate(request, user=self.driver_one)
		response = orders_collection(request)

		self.assertEqual(response.status_code, 403)

	def test_unknown_merchant(self):
		payload = {'merchant_id': 999, 'items': [{'product_id': self.thali.id}]}
		request = self.factory.post('/api/orders/', payload, format='json')
		force_authenticate(request, user=self.customer)
		response = orders_collection(request)

		self.assertEqual(response.status_code, 404)
		self.assertEqual(response.data['error'], 'merchant_not_found')

	def test_customer_lists_own_orders(self):
		self.place_order()
		self.place_order()

		request = self.factory.get('/api/orders/')
		force_authenticate(request, user=self.customer)
		response = orders_collection(request)

		self.assertEqual(response.status_code, 200)
		self.assertEqual(response.data['count'], 2)

	def test_available_orders_view(self):
		order = self.place_order()

		request = self.factory.get('/api/orders/available/')
		force_authenticate(request, user=self.driver_one)
		response = available_orders(request)
		self.assertEqual(response.status_code, 200)
		self.assertEqual([o['id'] for o in response.data['orders']], [order.id])

		offline = make_driver('offline', online=False)
		request = self.factory.get('/api/orders/available/')
		force_authenticate(request, user=offline)
		response = available_orders(request)
		self.assertEqual(response.data['count'], 0)
		self.assertIn('message', response.data)


class ConcurrentAcceptTests(OrderFixtureMixin, TransactionTestCase):
	def test_simultaneous_accepts_have_one_winner(self):
		order = self.place_order()
		drivers = [make_driver('thread_%02d' % i) for i in range(8)]
		barrier = threading.Barrier(len(drivers))
		outcomes = []
		lock = threading.Lock()

		def attempt(driver):
			outcome = ('error', None)
			barrier.wait()
			try:
				accept_order(driver, order.id)
				outcome = ('won', driver.id)
			except OrderAlreadyTakenError as exc:
				outcome = ('lost', exc.winner_id)
			except Exception as exc:
				outcome = ('error', repr(exc))
			finally:
				connections.close_all()
				with lock:
					outcomes.append(outcome)

		threads = [threading.Thread(target=attempt, args=(driver,)) for driver in drivers]
		for thread in threads:
			thread.start()
		for thread in threads:
			thread.join()

		self.assertEqual(len(outcomes), len(drivers))
		self.assertEqual([detail for result, detail in outcomes if result == 'error'], [])

		won = [driver_id for result, driver_id in outcomes if result == 'won']
		lost = [driver_id for result, driver_id in outcomes if result == 'lost']
		self.assertEqual(len(won), 1)
		self.assertEqual(len(lost), len(drivers) - 1)
		self.assertEqual(set(lost), set(won))

		order.refresh_from_db()
		self.assertEqual(order.driver_id, won[0])
		self.assertEqual(order.timeline.filter(status=OrderStatus.CONFIRMED).count(), 1)
