from datetime import datetime, timedelta
from decimal import Decimal
from unittest.mock import patch

from django.test import TestCase
from django.utils import timezone
from rest_framework.exceptions import NotFound, PermissionDenied
from rest_framework.test import APIRequestFactory, force_authenticate

from accounts.models import User
from drivers import services
from drivers.models import DriverProfile, DriverSession
from drivers.views import DriverPushTokenView, DriverStatusView, require_driver
from merchants.models import Merchant, Product
from services.order_management import accept_order, create_order


class DriverPresenceTests(TestCase):
	def setUp(self):
		self.user = User.objects.create_user(username='rider', password='pass1234', role='driver')
		self.profile = DriverProfile.objects.create(user=self.user, status=DriverProfile.STATUS_ACTIVE)

	def test_online_toggle_opens_and_closes_sessions(self):
		services.set_online(self.profile, True)
		services.set_online(self.profile, True)

		self.assertTrue(self.profile.is_online)
		self.assertEqual(self.profile.sessions.filter(end_time__isnull=True).count(), 1)

		services.set_online(self.profile, False)

		self.profile.refresh_from_db()
		self.assertFalse(self.profile.is_online)
		self.assertEqual(self.profile.sessions.filter(end_time__isnull=True).count(), 0)
		self.assertEqual(self.profile.sessions.count(), 1)

	def test_banned_driver_cannot_go_online(self):
		self.profile.status = DriverProfile.STATUS_BLOCKED
		self.profile.save()

		with self.assertRaises(services.DriverBannedError):
			services.set_online(self.profile, True)

		self.profile.refresh_from_db()
		self.assertFalse(self.profile.is_online)
		self.assertFalse(self.profile.sessions.exists())

	def test_today_online_hours(self):
		tz = timezone.get_current_timezone()
		now = timezone.make_aware(datetime(2024, 5, 10, 15, 0), tz)
		midnight = timezone.make_aware(datetime(2024, 5, 10, 0, 0), tz)

		# Crosses midnight: only the hour after it counts
		DriverSession.objects.create(
			driver=self.profile,
			start_time=midnight - timedelta(hours=2),
			end_time=midnight + timedelta(hours=1),
		)
		DriverSession.objects.create(
			driver=self.profile,
			start_time=midnight + timedelta(hours=10),
			end_time=midnight + timedelta(hours=12),
		)
		DriverSession.objects.create(driver=self.profile, start_time=now - timedelta(minutes=30))
		DriverSession.objects.create(
			driver=self.profile,
			start_time=midnight - timedelta(hours=6),
			end_time=midnight - timedelta(hours=4),
		)

		self.assertEqual(services.today_online_hours(self.profile, now=now), 3.5)

	def test_status_view_rejects_banned_driver(self):
		self.profile.status = DriverProfile.STATUS_SUSPENDED
		self.profile.save()

		request = APIRequestFactory().put('/api/driver/status/', {'is_online': True}, format='json')
		force_authenticate(request, user=self.user)
		response = DriverStatusView.as_view()(request)

		self.assertEqual(response.status_code, 403)
		self.assertEqual(response.data['error'], 'driver_not_eligible')


class DriverLocationTests(TestCase):
	def setUp(self):
		self.user = User.objects.create_user(username='rider', password='pass1234', role='driver')
		self.profile = DriverProfile.objects.create(
			user=self.user,
			status=DriverProfile.STATUS_ACTIVE,
			is_online=True,
			city='Ahmedabad',
		)

	def test_location_update_recomputes_city_token(self):
		self.assertEqual(self.profile.city_token, 'ahmedabad')

		services.update_driver_location(self.profile, Decimal('23.600000'), Decimal('72.380000'), 'Mahesana City')

		self.profile.refresh_from_db()
		self.assertEqual(self.profile.city, 'Mahesana City')
		self.assertEqual(self.profile.city_token, 'mehsana')
		self.assertEqual(self.profile.current_latitude, Decimal('23.600000'))

	def test_location_is_forwarded_to_active_order(self):
		customer = User.objects.create_user(username='customer', password='pass1234', role='customer')
		merchant = Merchant.objects.create(name='Tea Post', city='Mehsana', latitude=23.59, longitude=72.37)
		product = Product.objects.create(merchant=merchant, name='Masala Chai', price=Decimal('20.00'))
		order = create_order(customer, merchant.id, [{'product_id': product.id}]).order
		accept_order(self.user, order.id)

		with patch('realtime.publisher.get_publisher') as get_publisher:
			services.update_driver_location(self.profile, 23.61, 72.39)

		group, payload = get_publisher.return_value.publish.call_args[0]
		self.assertEqual(group, 'order_%d' % order.id)
		self.assertEqual(payload['type'], 'driver_location')
		self.assertEqual(payload['latitude'], 23.61)

	def test_location_without_active_order_publishes_nothing(self):
		with patch('realtime.publisher.get_publisher') as get_publisher:
			services.update_driver_location(self.profile, 23.61, 72.39)

		get_publisher.assert_not_called()


class DriverAccessTests(TestCase):
	def test_require_driver(self):
		customer = User.objects.create_user(username='customer', password='pass1234', role='customer')
		with self.assertRaises(PermissionDenied):
			require_driver(customer)

		no_profile = User.objects.create_user(username='new_rider', password='pass1234', role='driver')
		with self.assertRaises(NotFound):
			require_driver(no_profile)

	def test_customer_gets_403_from_driver_endpoints(self):
		customer = User.objects.create_user(username='customer', password='pass1234', role='customer')
		request = APIRequestFactory().get('/api/driver/status/')
		force_authenticate(request, user=customer)

		self.assertEqual(DriverStatusView.as_view()(request).status_code, 403)

	def test_push_token_must_be_expo_token(self):
		user = User.objects.create_user(username='rider', password='pass1234', role='driver')
		profile = DriverProfile.objects.create(user=user, status=DriverProfile.STATUS_ACTIVE)
		view = DriverPushTokenView.as_view()
		factory = APIRequestFactory()

		request = factory.post('/api/driver/push-token/', {'push_token': 'not-a-token'}, format='json')
		force_authenticate(request, user=user)
		self.assertEqual(view(request).status_code, 400)

		request = factory.post('/api/driver/push-token/', {'push_token': 'ExponentPushToken[abc123]'}, format='json')
		force_authenticate(request, user=user)
		self.assertEqual(view(request).status_code, 200)

		profile.refresh_from_db()
		self.assertEqual(profile.push_token, 'ExponentPushToken[abc123]')
