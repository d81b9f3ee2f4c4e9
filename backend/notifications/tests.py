from unittest.mock import MagicMock

import requests
from django.test import TestCase
from rest_framework.test import APIRequestFactory, force_authenticate

from accounts.models import User
from drivers.models import DriverProfile
from notifications.models import Notification
from notifications.push import ExpoPushClient, PushMessage, is_expo_push_token
from notifications.views import list_notifications, mark_notification_read, register_push_token


def gateway_response(count):
	response = MagicMock()
	response.json.return_value = {'data': [{'status': 'ok', 'id': 'ticket-%d' % i} for i in range(count)]}
	response.raise_for_status.return_value = None
	return response


class ExpoPushClientTests(TestCase):
	def messages(self, count, prefix='ExponentPushToken'):
		return [PushMessage(to='%s[device%d]' % (prefix, i), title='New order', body='Pickup nearby') for i in range(count)]

	def test_token_format(self):
		self.assertTrue(is_expo_push_token('ExponentPushToken[xxxx]'))
		self.assertTrue(is_expo_push_token('ExpoPushToken[yyyy]'))
		self.assertFalse(is_expo_push_token('fcm:abcdef'))
		self.assertFalse(is_expo_push_token(''))
		self.assertFalse(is_expo_push_token(None))

	def test_messages_are_chunked(self):
		session = MagicMock()
		session.post.side_effect = [gateway_response(2), gateway_response(2), gateway_response(1)]
		client = ExpoPushClient(batch_size=2, enabled=True, session=session)

		tickets = client.send(self.messages(5))

		self.assertEqual(len(tickets), 5)
		self.assertEqual(session.post.call_count, 3)
		first_batch = session.post.call_args_list[0][1]['json']
		self.assertEqual(len(first_batch), 2)
		self.assertEqual(first_batch[0]['channelId'], 'default')

	def test_invalid_tokens_are_skipped(self):
		session = MagicMock()
		session.post.return_value = gateway_response(1)
		client = ExpoPushClient(enabled=True, session=session)

		tickets = client.send(self.messages(1) + [PushMessage(to='garbage', title='x', body='y')])

		self.assertEqual(len(tickets), 1)
		sent = session.post.call_args[1]['json']
		self.assertEqual([message['to'] for message in sent], ['ExponentPushToken[device0]'])

	def test_failed_chunk_does_not_stop_the_rest(self):
		session = MagicMock()
		session.post.side_effect = [requests.ConnectionError('gateway down'), gateway_response(1)]
		client = ExpoPushClient(batch_size=1, enabled=True, session=session)

		tickets = client.send(self.messages(2))

		self.assertEqual(session.post.call_count, 2)
		self.assertEqual(len(tickets), 1)

	def test_disabled_client_sends_nothing(self):
		session = MagicMock()
		client = ExpoPushClient(enabled=False, session=session)

		self.assertEqual(client.send(self.messages(3)), [])
		session.post.assert_not_called()

	def test_payload_roundtrip_keeps_channel(self):
		message = PushMessage(to='ExponentPushToken[a]', title='t', body='b', data={'order_id': 7}, channel_id='orders')
		self.assertEqual(PushMessage.from_payload(message.to_payload()), message)


class NotificationInboxTests(TestCase):
	def setUp(self):
		self.factory = APIRequestFactory()
		self.customer = User.objects.create_user(username='customer', password='pass1234', role='customer')
		self.driver = User.objects.create_user(username='rider', password='pass1234', role='driver')
		self.profile = DriverProfile.objects.create(user=self.driver, status=DriverProfile.STATUS_ACTIVE)

		self.customer_note = Notification.objects.create(
			recipient_kind=Notification.RECIPIENT_USER,
			recipient_id=self.customer.pk,
			title='Order accepted',
			body='Your order is on the way',
			notification_type='ORDER_ACCEPTED',
		)
		self.driver_note = Notification.objects.create(
			recipient_kind=Notification.RECIPIENT_DRIVER,
			recipient_id=self.profile.pk,
			title='New order nearby',
			body='Pickup from Tea Post',
			notification_type='NEW_ORDER',
		)

	def test_driver_inbox_holds_driver_notifications(self):
		request = self.factory.get('/api/notifications/')
		force_authenticate(request, user=self.driver)
		response = list_notifications(request)

		self.assertEqual(response.status_code, 200)
		ids = [note['id'] for note in response.data['notifications']]
		self.assertIn(self.driver_note.id, ids)
		self.assertNotIn(self.customer_note.id, ids)

	def test_mark_read_by_recipient(self):
		request = self.factory.put('/api/notifications/%d/read/' % self.customer_note.id)
		force_authenticate(request, user=self.customer)
		response = mark_notification_read(request, notification_id=self.customer_note.id)

		self.assertEqual(response.status_code, 200)
		self.customer_note.refresh_from_db()
		self.assertTrue(self.customer_note.read)

		request = self.factory.get('/api/notifications/', {'unread': '1'})
		force_authenticate(request, user=self.customer)
		response = list_notifications(request)
		self.assertEqual(response.data['unread_count'], 0)
		self.assertEqual(response.data['notifications'], [])

	def test_mark_read_by_someone_else(self):
		request = self.factory.put('/api/notifications/%d/read/' % self.driver_note.id)
		force_authenticate(request, user=self.customer)
		response = mark_notification_read(request, notification_id=self.driver_note.id)

		self.assertEqual(response.status_code, 403)
		self.driver_note.refresh_from_db()
		self.assertFalse(self.driver_note.read)

	def test_mark_read_missing(self):
		request = self.factory.put('/api/notifications/999/read/')
		force_authenticate(request, user=self.customer)
		response = mark_notification_read(request, notification_id=999)

		self.assertEqual(response.status_code, 404)

	def test_customer_registers_push_token(self):
		request = self.factory.post('/api/notifications/push-token/', {'push_token': 'bogus'}, format='json')
		force_authenticate(request, user=self.customer)
		self.assertEqual(register_push_token(request).status_code, 400)

		request = self.factory.post(
			'/api/notifications/push-token/', {'push_token': 'ExponentPushToken[customer]'}, format='json'
		)
		force_authenticate(request, user=self.customer)
		self.assertEqual(register_push_token(request).status_code, 200)

		self.customer.refresh_from_db()
		self.assertEqual(self.customer.push_token, 'ExponentPushToken[customer]')
