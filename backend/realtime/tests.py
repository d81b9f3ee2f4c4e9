from decimal import Decimal
from unittest.mock import AsyncMock, MagicMock

from asgiref.sync import async_to_sync, sync_to_async
from channels.layers import InMemoryChannelLayer, get_channel_layer
from channels.testing import WebsocketCommunicator
from django.test import SimpleTestCase, TransactionTestCase

from accounts.models import User
from drivers.models import DriverProfile
from merchants.models import Merchant, Product
from realtime.consumers import DriverConsumer
from realtime.groups import city_group, driver_group, order_group, user_group
from realtime.publisher import ChannelLayerPublisher
from services.dispatch.fanout import NotificationFanout
from services.order_management import create_order


class GroupNameTests(SimpleTestCase):
	def test_personal_groups(self):
		self.assertEqual(driver_group(7), 'driver_7')
		self.assertEqual(user_group(7), 'user_7')
		self.assertEqual(order_group(42), 'order_42')

	def test_city_group_is_safe(self):
		self.assertEqual(city_group('mehsana'), 'city_mehsana')
		self.assertEqual(city_group('gandhi nagar'), 'city_gandhi-nagar')
		self.assertEqual(city_group(''), '')
		self.assertEqual(city_group(None), '')
		self.assertLessEqual(len(city_group('x' * 300)), 90)


class ChannelLayerPublisherTests(SimpleTestCase):
	def setUp(self):
		self.layer = InMemoryChannelLayer()
		self.publisher = ChannelLayerPublisher(channel_layer=self.layer)

	def test_publish_reaches_group_members(self):
		channel = async_to_sync(self.layer.new_channel)()
		async_to_sync(self.layer.group_add)('order_1', channel)

		self.assertTrue(self.publisher.publish('order_1', {'type': 'order_accepted', 'order_id': 1}))

		message = async_to_sync(self.layer.receive)(channel)
		self.assertEqual(message['type'], 'order_accepted')
		self.assertEqual(message['order_id'], 1)

	def test_publish_many_counts_successes(self):
		sent = self.publisher.publish_many(['order_1', '', 'user_3'], {'type': 'order_status_changed'})
		self.assertEqual(sent, 2)

	def test_layer_failure_is_not_raised(self):
		broken = MagicMock()
		broken.group_send = AsyncMock(side_effect=RuntimeError("redis is gone"))
		publisher = ChannelLayerPublisher(channel_layer=broken)

		self.assertFalse(publisher.publish('drivers', {'type': 'order_withdrawn'}))

	def test_close_disconnects(self):
		self.assertTrue(self.publisher.connected)
		self.publisher.close()
		self.assertFalse(self.publisher.connected)


class DriverSocketTests(TransactionTestCase):
	def setUp(self):
		async_to_sync(get_channel_layer().flush)()
		self.customer = User.objects.create_user(username='customer', password='pass1234', role='customer')
		self.driver = User.objects.create_user(username='rider', password='pass1234', role='driver')
		self.profile = DriverProfile.objects.create(
			user=self.driver,
			status=DriverProfile.STATUS_ACTIVE,
			is_online=True,
			city='Mehsana',
		)
		merchant = Merchant.objects.create(name='Tea Post', city='Mehsana', latitude=23.59, longitude=72.37)
		product = Product.objects.create(merchant=merchant, name='Masala Chai', price=Decimal('20.00'))
		self.order = create_order(self.customer, merchant.id, [{'product_id': product.id}]).order
		self.fanout = NotificationFanout(ChannelLayerPublisher(), push_sender=lambda payloads: None)

	async def connect(self, user):
		communicator = WebsocketCommunicator(DriverConsumer.as_asgi(), '/ws/driver/')
		communicator.scope['user'] = user
		connected, _ = await communicator.connect()
		self.assertTrue(connected)
		return communicator

	async def city_offer(self, city_token, order_id=99):
		await get_channel_layer().group_send(city_group(city_token), {
			'type': 'order_offer',
			'order_id': order_id,
			'order_data': {'id': order_id},
		})

	async def test_offer_and_withdraw_reach_connected_driver(self):
		communicator = await self.connect(self.driver)
		try:
			hello = await communicator.receive_json_from()
			self.assertEqual(hello['type'], 'connection_established')
			self.assertEqual(hello['city'], 'mehsana')
			self.assertTrue(hello['is_online'])

			# Personal group only: no city broadcast
			await sync_to_async(self.fanout.offer)(self.order, [self.profile])
			frame = await communicator.receive_json_from()
			self.assertEqual(frame['type'], 'new_order')
			self.assertEqual(frame['order_id'], self.order.id)
			self.assertEqual(frame['order']['id'], self.order.id)

			# City group only
			await sync_to_async(self.fanout.offer)(self.order, [], 'mehsana')
			frame = await communicator.receive_json_from()
			self.assertEqual(frame['type'], 'new_order')
			self.assertEqual(frame['order_id'], self.order.id)

			await sync_to_async(self.fanout.withdraw)(self.order.id, 'taken')
			frame = await communicator.receive_json_from()
			self.assertEqual(frame, {'type': 'order_withdrawn', 'order_id': self.order.id, 'reason': 'taken'})

			self.assertTrue(await communicator.receive_nothing())
		finally:
			await communicator.disconnect()

	async def test_location_update_switches_city_group(self):
		communicator = await self.connect(self.driver)
		try:
			await communicator.receive_json_from()

			await communicator.send_json_to({
				'type': 'driver_location_update',
				'latitude': 23.0225,
				'longitude': 72.5714,
				'city': 'Amdavad',
			})
			reply = await communicator.receive_json_from()
			self.assertEqual(reply['type'], 'location_updated')
			self.assertEqual(reply['city'], 'ahmedabad')

			await self.city_offer('mehsana', order_id=1)
			self.assertTrue(await communicator.receive_nothing())

			await self.city_offer('ahmedabad', order_id=2)
			frame = await communicator.receive_json_from()
			self.assertEqual(frame['type'], 'new_order')
			self.assertEqual(frame['order_id'], 2)
		finally:
			await communicator.disconnect()

	async def test_offline_driver_leaves_city_group(self):
		communicator = await self.connect(self.driver)
		try:
			await communicator.receive_json_from()

			await communicator.send_json_to({'type': 'driver_online_toggle', 'is_online': False})
			reply = await communicator.receive_json_from()
			self.assertEqual(reply, {'type': 'online_status_updated', 'is_online': False})

			await self.city_offer('mehsana')
			self.assertTrue(await communicator.receive_nothing())

			# Withdrawals still arrive
			await sync_to_async(self.fanout.withdraw)(self.order.id, 'cancelled')
			frame = await communicator.receive_json_from()
			self.assertEqual(frame['type'], 'order_withdrawn')

			await communicator.send_json_to({'type': 'driver_online_toggle', 'is_online': True})
			await communicator.receive_json_from()

			await self.city_offer('mehsana', order_id=7)
			frame = await communicator.receive_json_from()
			self.assertEqual(frame['order_id'], 7)
		finally:
			await communicator.disconnect()

	async def test_unapproved_driver_gets_no_city_offers(self):
		self.profile.status = DriverProfile.STATUS_PENDING
		await sync_to_async(self.profile.save)()

		communicator = await self.connect(self.driver)
		try:
			await communicator.receive_json_from()
			await self.city_offer('mehsana')
			self.assertTrue(await communicator.receive_nothing())
		finally:
			await communicator.disconnect()

	async def test_customer_is_turned_away(self):
		communicator = await self.connect(self.customer)
		error = await communicator.receive_json_from()
		self.assertEqual(error['type'], 'error')
		closed = await communicator.receive_output()
		self.assertEqual(closed['type'], 'websocket.close')
		await communicator.disconnect()
