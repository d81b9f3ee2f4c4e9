from rest_framework import serializers

from accounts.serializers import UserBasicSerializer
from merchants.models import Merchant
from .models import Order, OrderItem, OrderTimelineEntry, OrderStatus


class MerchantBasicSerializer(serializers.ModelSerializer):
    """Pickup point details shown with an order"""

    class Meta:
        model = Merchant
        fields = ['id', 'name', 'kind', 'street', 'city', 'latitude', 'longitude']


class OrderItemSerializer(serializers.ModelSerializer):
    class Meta:
        model = OrderItem
        fields = ['id', 'product', 'name', 'unit_price', 'quantity', 'line_total']


class OrderTimelineSerializer(serializers.ModelSerializer):
    class Meta:
        model = OrderTimelineEntry
        fields = ['status', 'description', 'created_at']


class OrderSerializer(serializers.ModelSerializer):
    """Serializer for orders, including line items and timeline"""
    customer = UserBasicSerializer(read_only=True)
    merchant = MerchantBasicSerializer(read_only=True)
    items = OrderItemSerializer(many=True, read_only=True)
    timeline = OrderTimelineSerializer(many=True, read_only=True)
    driver_id = serializers.IntegerField(read_only=True, allow_null=True)
    delivery_address = serializers.CharField(read_only=True)

    class Meta:
        model = Order
        fields = [
            'id', 'customer', 'merchant', 'driver_id', 'status', 'items',
            'item_total', 'delivery_fee', 'taxes', 'discount', 'grand_total', 'driver_payout',
            'payment_method', 'payment_status', 'transaction_id',
            'delivery_address', 'delivery_street', 'delivery_city', 'delivery_latitude', 'delivery_longitude',
            'pickup_latitude', 'pickup_longitude', 'city_token',
            'driver_name', 'driver_phone', 'driver_vehicle_number', 'driver_vehicle_type', 'eta',
            'timeline', 'created_at', 'updated_at', 'accepted_at', 'delivered_at', 'cancelled_at',
            'cancellation_reason',
        ]
        read_only_fields = fields


class OrderItemInputSerializer(serializers.Serializer):
    product_id = serializers.IntegerField(min_value=1)
    quantity = serializers.IntegerField(min_value=1, default=1)


class DeliveryAddressSerializer(serializers.Serializer):
    street = serializers.CharField(max_length=255, required=False, allow_blank=True, default="")
    city = serializers.CharField(max_length=100, required=False, allow_blank=True, default="")
    latitude = serializers.DecimalField(
        max_digits=9, decimal_places=6, required=False, allow_null=True,
        min_value=-90, max_value=90,
    )
    longitude = serializers.DecimalField(
        max_digits=9, decimal_places=6, required=False, allow_null=True,
        min_value=-180, max_value=180,
    )


class OrderCreateSerializer(serializers.Serializer):
    """Serializer for placing an order. Prices always come from the catalog."""
    merchant_id = serializers.IntegerField(min_value=1)
    items = OrderItemInputSerializer(many=True, allow_empty=False)
    delivery_address = DeliveryAddressSerializer(required=False)
    payment_method = serializers.ChoiceField(
        choices=[code for code, _ in Order.PAYMENT_METHOD_CHOICES],
        default='COD',
    )


class OrderStatusUpdateSerializer(serializers.Serializer):
    """Serializer for moving an accepted order forward"""
    status = serializers.ChoiceField(choices=[
        OrderStatus.PREPARING,
        OrderStatus.OUT_FOR_DELIVERY,
        OrderStatus.DELIVERED,
    ])


class OrderCancelSerializer(serializers.Serializer):
    """Serializer for order cancellation"""
    reason = serializers.CharField(required=False, allow_blank=True, default="")


def order_event_data(order):
    """Plain-dict order payload for channel-layer and push messages."""
    return dict(OrderSerializer(order).data)
