from rest_framework import status
from rest_framework.decorators import api_view, permission_classes
from rest_framework.response import Response
from rest_framework.permissions import IsAuthenticated

from services.dispatch import get_dispatch_coordinator
from services.order_management import (
    OrderError,
    get_customer_orders,
    get_order_for_participant,
)
from .permissions import IsCustomer, IsDispatchableDriver
from .serializers import (
    OrderSerializer,
    OrderCreateSerializer,
    OrderStatusUpdateSerializer,
    OrderCancelSerializer,
)


def _error_response(exc: OrderError):
    return Response(exc.as_dict(), status=exc.http_status)


# ==================== Customer Order APIs ====================

@api_view(['GET', 'POST'])
@permission_classes([IsAuthenticated])
def orders_collection(request):
    """GET: the customer's orders. POST: place a new order."""
    if not IsCustomer().has_permission(request, None):
        return Response(
            {'success': False, 'error': 'not_authorized', 'message': 'Only customers can place or list orders'},
            status=status.HTTP_403_FORBIDDEN
        )

    if request.method == 'GET':
        orders = get_customer_orders(request.user).prefetch_related('timeline')
        serializer = OrderSerializer(orders, many=True)
        return Response({'count': len(serializer.data), 'orders': serializer.data})

    serializer = OrderCreateSerializer(data=request.data)
    if not serializer.is_valid():
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)

    data = serializer.validated_data
    try:
        result = get_dispatch_coordinator().place_order(
            request.user,
            data['merchant_id'],
            data['items'],
            data.get('delivery_address'),
            data['payment_method'],
        )
    except OrderError as exc:
        return _error_response(exc)

    return Response({
        'success': True,
        'order': OrderSerializer(result.order).data,
        'message': result.message,
        **(result.extra or {}),
    }, status=status.HTTP_201_CREATED)


@api_view(['GET'])
@permission_classes([IsAuthenticated])
def order_detail(request, order_id):
    """Order details for its customer, driver or merchant."""
    try:
        order = get_order_for_participant(request.user, order_id)
    except OrderError as exc:
        return _error_response(exc)

    return Response(OrderSerializer(order).data)


@api_view(['PUT'])
@permission_classes([IsAuthenticated, IsCustomer])
def cancel_order(request, order_id):
    """Cancel an order. Only possible before a driver accepts it."""
    serializer = OrderCancelSerializer(data=request.data)
    if not serializer.is_valid():
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)

    try:
        result = get_dispatch_coordinator().cancel(
            request.user, order_id, serializer.validated_data['reason']
        )
    except OrderError as exc:
        return _error_response(exc)

    return Response({
        'success': True,
        'message': result.message,
        'order_id': result.order.id,
        'status': result.order.status,
        'cancelled_at': result.order.cancelled_at,
    })


# ==================== Driver Order APIs ====================

@api_view(['POST'])
@permission_classes([IsAuthenticated, IsDispatchableDriver])
def accept_order(request, order_id):
    """
    Accept an order. When several drivers race, exactly one wins; the rest
    get 409 with the winner's id and should drop the order from their list.
    """
    try:
        result = get_dispatch_coordinator().accept(request.user, order_id)
    except OrderError as exc:
        return _error_response(exc)

    return Response({
        'success': True,
        'order': OrderSerializer(result.order).data,
        'message': result.message,
    })


@api_view(['PUT'])
@permission_classes([IsAuthenticated])
def update_order_status(request, order_id):
    """Move an accepted order forward (preparing, out_for_delivery, delivered)."""
    serializer = OrderStatusUpdateSerializer(data=request.data)
    if not serializer.is_valid():
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)

    try:
        result = get_dispatch_coordinator().advance(
            request.user, order_id, serializer.validated_data['status']
        )
    except OrderError as exc:
        return _error_response(exc)

    return Response({
        'success': True,
        'order': OrderSerializer(result.order).data,
        'message': result.message,
    })


@api_view(['GET'])
@permission_classes([IsAuthenticated, IsDispatchableDriver])
def available_orders(request):
    """Orders this driver could pick up now (recomputed per request)."""
    profile = request.user.driver_profile
    orders = get_dispatch_coordinator().available_orders(request.user)

    response = {
        'count': len(orders),
        'orders': OrderSerializer(orders, many=True).data,
    }
    if not profile.is_online:
        response['message'] = 'Go online to see available orders'
    return Response(response)
