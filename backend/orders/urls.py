from django.urls import path
from . import views

app_name = 'orders'

urlpatterns = [
    # Customer APIs
    path('', views.orders_collection, name='orders'),
    path('<int:order_id>/', views.order_detail, name='order-detail'),
    path('<int:order_id>/cancel/', views.cancel_order, name='cancel-order'),

    # Driver APIs
    path('available/', views.available_orders, name='available-orders'),
    path('<int:order_id>/accept/', views.accept_order, name='accept-order'),
    path('<int:order_id>/status/', views.update_order_status, name='update-order-status'),
]
