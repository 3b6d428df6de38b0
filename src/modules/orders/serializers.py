"""Order DRF serializers for API input/output.

Input serializers validate the request shape; the views turn validated
data into Pydantic DTOs for the service layer.
"""

from __future__ import annotations

from rest_framework import serializers

from modules.orders.constants import DeliveryMethod, OrderStatus, PaymentMethod
from modules.orders.models import Order, OrderItem, OrderStatusHistory

# ---------------------------------------------------------------------------
# Input Serializers
# ---------------------------------------------------------------------------


class CheckoutItemSerializer(serializers.Serializer):
    product_id = serializers.UUIDField()
    quantity = serializers.IntegerField(min_value=1)


class CheckoutSerializer(serializers.Serializer):
    """Checkout form.  ``items`` is required for guests; authenticated
    clients without ``items`` check out their server-side cart."""

    contact_name = serializers.CharField(min_length=2, max_length=255)
    contact_phone = serializers.CharField(min_length=10, max_length=20)
    contact_email = serializers.EmailField(required=False, default="", allow_blank=True)
    delivery_method = serializers.ChoiceField(choices=DeliveryMethod.choices)
    delivery_city = serializers.CharField(required=False, default="", allow_blank=True)
    delivery_warehouse_ref = serializers.CharField(
        required=False, default="", allow_blank=True
    )
    delivery_address = serializers.CharField(required=False, default="", allow_blank=True)
    payment_method = serializers.ChoiceField(choices=PaymentMethod.choices)
    comment = serializers.CharField(
        required=False, default="", allow_blank=True, max_length=500
    )
    items = CheckoutItemSerializer(many=True, required=False)


class StatusUpdateSerializer(serializers.Serializer):
    status = serializers.ChoiceField(choices=OrderStatus.choices)
    comment = serializers.CharField(
        required=False, default="", allow_blank=True, max_length=500
    )


class CancelOrderSerializer(serializers.Serializer):
    reason = serializers.CharField(
        required=False, default="", allow_blank=True, max_length=500
    )


class OrderItemChangeSerializer(serializers.Serializer):
    action = serializers.ChoiceField(choices=["update", "remove", "add"])
    item_id = serializers.UUIDField(required=False)
    product_id = serializers.UUIDField(required=False)
    quantity = serializers.IntegerField(required=False, min_value=1)


class EditItemsSerializer(serializers.Serializer):
    changes = OrderItemChangeSerializer(many=True, allow_empty=False)
    comment = serializers.CharField(required=False, default="", allow_blank=True)


class TrackingNumberSerializer(serializers.Serializer):
    tracking_number = serializers.CharField(max_length=64)


# ---------------------------------------------------------------------------
# Output Serializers (Read)
# ---------------------------------------------------------------------------


class OrderItemSerializer(serializers.ModelSerializer):
    """Line item with its product snapshot."""

    class Meta:
        model = OrderItem
        fields = [
            "id",
            "product_id",
            "product_code",
            "product_name",
            "price_at_order",
            "quantity",
            "subtotal",
            "is_promo",
        ]
        read_only_fields = fields


class StatusHistorySerializer(serializers.ModelSerializer):
    class Meta:
        model = OrderStatusHistory
        fields = [
            "id",
            "old_status",
            "new_status",
            "change_source",
            "changed_by_id",
            "comment",
            "created_at",
        ]
        read_only_fields = fields


class OrderSerializer(serializers.ModelSerializer):
    """Read serializer for orders with nested items and history."""

    items = OrderItemSerializer(many=True, read_only=True)
    status_history = StatusHistorySerializer(many=True, read_only=True)

    class Meta:
        model = Order
        fields = [
            "id",
            "order_number",
            "user_id",
            "status",
            "client_type",
            "total_amount",
            "items_count",
            "discount_amount",
            "delivery_cost",
            "contact_name",
            "contact_phone",
            "contact_email",
            "delivery_method",
            "delivery_city",
            "delivery_warehouse_ref",
            "delivery_address",
            "payment_method",
            "payment_status",
            "tracking_number",
            "comment",
            "cancelled_reason",
            "cancelled_by",
            "source",
            "created_at",
            "updated_at",
            "items",
            "status_history",
        ]
        read_only_fields = fields


class OrderListSerializer(serializers.ModelSerializer):
    """Lightweight serializer for order list (no nested relations)."""

    class Meta:
        model = Order
        fields = [
            "id",
            "order_number",
            "user_id",
            "status",
            "client_type",
            "total_amount",
            "items_count",
            "payment_status",
            "created_at",
        ]
        read_only_fields = fields
