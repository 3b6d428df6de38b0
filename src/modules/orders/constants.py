"""Order domain constants.

Status choices, change sources, checkout enumerations and the allowed
transition table of the order state machine.
"""

from django.db import models


class OrderStatus(models.TextChoices):
    NEW_ORDER = "new_order", "New order"
    PROCESSING = "processing", "Processing"
    CONFIRMED = "confirmed", "Confirmed"
    PAID = "paid", "Paid"
    SHIPPED = "shipped", "Shipped"
    COMPLETED = "completed", "Completed"
    CANCELLED = "cancelled", "Cancelled"
    RETURNED = "returned", "Returned"


class ChangeSource(models.TextChoices):
    MANAGER = "manager", "Manager"
    CLIENT_ACTION = "client_action", "Client action"
    SYSTEM = "system", "System"
    CRON = "cron", "Scheduled job"


class PaymentMethod(models.TextChoices):
    COD = "cod", "Cash on delivery"
    BANK_TRANSFER = "bank_transfer", "Bank transfer"
    ONLINE = "online", "Online"
    CARD_PREPAY = "card_prepay", "Card prepayment"


class PaymentStatus(models.TextChoices):
    PENDING = "pending", "Pending"
    PAID = "paid", "Paid"


class DeliveryMethod(models.TextChoices):
    NOVA_POSHTA = "nova_poshta", "Nova Poshta"
    UKRPOSHTA = "ukrposhta", "Ukrposhta"
    PICKUP = "pickup", "Pickup"
    PALLET = "pallet", "Pallet delivery"


VALID_TRANSITIONS: dict[str, set[str]] = {
    OrderStatus.NEW_ORDER: {OrderStatus.PROCESSING, OrderStatus.CANCELLED},
    OrderStatus.PROCESSING: {OrderStatus.CONFIRMED, OrderStatus.CANCELLED},
    OrderStatus.CONFIRMED: {
        OrderStatus.PAID,
        OrderStatus.SHIPPED,
        OrderStatus.CANCELLED,
    },
    OrderStatus.PAID: {OrderStatus.SHIPPED, OrderStatus.CANCELLED},
    OrderStatus.SHIPPED: {OrderStatus.COMPLETED, OrderStatus.RETURNED},
    OrderStatus.COMPLETED: {OrderStatus.RETURNED},
    OrderStatus.CANCELLED: set(),
    OrderStatus.RETURNED: set(),
}

TERMINAL_STATES: set[str] = {OrderStatus.CANCELLED, OrderStatus.RETURNED}

# Entering these states puts every line quantity back on stock.
RESTOCK_STATES: set[str] = {OrderStatus.CANCELLED, OrderStatus.RETURNED}

CLIENT_CANCELLABLE_STATES: set[str] = {OrderStatus.NEW_ORDER, OrderStatus.PROCESSING}

EDITABLE_STATES: set[str] = {
    OrderStatus.NEW_ORDER,
    OrderStatus.PROCESSING,
    OrderStatus.CONFIRMED,
}

ORDER_SOURCE_WEB = "web"
