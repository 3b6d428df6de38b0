from django.apps import AppConfig


class OrdersConfig(AppConfig):
    default_auto_field = "django.db.models.BigAutoField"
    name = "modules.orders"
    label = "orders"

    def ready(self) -> None:
        from modules.orders.events import (
            OrderCreated,
            OrderItemsEdited,
            OrderStatusChanged,
        )
        from modules.orders.handlers import (
            convert_referral_handler,
            credit_loyalty_handler,
            notify_managers_handler,
            notify_owner_handler,
            reverse_loyalty_handler,
        )
        from shared.infrastructure.bus import event_bus

        event_bus.subscribe(OrderCreated, notify_managers_handler)
        event_bus.subscribe(OrderStatusChanged, notify_owner_handler)
        event_bus.subscribe(OrderItemsEdited, notify_owner_handler)
        event_bus.subscribe(OrderStatusChanged, credit_loyalty_handler)
        event_bus.subscribe(OrderStatusChanged, convert_referral_handler)
        event_bus.subscribe(OrderStatusChanged, reverse_loyalty_handler)
