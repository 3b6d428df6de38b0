"""Order API views.

Exposes ``OrderService`` over HTTP using a DRF ``GenericViewSet``.
Domain exceptions are caught by category and translated into HTTP status
codes with the standard error envelope; the view never swallows generic
exceptions.
"""

from __future__ import annotations

import re
from typing import Optional
from uuid import UUID

import structlog
from django_filters.rest_framework import DjangoFilterBackend
from pydantic import ValidationError as DTOValidationError
from rest_framework import permissions, status
from rest_framework.decorators import action
from rest_framework.filters import OrderingFilter, SearchFilter
from rest_framework.request import Request
from rest_framework.response import Response
from rest_framework.throttling import BaseThrottle
from rest_framework.viewsets import GenericViewSet

from modules.core.exceptions import error_payload
from modules.orders.constants import ChangeSource
from modules.orders.dtos import CheckoutDTO, OrderItemChangeDTO
from modules.orders.exceptions import (
    InsufficientStock,
    OrderLookupError,
    OrderNotFound,
    OrderValidationError,
    ProductNotFound,
    TransitionForbidden,
)
from modules.orders.filters import OrderFilter
from modules.orders.models import Order
from modules.orders.serializers import (
    CancelOrderSerializer,
    CheckoutSerializer,
    EditItemsSerializer,
    OrderListSerializer,
    OrderSerializer,
    StatusUpdateSerializer,
    TrackingNumberSerializer,
)
from modules.orders.services import OrderService

logger = structlog.get_logger(__name__)


def _code_for(exc: Exception) -> str:
    return re.sub(r"(?<!^)(?=[A-Z])", "_", type(exc).__name__).lower()


def _domain_error(exc: Exception) -> Response:
    """Map a domain exception to the HTTP status of its category."""
    if isinstance(exc, OrderValidationError):
        http_status, error_type = status.HTTP_400_BAD_REQUEST, "validation_error"
    elif isinstance(exc, (OrderLookupError, ProductNotFound)):
        http_status, error_type = status.HTTP_404_NOT_FOUND, "client_error"
    elif isinstance(exc, TransitionForbidden):
        http_status, error_type = status.HTTP_403_FORBIDDEN, "client_error"
    else:
        http_status, error_type = status.HTTP_409_CONFLICT, "client_error"
    logger.info("order.request_rejected", code=_code_for(exc), status_code=http_status)
    return Response(
        error_payload(str(exc), _code_for(exc), error_type=error_type),
        status=http_status,
    )


def _dto_error(exc: DTOValidationError) -> Response:
    detail = "; ".join(error["msg"] for error in exc.errors())
    return Response(
        error_payload(detail, "invalid", error_type="validation_error"),
        status=status.HTTP_400_BAD_REQUEST,
    )


DOMAIN_ERRORS = (
    OrderValidationError,
    OrderLookupError,
    ProductNotFound,
    TransitionForbidden,
    InsufficientStock,
)


class OrderViewSet(GenericViewSet):
    """ViewSet for Order operations.

    Does **not** extend ``ModelViewSet``: every write goes through
    ``OrderService``.  Clients see only their own orders; staff users act
    as managers.
    """

    queryset = Order.objects.all()
    filterset_class = OrderFilter
    search_fields = ["order_number", "contact_name", "contact_phone", "contact_email"]
    ordering_fields = ["created_at", "total_amount", "status"]
    ordering = ["-created_at", "-id"]
    filter_backends = [DjangoFilterBackend, SearchFilter, OrderingFilter]

    def __init__(self, **kwargs) -> None:
        super().__init__(**kwargs)
        self._service = OrderService()

    def get_permissions(self):
        if self.action == "create":
            return [permissions.AllowAny()]
        if self.action in {"partial_update", "items", "tracking", "payment"}:
            return [permissions.IsAdminUser()]
        return [permissions.IsAuthenticated()]

    def get_throttles(self) -> list[BaseThrottle]:
        throttle_scope: str | None
        if self.action == "create":
            throttle_scope = "order_creation"
        elif self.action in {"list", "retrieve"}:
            throttle_scope = "order_listing"
        else:
            throttle_scope = None
        self.throttle_scope = throttle_scope
        return super().get_throttles()

    def get_queryset(self):
        return self._service.list_orders(self.request.user)

    def _actor_id(self, request: Request) -> Optional[int]:
        return request.user.pk if request.user.is_authenticated else None

    def _detail(self, order: Order) -> Response:
        return Response(OrderSerializer(self._service.get_order(order.id)).data)

    # ------------------------------------------------------------------
    # Create
    # ------------------------------------------------------------------

    def create(self, request: Request) -> Response:
        """POST /api/v1/orders/

        Guests must send ``items``; authenticated clients without ``items``
        check out their server-side cart.
        """
        serializer = CheckoutSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = dict(serializer.validated_data)
        items = data.pop("items", None)
        actor_id = self._actor_id(request)

        if actor_id is None and not items:
            return Response(
                error_payload(
                    "Guest checkout requires items.",
                    "required",
                    error_type="validation_error",
                    attr="items",
                ),
                status=status.HTTP_400_BAD_REQUEST,
            )

        try:
            dto = self._service.build_order_request(
                actor_id,
                CheckoutDTO(**data),
                [(item["product_id"], item["quantity"]) for item in items]
                if items
                else None,
            )
            order = self._service.create_order(dto)
        except DTOValidationError as exc:
            return _dto_error(exc)
        except DOMAIN_ERRORS as exc:
            return _domain_error(exc)

        out = OrderSerializer(self._service.get_order(order.id))
        return Response(out.data, status=status.HTTP_201_CREATED)

    # ------------------------------------------------------------------
    # List / Retrieve
    # ------------------------------------------------------------------

    def list(self, request: Request) -> Response:
        """GET /api/v1/orders/

        Filtering (status, date range, total range), search and ordering
        come from ``filter_backends``.  Results are paginated.
        """
        queryset = self.filter_queryset(self.get_queryset())
        page = self.paginate_queryset(queryset)
        serializer = OrderListSerializer(page, many=True)
        return self.get_paginated_response(serializer.data)

    def retrieve(self, request: Request, pk: str | None = None) -> Response:
        """GET /api/v1/orders/{pk}/"""
        order = self.get_queryset().filter(pk=pk).first() if _is_uuid(pk) else None
        if order is None:
            return _domain_error(OrderNotFound(f"Order {pk} not found."))
        return Response(OrderSerializer(order).data)

    # ------------------------------------------------------------------
    # Manager actions
    # ------------------------------------------------------------------

    def partial_update(self, request: Request, pk: str | None = None) -> Response:
        """PATCH /api/v1/orders/{pk}/ - manager status transition."""
        serializer = StatusUpdateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        try:
            order = self._service.transition(
                pk,
                serializer.validated_data["status"],
                request.user.pk,
                ChangeSource.MANAGER,
                serializer.validated_data["comment"],
            )
        except DOMAIN_ERRORS as exc:
            return _domain_error(exc)
        return self._detail(order)

    @action(detail=True, methods=["put"])
    def items(self, request: Request, pk: str | None = None) -> Response:
        """PUT /api/v1/orders/{pk}/items/ - batch item edits."""
        serializer = EditItemsSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        try:
            changes = [
                OrderItemChangeDTO(**change)
                for change in serializer.validated_data["changes"]
            ]
            order = self._service.edit_items(
                pk, changes, request.user.pk, serializer.validated_data["comment"]
            )
        except DTOValidationError as exc:
            return _dto_error(exc)
        except DOMAIN_ERRORS as exc:
            return _domain_error(exc)
        return self._detail(order)

    @action(detail=True, methods=["post"])
    def tracking(self, request: Request, pk: str | None = None) -> Response:
        """POST /api/v1/orders/{pk}/tracking/"""
        serializer = TrackingNumberSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        try:
            order = self._service.set_tracking_number(
                pk, serializer.validated_data["tracking_number"], request.user.pk
            )
        except DOMAIN_ERRORS as exc:
            return _domain_error(exc)
        return self._detail(order)

    @action(detail=True, methods=["post"])
    def payment(self, request: Request, pk: str | None = None) -> Response:
        """POST /api/v1/orders/{pk}/payment/ - payment confirmed."""
        try:
            order = self._service.confirm_payment(pk, request.user.pk)
        except DOMAIN_ERRORS as exc:
            return _domain_error(exc)
        return self._detail(order)

    # ------------------------------------------------------------------
    # Client cancellation
    # ------------------------------------------------------------------

    @action(detail=True, methods=["post"])
    def cancel(self, request: Request, pk: str | None = None) -> Response:
        """POST /api/v1/orders/{pk}/cancel/

        Clients may cancel their own order while it is new or processing;
        stock is released in the same transaction.
        """
        serializer = CancelOrderSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        try:
            order = self._service.cancel_by_client(
                pk, request.user.pk, serializer.validated_data["reason"]
            )
        except DOMAIN_ERRORS as exc:
            return _domain_error(exc)
        return self._detail(order)


def _is_uuid(value: Optional[str]) -> bool:
    try:
        UUID(str(value))
    except ValueError:
        return False
    return True
