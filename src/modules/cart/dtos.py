"""Cart line DTO handed to the order engine.

A line is a snapshot of what the client saw at checkout: product identity,
code, name, unit price for the client's type and the requested quantity.
"""

from __future__ import annotations

from decimal import Decimal
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, field_validator

from modules.core.money import line_total, to_money


class CartLineDTO(BaseModel):
    model_config = ConfigDict(frozen=True)

    product_id: UUID
    code: str
    name: str
    unit_price: Decimal = Field(gt=0)
    quantity: int = Field(ge=1)
    is_promo: bool = False

    @field_validator("unit_price")
    @classmethod
    def quantize_price(cls, v: Decimal) -> Decimal:
        return to_money(v)

    @property
    def subtotal(self) -> Decimal:
        return line_total(self.unit_price, self.quantity)
