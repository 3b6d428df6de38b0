"""Loyalty program exceptions."""

from __future__ import annotations


class InsufficientPoints(Exception):
    """A deduction would drive the point balance below zero."""

    def __init__(self, available: int, requested: int) -> None:
        self.available = available
        self.requested = requested
        super().__init__(
            f"Not enough loyalty points: requested {requested}, available {available}."
        )
