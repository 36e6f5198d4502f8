"""Room type pricing with promotions applied.

Promotion types:
- percentage:     value is a multiplier (0.8 means 20% off)
- direct:         value is subtracted from the price
- spend_and_save: value is subtracted from the price

Several active promotions chain in the order given. A promotion bound to a
room type only discounts that room type. The discounted price never
goes below zero.
"""

from __future__ import annotations

from typing import Any, Iterable

PROMOTION_TYPES = ("direct", "percentage", "spend_and_save")


def calculate_discounted_price(price: float, promotion: dict[str, Any]) -> float:
    """Apply a single promotion to a price.

    Unknown promotion types leave the price unchanged.
    """
    value = float(promotion["value"])
    promo_type = promotion.get("type")
    if promo_type == "percentage":
        return price * value
    if promo_type in ("direct", "spend_and_save"):
        return price - value
    return price


def apply_discounts(
    room_types: Iterable[dict[str, Any]],
    promotions: list[dict[str, Any]],
) -> list[dict[str, Any]]:
    """Return copies of room types carrying ``discounted_price``.

    Args:
        room_types: Room type dicts with a ``price``.
        promotions: Promotions already filtered to those in effect, in the
                    order they should be applied.
    """
    result = []
    for room_type in room_types:
        price = float(room_type["price"])
        for promotion in promotions:
            scoped_to = promotion.get("room_type_id")
            if scoped_to is not None and scoped_to != room_type.get("id"):
                continue
            price = calculate_discounted_price(price, promotion)
        result.append({**room_type, "discounted_price": round(max(0.0, price), 2)})
    return result
