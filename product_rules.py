from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, List, Mapping, Optional, Tuple

from price_matrices import PriceMatrix, parse_size_key
from quote_model import LineItem, new_item_id

ROLLER_BLIND = "rollerBlind"


class UnknownProductError(KeyError):
    pass


@dataclass(frozen=True)
class ValidationRule:
    min: int
    max: int
    display_name: str

    def allows(self, value: int) -> bool:
        return self.min <= value <= self.max


@dataclass(frozen=True)
class PriceResult:
    price: Optional[float]
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.price is not None


class RollerBlindRules:
    """
    Roller-blind validation bounds, blank row template and matrix pricing.

    Sizes are whole centimetres. A size between brackets is priced at the
    next bracket up on each axis.
    """

    kind = ROLLER_BLIND

    _RULES: Mapping[str, ValidationRule] = {
        "width": ValidationRule(min=1, max=600, display_name="Width"),
        "height": ValidationRule(min=1, max=600, display_name="Height"),
    }

    def get_validation_rules(self) -> Dict[str, ValidationRule]:
        return dict(self._RULES)

    def get_initial_item_data(self) -> LineItem:
        return LineItem(item_id=new_item_id())

    def calculate_price(self, item: LineItem, price_matrix: Optional[PriceMatrix]) -> PriceResult:
        fabric = item.fabric_type.value if item.fabric_type is not None else "?"
        if item.width is None or item.height is None:
            return PriceResult(price=None, error="Width and height are required before pricing.")
        if not price_matrix:
            return PriceResult(price=None, error=f"No price matrix available for fabric {fabric}.")

        cells: Dict[Tuple[int, int], float] = {}
        for key, price in price_matrix.items():
            dims = parse_size_key(key)
            if dims is None or isinstance(price, bool) or not isinstance(price, (int, float)):
                continue
            cells[dims] = price

        widths = sorted({w for (w, _) in cells if w >= item.width})
        heights = sorted({h for (_, h) in cells if h >= item.height})
        # Prefer minimal overage: smallest width bracket first, then smallest height.
        for w in widths:
            for h in heights:
                if (w, h) in cells:
                    return PriceResult(price=cells[(w, h)])

        return PriceResult(
            price=None,
            error=f"No price found for {item.width}x{item.height} in the {fabric} price matrix.",
        )


class ProductFactory:
    def __init__(self) -> None:
        self._rules = {ROLLER_BLIND: RollerBlindRules()}

    def get_product_rules(self, kind: str) -> RollerBlindRules:
        try:
            return self._rules[kind]
        except KeyError:
            raise UnknownProductError(kind) from None

    def product_kinds(self) -> List[str]:
        return sorted(self._rules)
