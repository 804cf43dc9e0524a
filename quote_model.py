from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Mapping, Optional

logger = logging.getLogger(__name__)


class FabricType(str, Enum):
    BO = "BO"
    BO1 = "BO1"
    SN = "SN"


TYPE_SEQUENCE = (FabricType.BO, FabricType.BO1, FabricType.SN)

# Fields a caller may address through QuoteModel.update_item_value.
EDITABLE_FIELDS = ("width", "height", "fabric_type", "line_price")


class QuoteDataError(ValueError):
    pass


def new_item_id() -> str:
    return f"item-{uuid.uuid4().hex}"


def next_fabric_type(current: Optional[FabricType]) -> FabricType:
    """
    Return the fabric type after `current` in TYPE_SEQUENCE.

    A missing type starts the cycle at the first entry.
    """
    if current is None or current not in TYPE_SEQUENCE:
        return TYPE_SEQUENCE[0]
    idx = TYPE_SEQUENCE.index(current)
    return TYPE_SEQUENCE[(idx + 1) % len(TYPE_SEQUENCE)]


@dataclass
class LineItem:
    item_id: str
    width: Optional[int] = None
    height: Optional[int] = None
    fabric_type: Optional[FabricType] = None
    line_price: Optional[float] = None

    def has_any_dimension(self) -> bool:
        return self.width is not None or self.height is not None

    def has_both_dimensions(self) -> bool:
        return self.width is not None and self.height is not None

    def is_priceable(self) -> bool:
        return self.has_both_dimensions() and self.fabric_type is not None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "item_id": self.item_id,
            "width": self.width,
            "height": self.height,
            "fabric_type": self.fabric_type.value if self.fabric_type is not None else None,
            "line_price": self.line_price,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "LineItem":
        if not isinstance(data, Mapping):
            raise QuoteDataError(f"Line item must be an object (got {type(data).__name__})")
        item_id = data.get("item_id")
        if not isinstance(item_id, str) or not item_id.strip():
            raise QuoteDataError("Line item is missing a valid 'item_id'")
        fabric_raw = data.get("fabric_type")
        fabric_type: Optional[FabricType] = None
        if fabric_raw is not None:
            try:
                fabric_type = FabricType(fabric_raw)
            except ValueError as exc:
                raise QuoteDataError(f"Unknown fabric type {fabric_raw!r} on {item_id}") from exc
        return cls(
            item_id=item_id,
            width=_optional_int(data.get("width"), "width"),
            height=_optional_int(data.get("height"), "height"),
            fabric_type=fabric_type,
            line_price=_optional_number(data.get("line_price"), "line_price"),
        )


@dataclass
class QuoteSummary:
    total_sum: Optional[float] = None


@dataclass
class Quote:
    items: List[LineItem] = field(default_factory=list)
    summary: QuoteSummary = field(default_factory=QuoteSummary)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "items": [item.to_dict() for item in self.items],
            "summary": {"total_sum": self.summary.total_sum},
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "Quote":
        if not isinstance(data, Mapping):
            raise QuoteDataError(f"Quote must be an object (got {type(data).__name__})")
        items_raw = data.get("items")
        if not isinstance(items_raw, list):
            raise QuoteDataError("Quote is missing its 'items' list")
        items = [LineItem.from_dict(raw) for raw in items_raw]
        seen = set()
        for item in items:
            if item.item_id in seen:
                raise QuoteDataError(f"Duplicate item_id {item.item_id!r}")
            seen.add(item.item_id)
        summary_raw = data.get("summary") or {}
        if not isinstance(summary_raw, Mapping):
            raise QuoteDataError("Quote 'summary' must be an object")
        summary = QuoteSummary(total_sum=_optional_number(summary_raw.get("total_sum"), "total_sum"))
        return cls(items=items, summary=summary)


def blank_quote() -> Quote:
    return Quote(items=[LineItem(item_id=new_item_id())])


def _optional_int(value: object, name: str) -> Optional[int]:
    if value is None:
        return None
    if isinstance(value, bool) or not isinstance(value, int):
        raise QuoteDataError(f"{name} must be an integer or null (got {value!r})")
    return value


def _optional_number(value: object, name: str) -> Optional[float]:
    if value is None:
        return None
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise QuoteDataError(f"{name} must be a number or null (got {value!r})")
    return value


class QuoteModel:
    """
    Ordered store of quote line items plus the summary.

    Pure data operations: no validation and no events. Callers decide policy
    and announce changes themselves.
    """

    def __init__(self, initial_quote: Optional[Quote] = None) -> None:
        self._quote = initial_quote if initial_quote is not None else blank_quote()
        self._ensure_not_empty()

    def get_quote(self) -> Quote:
        return self._quote

    def get_items(self) -> List[LineItem]:
        return self._quote.items

    def get_item(self, index: int) -> Optional[LineItem]:
        if 0 <= index < len(self._quote.items):
            return self._quote.items[index]
        return None

    def insert_item(self, index: int, item: LineItem) -> None:
        self._quote.items.insert(index, item)

    def delete_item(self, index: int) -> None:
        if 0 <= index < len(self._quote.items):
            del self._quote.items[index]
        self._ensure_not_empty()

    def update_item_value(self, index: int, field_name: str, value: Any) -> None:
        if field_name not in EDITABLE_FIELDS:
            raise QuoteDataError(f"Unknown line item field: {field_name!r}")
        item = self.get_item(index)
        if item is None:
            return
        setattr(item, field_name, value)

    def set_total(self, value: Optional[float]) -> None:
        self._quote.summary.total_sum = value

    def clear_total(self) -> None:
        self._quote.summary.total_sum = None

    def replace_quote(self, quote: Quote) -> None:
        self._quote = quote
        self._ensure_not_empty()

    def _ensure_not_empty(self) -> None:
        if not self._quote.items:
            logger.debug("Quote emptied; appending a blank line item")
            self._quote.items.append(LineItem(item_id=new_item_id()))
