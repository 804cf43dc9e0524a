from __future__ import annotations

import copy
import logging
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any, Callable, Mapping, Optional

from event_aggregator import (
    NUMERIC_KEY_PRESSED,
    SEQUENCE_CELL_CLICKED,
    SHOW_NOTIFICATION,
    STATE_CHANGED,
    TABLE_CELL_CLICKED,
    TABLE_HEADER_CLICKED,
    USER_REQUESTED_DELETE_ROW,
    USER_REQUESTED_INSERT_ROW,
    USER_REQUESTED_LOAD,
    USER_REQUESTED_NEW_QUOTE,
    USER_REQUESTED_PRICE_CALCULATION,
    USER_REQUESTED_SAVE,
    USER_REQUESTED_SUMMATION,
    EventAggregator,
    Notification,
)
from persistence_service import PersistenceService
from price_matrices import PriceMatrixConfig
from product_rules import ROLLER_BLIND, ProductFactory, RollerBlindRules
from quote_model import LineItem, Quote, QuoteModel, next_fabric_type

logger = logging.getLogger(__name__)

WIDTH = "width"
HEIGHT = "height"
TYPE_COLUMN = "TYPE"
DIMENSIONS = (WIDTH, HEIGHT)

KEY_DELETE = "DEL"
KEY_ENTER = "ENT"
KEY_MODES = {"W": WIDTH, "H": HEIGHT}
DIGITS = "0123456789"


class View(str, Enum):
    QUICK_QUOTE = "QUICK_QUOTE"


@dataclass(frozen=True)
class ActiveCell:
    row_index: int = 0
    column: str = WIDTH


@dataclass(frozen=True)
class UIState:
    input_value: str = ""
    input_mode: str = WIDTH
    is_editing: bool = False
    active_cell: ActiveCell = field(default_factory=ActiveCell)
    selected_row_index: Optional[int] = None
    current_view: View = View.QUICK_QUOTE


@dataclass(frozen=True)
class StateSnapshot:
    ui: UIState
    quote_data: Quote


class StateManager:
    """
    Orchestrates keypad input, table clicks and quote actions.

    Every inbound intent is handled to completion. UI transitions are pure
    functions returning a new UIState; only the top-level handler publishes,
    so each intent yields at most one `stateChanged`.
    """

    def __init__(
        self,
        *,
        quote_model: QuoteModel,
        persistence_service: PersistenceService,
        product_factory: ProductFactory,
        price_config: PriceMatrixConfig,
        event_aggregator: EventAggregator,
        product_kind: str = ROLLER_BLIND,
    ) -> None:
        self.quote_model = quote_model
        self.persistence_service = persistence_service
        self.product_factory = product_factory
        self.price_config = price_config
        self.event_aggregator = event_aggregator
        self.product_kind = product_kind
        # Fails fast on a misconfigured product kind.
        self.product_factory.get_product_rules(product_kind)

        self.ui_state = UIState()
        self._subscribe()
        logger.info("StateManager initialized (product_kind=%s)", product_kind)

    def _subscribe(self) -> None:
        routes: Mapping[str, Callable[[Mapping[str, Any], str], None]] = {
            NUMERIC_KEY_PRESSED: lambda d, kind: self._handle_numeric_key_press(str(d.get("key", "")), kind),
            TABLE_CELL_CLICKED: lambda d, kind: self._handle_table_cell_click(d.get("rowIndex"), d.get("column")),
            TABLE_HEADER_CLICKED: lambda d, kind: self._handle_table_header_click(d.get("column")),
            SEQUENCE_CELL_CLICKED: lambda d, kind: self._handle_sequence_cell_click(d.get("rowIndex")),
            USER_REQUESTED_INSERT_ROW: lambda d, kind: self._handle_insert_row(kind),
            USER_REQUESTED_DELETE_ROW: lambda d, kind: self._handle_delete_row(),
            USER_REQUESTED_PRICE_CALCULATION: lambda d, kind: self._handle_price_calculation_request(kind),
            USER_REQUESTED_SUMMATION: lambda d, kind: self._handle_summation_request(),
            USER_REQUESTED_SAVE: lambda d, kind: self._handle_save(),
            USER_REQUESTED_LOAD: lambda d, kind: self._handle_load(),
            USER_REQUESTED_NEW_QUOTE: lambda d, kind: self._handle_new_quote(kind),
        }
        for topic, route in routes.items():
            self.event_aggregator.subscribe(topic, self._guarded(topic, route))

    def _guarded(self, topic: str, route: Callable[[Mapping[str, Any], str], None]) -> Callable[[Any], None]:
        def handler(payload: Any) -> None:
            data: Mapping[str, Any] = payload if isinstance(payload, Mapping) else {}
            kind = str(data.get("product_kind") or self.product_kind)
            logger.debug("intent %s %r", topic, dict(data))
            try:
                route(data, kind)
            except Exception:
                logger.exception("Handler for %s failed", topic)
                self._notify(f"Error: {topic} failed.", type="error")

        return handler

    # ----------------------------------------------------------------- output

    def get_state(self) -> StateSnapshot:
        return StateSnapshot(ui=self.ui_state, quote_data=copy.deepcopy(self.quote_model.get_quote()))

    def publish_state_change(self) -> None:
        snapshot = self.get_state()
        logger.debug(
            "stateChanged mode=%s active=%s input=%r",
            snapshot.ui.input_mode,
            snapshot.ui.active_cell,
            snapshot.ui.input_value,
        )
        self.event_aggregator.publish(STATE_CHANGED, snapshot)

    def _notify(self, message: str, *, type: str = "info") -> None:
        self.event_aggregator.publish(SHOW_NOTIFICATION, Notification(message=message, type=type))

    def _rules(self, product_kind: str) -> RollerBlindRules:
        return self.product_factory.get_product_rules(product_kind)

    # ------------------------------------------------------------ transitions

    def _switch_mode(self, state: UIState, mode: str) -> UIState:
        """
        Enter `mode` and target the first row missing that dimension
        (or the last row when none is missing).
        """
        items = self.quote_model.get_items()
        row_index = len(items) - 1
        for idx, item in enumerate(items):
            if getattr(item, mode) in (None, ""):
                row_index = idx
                break
        return replace(
            state,
            input_mode=mode,
            is_editing=False,
            selected_row_index=None,
            active_cell=ActiveCell(row_index=row_index, column=mode),
        )

    def _commit_value(self, state: UIState, product_kind: str) -> UIState:
        rules = self._rules(product_kind)
        rule = rules.get_validation_rules()[state.input_mode]
        raw = state.input_value
        value: Optional[int]
        try:
            value = int(raw, 10) if raw != "" else None
        except ValueError:
            value = None
            valid = False
        else:
            valid = value is None or rule.allows(value)

        if not valid:
            logger.warning("Rejected %s=%r (allowed %d..%d)", state.input_mode, raw, rule.min, rule.max)
            self._notify(f"{rule.display_name} must be between {rule.min} and {rule.max}.")
            return replace(state, input_value="")

        row_index = state.active_cell.row_index
        self.quote_model.update_item_value(row_index, state.input_mode, value)
        if state.input_mode in DIMENSIONS and value is None:
            self.quote_model.update_item_value(row_index, "line_price", None)

        items = self.quote_model.get_items()
        target = self.quote_model.get_item(row_index)
        if state.is_editing:
            state = replace(state, is_editing=False)
        elif target is not None and row_index == len(items) - 1 and target.has_any_dimension():
            self.quote_model.insert_item(len(items), rules.get_initial_item_data())

        return self._switch_mode(replace(state, input_value=""), state.input_mode)

    # --------------------------------------------------------------- handlers

    def _handle_numeric_key_press(self, key: str, product_kind: str) -> None:
        state = self.ui_state
        # Single ASCII digits only; input_value must stay parseable.
        if len(key) == 1 and key in DIGITS:
            state = replace(state, input_value=state.input_value + key)
        elif key == KEY_DELETE:
            state = replace(state, input_value=state.input_value[:-1])
        elif key in KEY_MODES:
            state = self._switch_mode(state, KEY_MODES[key])
        elif key == KEY_ENTER:
            state = self._commit_value(state, product_kind)
        self.ui_state = state
        self.publish_state_change()

    def _handle_table_cell_click(self, row_index: Any, column: Any) -> None:
        state = replace(self.ui_state, selected_row_index=None)
        item = self._existing_row(row_index)
        if item is None:
            # Selection is still dropped; the next publish shows it.
            self.ui_state = state
            return

        if column in DIMENSIONS:
            current = getattr(item, column)
            state = replace(
                state,
                input_mode=column,
                active_cell=ActiveCell(row_index=row_index, column=column),
                is_editing=True,
                input_value="" if current is None else str(current),
            )
        elif column == TYPE_COLUMN and item.has_both_dimensions():
            self.quote_model.update_item_value(row_index, "fabric_type", next_fabric_type(item.fabric_type))

        self.ui_state = state
        self.publish_state_change()

    def _handle_sequence_cell_click(self, row_index: Any) -> None:
        if self._existing_row(row_index) is None:
            return
        selected = None if self.ui_state.selected_row_index == row_index else row_index
        self.ui_state = replace(self.ui_state, selected_row_index=selected)
        self.publish_state_change()

    def _handle_table_header_click(self, column: Any) -> None:
        if column != TYPE_COLUMN:
            return
        items = self.quote_model.get_items()
        first = next((item for item in items if item.has_any_dimension()), None)
        next_type = next_fabric_type(first.fabric_type if first is not None else None)
        for idx, item in enumerate(items):
            if item.has_any_dimension():
                self.quote_model.update_item_value(idx, "fabric_type", next_type)
        self.publish_state_change()

    def _existing_row(self, row_index: Any) -> Optional[LineItem]:
        if not isinstance(row_index, int) or isinstance(row_index, bool):
            return None
        return self.quote_model.get_item(row_index)

    def _is_trailing_blank(self, row_index: int) -> bool:
        items = self.quote_model.get_items()
        item = self.quote_model.get_item(row_index)
        return item is not None and row_index == len(items) - 1 and not item.has_any_dimension()

    def _selected_row(self, action: str) -> Optional[int]:
        selected = self.ui_state.selected_row_index
        if selected is None or self.quote_model.get_item(selected) is None:
            self._notify(f"Please select a row by clicking its number before {action}.")
            return None
        return selected

    def _handle_insert_row(self, product_kind: str) -> None:
        selected = self._selected_row("inserting")
        if selected is None:
            return
        if self._is_trailing_blank(selected):
            self._notify("Cannot insert after the final empty row.")
            return
        self.quote_model.insert_item(selected + 1, self._rules(product_kind).get_initial_item_data())
        self.ui_state = replace(self.ui_state, selected_row_index=None)
        self.publish_state_change()

    def _handle_delete_row(self) -> None:
        selected = self._selected_row("deleting")
        if selected is None:
            return
        if self._is_trailing_blank(selected):
            self._notify("Cannot delete the final empty row.")
            return
        self.quote_model.delete_item(selected)
        last_row = len(self.quote_model.get_items()) - 1
        active = self.ui_state.active_cell
        if active.row_index > last_row:
            active = replace(active, row_index=last_row)
        self.ui_state = replace(self.ui_state, selected_row_index=None, active_cell=active)
        self.publish_state_change()

    def _handle_price_calculation_request(self, product_kind: str) -> None:
        rules = self._rules(product_kind)
        changed = False
        for idx, item in enumerate(self.quote_model.get_items()):
            if not item.is_priceable():
                continue
            matrix = self.price_config.get_price_matrix(item.fabric_type)
            result = rules.calculate_price(item, matrix)
            if result.price is not None:
                if item.line_price != result.price:
                    self.quote_model.update_item_value(idx, "line_price", result.price)
                    changed = True
            elif result.error:
                logger.warning("Row %d not priced: %s", idx, result.error)
                self._notify(result.error, type="error")
        if changed:
            self.publish_state_change()

    def _handle_summation_request(self) -> None:
        total = sum(item.line_price or 0 for item in self.quote_model.get_items())
        self.quote_model.set_total(total)
        self.publish_state_change()

    def _handle_save(self) -> None:
        result = self.persistence_service.save(self.quote_model.get_quote())
        if result.success:
            self._notify("Quote saved successfully!")
        else:
            logger.error("Save failed: %s", result.error)
            self._notify("Error: Could not save quote.", type="error")

    def _handle_load(self) -> None:
        result = self.persistence_service.load()
        if not result.success:
            logger.error("Load failed: %s", result.error)
            self._notify("Error: Could not load quote.", type="error")
            return
        if result.data is None:
            self._notify("No saved quote found.")
            return
        self.quote_model.replace_quote(result.data)
        state = replace(self.ui_state, input_value="", is_editing=False)
        self.ui_state = self._switch_mode(state, state.input_mode)
        self.publish_state_change()
        self._notify("Quote loaded successfully!")

    def _handle_new_quote(self, product_kind: str) -> None:
        blank = self._rules(product_kind).get_initial_item_data()
        self.quote_model.replace_quote(Quote(items=[blank]))
        self.ui_state = UIState()
        self.publish_state_change()
