from __future__ import annotations

import tempfile
import unittest
from pathlib import Path
from typing import Any, List, Optional

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
from persistence_service import LoadResult, PersistenceService, SaveResult
from price_matrices import PriceMatrixConfig
from product_rules import ProductFactory
from quote_model import FabricType, LineItem, Quote, QuoteModel
from state_manager import ActiveCell, StateManager, StateSnapshot, UIState

_MATRIX = {"60x100": 95, "90x100": 113, "60x150": 107, "90x150": 125}


class _FailingPersistence:
    def save(self, quote: Quote) -> SaveResult:
        return SaveResult(success=False, error="disk full")

    def load(self) -> LoadResult:
        return LoadResult(success=False, error="corrupt payload")


class _Harness:
    def __init__(self, items: Optional[List[LineItem]] = None, persistence: Any = None) -> None:
        self.bus = EventAggregator()
        self.snapshots: List[StateSnapshot] = []
        self.notifications: List[Notification] = []
        self.bus.subscribe(STATE_CHANGED, self.snapshots.append)
        self.bus.subscribe(SHOW_NOTIFICATION, self.notifications.append)

        self._tmp = tempfile.TemporaryDirectory()
        self.model = QuoteModel(Quote(items=list(items)) if items is not None else None)
        self.manager = StateManager(
            quote_model=self.model,
            persistence_service=persistence or PersistenceService(Path(self._tmp.name), "test_quote"),
            product_factory=ProductFactory(),
            price_config=PriceMatrixConfig(
                source="test",
                matrices={FabricType.BO: dict(_MATRIX), FabricType.BO1: {"60x100": 120}},
            ),
            event_aggregator=self.bus,
        )

    def close(self) -> None:
        self._tmp.cleanup()

    def press(self, *keys: str) -> None:
        for key in keys:
            self.bus.publish(NUMERIC_KEY_PRESSED, {"key": key})

    def send(self, topic: str, payload: Optional[dict] = None) -> None:
        self.bus.publish(topic, payload or {})

    @property
    def ui(self) -> UIState:
        return self.manager.ui_state

    @property
    def items(self) -> List[LineItem]:
        return self.model.get_items()

    def messages(self) -> List[str]:
        return [n.message for n in self.notifications]


class StateManagerTestCase(unittest.TestCase):
    def harness(self, items: Optional[List[LineItem]] = None, persistence: Any = None) -> _Harness:
        h = _Harness(items, persistence)
        self.addCleanup(h.close)
        return h


class TestNumericKeys(StateManagerTestCase):
    def test_digits_and_delete_edit_the_accumulator(self) -> None:
        h = self.harness()
        h.press("1", "2", "3", "DEL")
        self.assertEqual(h.ui.input_value, "12")
        self.assertEqual(len(h.snapshots), 4)
        self.assertEqual(h.snapshots[-1].ui.input_value, "12")

    def test_unknown_key_publishes_unchanged(self) -> None:
        h = self.harness()
        h.press("7", "?")
        self.assertEqual(h.ui.input_value, "7")
        self.assertEqual(len(h.snapshots), 2)

    def test_scenario_a_first_entry_grows_the_table(self) -> None:
        h = self.harness()
        h.press("5", "ENT")
        self.assertEqual(h.items[0].width, 5)
        self.assertEqual(len(h.items), 2)
        self.assertFalse(h.items[1].has_any_dimension())
        self.assertEqual(h.ui.input_mode, "width")
        self.assertEqual(h.ui.active_cell, ActiveCell(row_index=1, column="width"))
        self.assertEqual(h.ui.input_value, "")
        # One publish for "5", exactly one for "ENT".
        self.assertEqual(len(h.snapshots), 2)

    def test_only_single_ascii_digits_are_accumulated(self) -> None:
        h = self.harness()
        h.press("4", "٣", "²", "12")
        self.assertEqual(h.ui.input_value, "4")
        self.assertEqual(len(h.snapshots), 4)
        h.press("ENT")
        self.assertEqual(h.items[0].width, 4)
        self.assertEqual(h.messages(), [])

    def test_out_of_range_value_is_rejected(self) -> None:
        h = self.harness()
        h.press("9", "9", "9", "9", "ENT")
        self.assertIsNone(h.items[0].width)
        self.assertEqual(len(h.items), 1)
        self.assertEqual(h.ui.input_value, "")
        self.assertEqual(h.messages(), ["Width must be between 1 and 600."])
        self.assertEqual(len(h.snapshots), 5)

    def test_zero_is_rejected_for_height(self) -> None:
        h = self.harness()
        h.press("H", "0", "ENT")
        self.assertIsNone(h.items[0].height)
        self.assertEqual(h.messages(), ["Height must be between 1 and 600."])

    def test_mode_switch_targets_first_missing_dimension(self) -> None:
        h = self.harness(
            [
                LineItem(item_id="a", width=60, height=100),
                LineItem(item_id="b", width=90, height=None),
                LineItem(item_id="c"),
            ]
        )
        h.press("H")
        self.assertEqual(h.ui.active_cell, ActiveCell(row_index=1, column="height"))
        h.press("W")
        self.assertEqual(h.ui.active_cell, ActiveCell(row_index=2, column="width"))

    def test_mode_switch_falls_back_to_last_row(self) -> None:
        h = self.harness([LineItem(item_id="a", width=60, height=100), LineItem(item_id="b", width=90, height=150)])
        h.press("H")
        self.assertEqual(h.ui.active_cell, ActiveCell(row_index=1, column="height"))

    def test_mode_switch_clears_selection_and_editing(self) -> None:
        h = self.harness([LineItem(item_id="a", width=60, height=100), LineItem(item_id="b")])
        h.send(TABLE_CELL_CLICKED, {"rowIndex": 0, "column": "width"})
        h.send(SEQUENCE_CELL_CLICKED, {"rowIndex": 0})
        h.press("H")
        self.assertFalse(h.ui.is_editing)
        self.assertIsNone(h.ui.selected_row_index)

    def test_committing_empty_clears_dimension_and_price(self) -> None:
        h = self.harness(
            [
                LineItem(item_id="a", width=60, height=100, fabric_type=FabricType.BO, line_price=95),
                LineItem(item_id="b"),
            ]
        )
        h.send(TABLE_CELL_CLICKED, {"rowIndex": 0, "column": "height"})
        self.assertEqual(h.ui.input_value, "100")
        h.press("DEL", "DEL", "DEL", "ENT")
        self.assertIsNone(h.items[0].height)
        self.assertIsNone(h.items[0].line_price)
        self.assertEqual(h.ui.active_cell, ActiveCell(row_index=0, column="height"))

    def test_editing_commit_does_not_grow_the_table(self) -> None:
        h = self.harness([LineItem(item_id="a", width=60, height=100)])
        h.send(TABLE_CELL_CLICKED, {"rowIndex": 0, "column": "width"})
        self.assertTrue(h.ui.is_editing)
        h.press("DEL", "DEL", "9", "0", "ENT")
        self.assertEqual(h.items[0].width, 90)
        self.assertEqual(len(h.items), 1)
        self.assertFalse(h.ui.is_editing)

    def test_commit_on_middle_row_does_not_grow(self) -> None:
        h = self.harness([LineItem(item_id="a"), LineItem(item_id="b")])
        h.press("6", "0", "ENT")
        self.assertEqual(len(h.items), 2)
        self.assertEqual(h.ui.active_cell.row_index, 1)


class TestTableClicks(StateManagerTestCase):
    def test_dimension_click_enters_editing(self) -> None:
        h = self.harness([LineItem(item_id="a", width=60, height=None), LineItem(item_id="b")])
        h.send(TABLE_CELL_CLICKED, {"rowIndex": 0, "column": "height"})
        self.assertEqual(h.ui.input_mode, "height")
        self.assertEqual(h.ui.active_cell, ActiveCell(row_index=0, column="height"))
        self.assertTrue(h.ui.is_editing)
        self.assertEqual(h.ui.input_value, "")

    def test_missing_row_click_does_not_publish(self) -> None:
        h = self.harness()
        h.send(SEQUENCE_CELL_CLICKED, {"rowIndex": 0})
        published = len(h.snapshots)
        h.send(TABLE_CELL_CLICKED, {"rowIndex": 3, "column": "width"})
        self.assertEqual(len(h.snapshots), published)
        self.assertIsNone(h.ui.selected_row_index)

    def test_type_click_cycles_fabric(self) -> None:
        h = self.harness([LineItem(item_id="a", width=60, height=100)])
        seen = []
        for _ in range(4):
            h.send(TABLE_CELL_CLICKED, {"rowIndex": 0, "column": "TYPE"})
            seen.append(h.items[0].fabric_type)
        self.assertEqual(seen, [FabricType.BO, FabricType.BO1, FabricType.SN, FabricType.BO])

    def test_type_click_needs_both_dimensions(self) -> None:
        h = self.harness([LineItem(item_id="a", width=60)])
        h.send(TABLE_CELL_CLICKED, {"rowIndex": 0, "column": "TYPE"})
        self.assertIsNone(h.items[0].fabric_type)
        self.assertEqual(len(h.snapshots), 1)

    def test_sequence_click_toggles_selection(self) -> None:
        h = self.harness([LineItem(item_id="a", width=60), LineItem(item_id="b")])
        h.send(SEQUENCE_CELL_CLICKED, {"rowIndex": 1})
        self.assertEqual(h.ui.selected_row_index, 1)
        h.send(SEQUENCE_CELL_CLICKED, {"rowIndex": 0})
        self.assertEqual(h.ui.selected_row_index, 0)
        h.send(SEQUENCE_CELL_CLICKED, {"rowIndex": 0})
        self.assertIsNone(h.ui.selected_row_index)
        self.assertEqual(len(h.snapshots), 3)

    def test_sequence_click_on_missing_row_is_ignored(self) -> None:
        h = self.harness()
        for row_index in (7, -1, "0", True, None):
            h.send(SEQUENCE_CELL_CLICKED, {"rowIndex": row_index})
        self.assertIsNone(h.ui.selected_row_index)
        self.assertEqual(h.snapshots, [])
        self.assertEqual(len(h.items), 1)


class TestHeaderClick(StateManagerTestCase):
    def test_scenario_b_untyped_rows_get_first_type(self) -> None:
        h = self.harness([LineItem(item_id="a", width=60, height=100), LineItem(item_id="b")])
        h.send(TABLE_HEADER_CLICKED, {"column": "TYPE"})
        self.assertEqual(h.items[0].fabric_type, FabricType.BO)
        self.assertIsNone(h.items[1].fabric_type)
        self.assertEqual(len(h.snapshots), 1)

    def test_next_type_follows_first_dimensioned_row(self) -> None:
        h = self.harness(
            [
                LineItem(item_id="a", width=60, height=100, fabric_type=FabricType.BO1),
                LineItem(item_id="b", width=90, fabric_type=FabricType.BO),
                LineItem(item_id="c"),
            ]
        )
        h.send(TABLE_HEADER_CLICKED, {"column": "TYPE"})
        self.assertEqual([i.fabric_type for i in h.items], [FabricType.SN, FabricType.SN, None])

    def test_other_headers_are_ignored(self) -> None:
        h = self.harness([LineItem(item_id="a", width=60, height=100)])
        h.send(TABLE_HEADER_CLICKED, {"column": "width"})
        self.assertIsNone(h.items[0].fabric_type)
        self.assertEqual(h.snapshots, [])


class TestRowActions(StateManagerTestCase):
    def test_insert_requires_selection(self) -> None:
        h = self.harness()
        h.send(USER_REQUESTED_INSERT_ROW)
        self.assertEqual(h.messages(), ["Please select a row by clicking its number before inserting."])
        self.assertEqual(h.snapshots, [])
        self.assertEqual(len(h.items), 1)

    def test_insert_after_trailing_blank_is_refused(self) -> None:
        h = self.harness([LineItem(item_id="a", width=60), LineItem(item_id="b")])
        h.send(SEQUENCE_CELL_CLICKED, {"rowIndex": 1})
        h.send(USER_REQUESTED_INSERT_ROW)
        self.assertEqual(h.messages(), ["Cannot insert after the final empty row."])
        self.assertEqual(len(h.items), 2)

    def test_insert_after_selection(self) -> None:
        h = self.harness([LineItem(item_id="a", width=60), LineItem(item_id="b", width=90), LineItem(item_id="c")])
        h.send(SEQUENCE_CELL_CLICKED, {"rowIndex": 0})
        h.send(USER_REQUESTED_INSERT_ROW)
        self.assertEqual([i.item_id for i in h.items][0], "a")
        self.assertEqual(len(h.items), 4)
        self.assertFalse(h.items[1].has_any_dimension())
        self.assertEqual(h.items[2].item_id, "b")
        self.assertIsNone(h.ui.selected_row_index)

    def test_delete_requires_selection(self) -> None:
        h = self.harness()
        h.send(USER_REQUESTED_DELETE_ROW)
        self.assertEqual(h.messages(), ["Please select a row by clicking its number before deleting."])

    def test_scenario_c_sole_blank_row_cannot_be_deleted(self) -> None:
        h = self.harness()
        first_id = h.items[0].item_id
        h.send(SEQUENCE_CELL_CLICKED, {"rowIndex": 0})
        published = len(h.snapshots)
        h.send(USER_REQUESTED_DELETE_ROW)
        self.assertEqual(h.messages(), ["Cannot delete the final empty row."])
        self.assertEqual([i.item_id for i in h.items], [first_id])
        self.assertEqual(len(h.snapshots), published)

    def test_trailing_blank_row_cannot_be_deleted_behind_other_rows(self) -> None:
        h = self.harness([LineItem(item_id="a", width=60), LineItem(item_id="b")])
        h.send(SEQUENCE_CELL_CLICKED, {"rowIndex": 1})
        published = len(h.snapshots)
        h.send(USER_REQUESTED_DELETE_ROW)
        self.assertEqual([i.item_id for i in h.items], ["a", "b"])
        self.assertEqual(h.messages(), ["Cannot delete the final empty row."])
        self.assertEqual(len(h.snapshots), published)

    def test_delete_keeps_active_cell_in_range(self) -> None:
        h = self.harness([LineItem(item_id="a", width=60, height=100), LineItem(item_id="b", width=90, height=150)])
        h.press("H")
        self.assertEqual(h.ui.active_cell.row_index, 1)
        h.send(SEQUENCE_CELL_CLICKED, {"rowIndex": 1})
        h.send(USER_REQUESTED_DELETE_ROW)
        self.assertEqual([i.item_id for i in h.items], ["a"])
        self.assertEqual(h.ui.active_cell.row_index, 0)
        self.assertIsNone(h.ui.selected_row_index)

    def test_repeated_deletes_never_empty_the_quote(self) -> None:
        h = self.harness([LineItem(item_id=f"r{i}", width=60 + i) for i in range(4)])
        for _ in range(6):
            h.send(SEQUENCE_CELL_CLICKED, {"rowIndex": 0})
            h.send(USER_REQUESTED_DELETE_ROW)
            self.assertGreaterEqual(len(h.items), 1)
            for snap in h.snapshots:
                self.assertLess(snap.ui.active_cell.row_index, len(snap.quote_data.items))


class TestPricingAndTotals(StateManagerTestCase):
    def test_prices_complete_rows_and_reports_gaps(self) -> None:
        h = self.harness(
            [
                LineItem(item_id="a", width=60, height=100, fabric_type=FabricType.BO),
                LineItem(item_id="b", width=500, height=100, fabric_type=FabricType.BO, line_price=42),
                LineItem(item_id="c", width=60, height=100, fabric_type=FabricType.SN),
                LineItem(item_id="d", width=60, height=100),
            ]
        )
        h.send(USER_REQUESTED_PRICE_CALCULATION)
        self.assertEqual(h.items[0].line_price, 95)
        self.assertEqual(h.items[1].line_price, 42)
        self.assertIsNone(h.items[2].line_price)
        self.assertIsNone(h.items[3].line_price)
        self.assertEqual(len(h.notifications), 2)
        self.assertTrue(all(n.type == "error" for n in h.notifications))
        self.assertEqual(len(h.snapshots), 1)

    def test_unchanged_prices_do_not_publish(self) -> None:
        h = self.harness([LineItem(item_id="a", width=60, height=100, fabric_type=FabricType.BO, line_price=95)])
        h.send(USER_REQUESTED_PRICE_CALCULATION)
        self.assertEqual(h.snapshots, [])

    def test_summation_treats_missing_prices_as_zero(self) -> None:
        h = self.harness(
            [
                LineItem(item_id="a", line_price=95),
                LineItem(item_id="b", line_price=None),
                LineItem(item_id="c", line_price=120.5),
            ]
        )
        h.send(USER_REQUESTED_SUMMATION)
        self.assertEqual(h.model.get_quote().summary.total_sum, 215.5)
        self.assertEqual(h.snapshots[-1].quote_data.summary.total_sum, 215.5)


class TestPersistenceIntents(StateManagerTestCase):
    def test_scenario_d_load_without_save(self) -> None:
        h = self.harness()
        h.send(USER_REQUESTED_LOAD)
        self.assertEqual(h.messages(), ["No saved quote found."])
        self.assertEqual(h.snapshots, [])

    def test_save_then_load_restores_quote(self) -> None:
        h = self.harness()
        h.press("6", "0", "ENT", "H", "1", "0", "0", "ENT")
        h.send(TABLE_HEADER_CLICKED, {"column": "TYPE"})
        h.send(USER_REQUESTED_PRICE_CALCULATION)
        saved = h.model.get_quote().to_dict()

        h.send(USER_REQUESTED_SAVE)
        h.send(USER_REQUESTED_NEW_QUOTE)
        self.assertEqual(len(h.items), 1)
        self.assertEqual(h.ui, UIState())

        published = len(h.snapshots)
        h.send(USER_REQUESTED_LOAD)
        self.assertEqual(h.model.get_quote().to_dict(), saved)
        self.assertEqual(len(h.snapshots), published + 1)
        self.assertEqual(h.messages()[-2:], ["Quote saved successfully!", "Quote loaded successfully!"])
        self.assertEqual(h.ui.active_cell, ActiveCell(row_index=1, column="width"))

    def test_persistence_failures_become_notifications(self) -> None:
        h = self.harness(persistence=_FailingPersistence())
        h.send(USER_REQUESTED_SAVE)
        h.send(USER_REQUESTED_LOAD)
        self.assertEqual(h.messages(), ["Error: Could not save quote.", "Error: Could not load quote."])
        self.assertTrue(all(n.type == "error" for n in h.notifications))
        self.assertEqual(h.snapshots, [])


class TestSnapshots(StateManagerTestCase):
    def test_snapshot_is_detached_from_store(self) -> None:
        h = self.harness()
        h.press("1")
        snap = h.snapshots[-1]
        snap.quote_data.items[0].width = 999
        self.assertIsNone(h.items[0].width)

    def test_unexpected_errors_are_contained(self) -> None:
        h = self.harness()

        def _boom(_: object) -> None:
            raise RuntimeError("render failed")

        h.bus.subscribe(STATE_CHANGED, _boom)
        with self.assertLogs("state_manager", level="ERROR"):
            h.press("1")
        self.assertEqual(h.messages(), ["Error: numericKeyPressed failed."])

    def test_unknown_product_kind_is_contained(self) -> None:
        h = self.harness([LineItem(item_id="a", width=60), LineItem(item_id="b")])
        h.send(SEQUENCE_CELL_CLICKED, {"rowIndex": 0})
        with self.assertLogs("state_manager", level="ERROR"):
            h.send(USER_REQUESTED_INSERT_ROW, {"product_kind": "venetian"})
        self.assertEqual(h.messages(), ["Error: userRequestedInsertRow failed."])
        self.assertEqual(len(h.items), 2)


if __name__ == "__main__":
    unittest.main()
