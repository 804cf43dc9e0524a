from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Callable, Dict, List

logger = logging.getLogger(__name__)

# Inbound intents
NUMERIC_KEY_PRESSED = "numericKeyPressed"
TABLE_CELL_CLICKED = "tableCellClicked"
TABLE_HEADER_CLICKED = "tableHeaderClicked"
SEQUENCE_CELL_CLICKED = "sequenceCellClicked"
USER_REQUESTED_INSERT_ROW = "userRequestedInsertRow"
USER_REQUESTED_DELETE_ROW = "userRequestedDeleteRow"
USER_REQUESTED_PRICE_CALCULATION = "userRequestedPriceCalculation"
USER_REQUESTED_SUMMATION = "userRequestedSummation"
USER_REQUESTED_SAVE = "userRequestedSave"
USER_REQUESTED_LOAD = "userRequestedLoad"
USER_REQUESTED_NEW_QUOTE = "userRequestedNewQuote"

# Outbound events
STATE_CHANGED = "stateChanged"
SHOW_NOTIFICATION = "showNotification"

Handler = Callable[[Any], None]


@dataclass(frozen=True)
class Notification:
    message: str
    type: str = "info"


class EventAggregator:
    """
    Synchronous in-process publish/subscribe.

    Handlers run immediately, in subscription order, once per publish.
    """

    def __init__(self) -> None:
        self._subscribers: Dict[str, List[Handler]] = {}

    def subscribe(self, topic: str, handler: Handler) -> None:
        self._subscribers.setdefault(topic, []).append(handler)

    def publish(self, topic: str, payload: Any = None) -> None:
        handlers = list(self._subscribers.get(topic, ()))
        logger.debug("publish %s -> %d subscriber(s)", topic, len(handlers))
        for handler in handlers:
            handler(payload)

    def subscriber_count(self, topic: str) -> int:
        return len(self._subscribers.get(topic, ()))
