from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, List, Mapping, Optional

from app_config import Settings
from event_aggregator import SHOW_NOTIFICATION, STATE_CHANGED, EventAggregator, Notification
from persistence_service import PersistenceService
from price_matrices import PriceMatrixConfig, load_price_matrix_config
from product_rules import ProductFactory
from quote_model import QuoteModel
from state_manager import StateManager, StateSnapshot

logger = logging.getLogger(__name__)


@dataclass
class QuoteSession:
    """
    One wired-up quote builder: bus, store, orchestrator and the latest output.

    `snapshot` and `notifications` are filled by bus subscribers, so a front
    end only has to dispatch intents and read these two fields back.
    """

    event_aggregator: EventAggregator
    quote_model: QuoteModel
    state_manager: StateManager
    snapshot: Optional[StateSnapshot] = None
    notifications: List[Notification] = field(default_factory=list)

    def dispatch(self, topic: str, payload: Optional[Mapping[str, Any]] = None) -> None:
        self.event_aggregator.publish(topic, dict(payload or {}))

    def drain_notifications(self) -> List[Notification]:
        out = list(self.notifications)
        self.notifications.clear()
        return out

    def _on_state_changed(self, snapshot: StateSnapshot) -> None:
        self.snapshot = snapshot

    def _on_notification(self, notification: Notification) -> None:
        self.notifications.append(notification)


def build_session(settings: Settings, *, price_config: Optional[PriceMatrixConfig] = None) -> QuoteSession:
    bus = EventAggregator()
    model = QuoteModel()
    manager = StateManager(
        quote_model=model,
        persistence_service=PersistenceService(settings.store_dir, settings.storage_key),
        product_factory=ProductFactory(),
        price_config=price_config or load_price_matrix_config(settings.price_matrix_path),
        event_aggregator=bus,
        product_kind=settings.product_kind,
    )
    session = QuoteSession(event_aggregator=bus, quote_model=model, state_manager=manager)
    bus.subscribe(STATE_CHANGED, session._on_state_changed)
    bus.subscribe(SHOW_NOTIFICATION, session._on_notification)
    # First render.
    manager.publish_state_change()
    logger.info("Quote session ready (store=%s)", settings.store_dir)
    return session
