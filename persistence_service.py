from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from quote_model import Quote

logger = logging.getLogger(__name__)

DEFAULT_STORAGE_KEY = "rollerBlindQuoteData_v2"


@dataclass(frozen=True)
class SaveResult:
    success: bool
    error: Optional[str] = None


@dataclass(frozen=True)
class LoadResult:
    success: bool
    data: Optional[Quote] = None
    error: Optional[str] = None


class PersistenceService:
    """
    Save/load one quote under a fixed key, as `<store_dir>/<key>.json`.

    Storage faults come back as results; nothing raises to the caller.
    """

    def __init__(self, store_dir: Path, storage_key: str = DEFAULT_STORAGE_KEY) -> None:
        if not isinstance(storage_key, str) or not storage_key.strip():
            raise ValueError("storage_key must be a non-empty string")
        self.store_dir = Path(store_dir)
        self.storage_key = storage_key.strip()

    @property
    def path(self) -> Path:
        return self.store_dir / f"{self.storage_key}.json"

    def save(self, quote: Quote) -> SaveResult:
        try:
            payload = json.dumps(quote.to_dict(), ensure_ascii=False, indent=2)
            self.store_dir.mkdir(parents=True, exist_ok=True)
            # Write then rename so a failed write never leaves a truncated slot.
            tmp = self.path.with_suffix(".json.tmp")
            tmp.write_text(payload, encoding="utf-8")
            tmp.replace(self.path)
        except Exception as exc:
            logger.exception("Failed to save quote to %s", self.path)
            return SaveResult(success=False, error=str(exc) or type(exc).__name__)
        logger.info("Quote saved to %s (%d item(s))", self.path, len(quote.items))
        return SaveResult(success=True)

    def load(self) -> LoadResult:
        try:
            if not self.path.exists():
                return LoadResult(success=True, data=None)
            raw = json.loads(self.path.read_text(encoding="utf-8"))
            quote = Quote.from_dict(raw)
        except Exception as exc:
            logger.exception("Failed to load quote from %s", self.path)
            return LoadResult(success=False, error=str(exc) or type(exc).__name__)
        logger.info("Quote loaded from %s (%d item(s))", self.path, len(quote.items))
        return LoadResult(success=True, data=quote)

    def clear(self) -> SaveResult:
        try:
            self.path.unlink(missing_ok=True)
        except Exception as exc:
            logger.exception("Failed to clear saved quote at %s", self.path)
            return SaveResult(success=False, error=str(exc) or type(exc).__name__)
        return SaveResult(success=True)
