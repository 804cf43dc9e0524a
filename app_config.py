from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Mapping, Optional

from dotenv import load_dotenv

from persistence_service import DEFAULT_STORAGE_KEY
from product_rules import ROLLER_BLIND

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"

SETTINGS_KEYS = (
    "QUOTE_STORE_DIR",
    "QUOTE_STORAGE_KEY",
    "QUOTE_PRICE_MATRIX_PATH",
    "QUOTE_PRODUCT_KIND",
    "QUOTE_LOG_LEVEL",
)


@dataclass(frozen=True)
class Settings:
    store_dir: Path
    storage_key: str
    price_matrix_path: Optional[Path]
    product_kind: str
    log_level: str


def _as_optional_str(value: object) -> Optional[str]:
    if not isinstance(value, str):
        return None
    v = value.strip()
    return v or None


def load_settings(environ: Optional[Mapping[str, str]] = None) -> Settings:
    """
    Read settings from the environment (after loading a local `.env`).

    Passing `environ` skips `.env` loading, which keeps tests hermetic.
    """
    if environ is None:
        load_dotenv()
        environ = os.environ

    store_dir = _as_optional_str(environ.get("QUOTE_STORE_DIR")) or ".quote_store"
    storage_key = _as_optional_str(environ.get("QUOTE_STORAGE_KEY")) or DEFAULT_STORAGE_KEY
    matrix_path = _as_optional_str(environ.get("QUOTE_PRICE_MATRIX_PATH"))
    product_kind = _as_optional_str(environ.get("QUOTE_PRODUCT_KIND")) or ROLLER_BLIND

    log_level = (_as_optional_str(environ.get("QUOTE_LOG_LEVEL")) or "INFO").upper()
    if not isinstance(logging.getLevelName(log_level), int):
        raise ValueError(f"Invalid QUOTE_LOG_LEVEL: {log_level!r}")

    return Settings(
        store_dir=Path(store_dir),
        storage_key=storage_key,
        price_matrix_path=Path(matrix_path) if matrix_path else None,
        product_kind=product_kind,
        log_level=log_level,
    )


def configure_logging(level: str = "INFO") -> None:
    logging.basicConfig(level=getattr(logging, level.upper(), logging.INFO), format=LOG_FORMAT)
