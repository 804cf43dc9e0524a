from __future__ import annotations

import json
import logging
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Mapping, Optional, Tuple

from quote_model import FabricType

logger = logging.getLogger(__name__)

PriceMatrix = Mapping[str, float]

_SIZE_KEY_RE = re.compile(r"^\s*(\d+)\s*[xX]\s*(\d+)\s*$")


def size_key(width: int, height: int) -> str:
    return f"{int(width)}x{int(height)}"


def parse_size_key(key: str) -> Optional[Tuple[int, int]]:
    """
    Parse a "<width>x<height>" matrix key.

    Returns None for anything that is not two positive integers.
    """
    if not isinstance(key, str):
        return None
    m = _SIZE_KEY_RE.match(key)
    if not m:
        return None
    w, h = int(m.group(1)), int(m.group(2))
    if w <= 0 or h <= 0:
        return None
    return (w, h)


@dataclass(frozen=True)
class PriceMatrixConfig:
    source: str
    matrices: Mapping[FabricType, PriceMatrix]

    def get_price_matrix(self, fabric_type: Optional[FabricType]) -> Optional[PriceMatrix]:
        if fabric_type is None:
            return None
        return self.matrices.get(FabricType(fabric_type))

    def fabric_types(self) -> Tuple[FabricType, ...]:
        return tuple(self.matrices.keys())


def load_price_matrices(path: Path) -> PriceMatrixConfig:
    data = json.loads(Path(path).read_text(encoding="utf-8"))
    if not isinstance(data, dict):
        raise ValueError(f"Expected JSON object in {path}")

    matrices: Dict[FabricType, Dict[str, float]] = {}
    for code, raw_matrix in data.items():
        try:
            fabric = FabricType(str(code).strip())
        except ValueError:
            logger.warning("Skipping unknown fabric code %r in %s", code, path)
            continue
        if not isinstance(raw_matrix, dict):
            raise ValueError(f"Price matrix for {fabric.value} must be an object in {path}")
        cells: Dict[str, float] = {}
        for key, price in raw_matrix.items():
            dims = parse_size_key(key)
            if dims is None:
                continue
            if isinstance(price, bool) or not isinstance(price, (int, float)):
                continue
            cells[size_key(*dims)] = price
        if cells:
            matrices[fabric] = cells

    if not matrices:
        raise ValueError(f"No usable price matrices in {path}")
    logger.info("Loaded price matrices for %s from %s", ", ".join(f.value for f in matrices), path)
    return PriceMatrixConfig(source=str(path), matrices=matrices)


def _grid(widths: Tuple[int, ...], heights: Tuple[int, ...], base: int, per_width: int, per_height: int) -> Dict[str, float]:
    cells: Dict[str, float] = {}
    for wi, w in enumerate(widths):
        for hi, h in enumerate(heights):
            cells[size_key(w, h)] = base + wi * per_width + hi * per_height
    return cells


def sample_price_matrices() -> PriceMatrixConfig:
    """
    Built-in demo matrices (centimetre size brackets).

    Small enough to read at a glance; replace with a JSON file via
    QUOTE_PRICE_MATRIX_PATH for real price lists.
    """
    widths = (60, 90, 120, 150, 180, 210, 240)
    heights = (100, 150, 200, 250, 300)
    return PriceMatrixConfig(
        source="built-in sample",
        matrices={
            FabricType.BO: _grid(widths, heights, base=95, per_width=18, per_height=12),
            FabricType.BO1: _grid(widths, heights, base=110, per_width=21, per_height=14),
            FabricType.SN: _grid(widths, heights, base=125, per_width=24, per_height=16),
        },
    )


def load_price_matrix_config(path: Optional[Path]) -> PriceMatrixConfig:
    if path is None:
        return sample_price_matrices()
    return load_price_matrices(path)
