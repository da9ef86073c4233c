"""
registration/confidence.py

OCR confidence as a tagged value, and its normalisation to basis points.

The verification service reports confidence either as a fraction in [0, 1]
or as a percentage in [0, 100] and does not say which.  The adapter tags the
raw number once, at the API boundary; everything past that point works with
integer basis points (1 bps = 0.01 %).

Policy (must not change, downstream scoring depends on it):
    value > 1  -> percentage, divide by 100 first
    * 10000, round half up, clamp to [0, 10000]
"""

from __future__ import annotations

import math
from typing import Literal, Union

from pydantic import BaseModel

MAX_BPS = 10000

Unit = Literal["fraction", "percent", "bps"]


class Confidence(BaseModel):
    unit: Unit
    value: float

    @classmethod
    def from_raw(cls, raw: object) -> "Confidence":
        """Tag an untyped service value.  Missing / unparsable values count as 0."""
        try:
            value = float(raw) if raw is not None else 0.0
        except (TypeError, ValueError):
            value = 0.0
        if not math.isfinite(value):
            value = 0.0
        return cls(unit="percent" if value > 1 else "fraction", value=value)

    @property
    def bps(self) -> int:
        return to_basis_points(self)


def _round_half_up(x: float) -> int:
    return int(math.floor(x + 0.5))


def _clamp(bps: int) -> int:
    return max(0, min(MAX_BPS, bps))


def to_basis_points(confidence: Confidence) -> int:
    if confidence.unit == "bps":
        return _clamp(_round_half_up(confidence.value))
    fraction = confidence.value / 100 if confidence.unit == "percent" else confidence.value
    return _clamp(_round_half_up(fraction * MAX_BPS))


def normalize_confidence(value: Union[Confidence, float, int, str, None]) -> Confidence:
    """
    Return *value* as a ``bps`` Confidence.

    Already-normalised input passes through (clamped), so normalising twice
    gives the same result as normalising once.
    """
    if not isinstance(value, Confidence):
        value = Confidence.from_raw(value)
    return Confidence(unit="bps", value=to_basis_points(value))


def confidence_bps(raw: Union[Confidence, float, int, str, None]) -> int:
    """Shorthand: raw service value -> integer basis points."""
    return int(normalize_confidence(raw).value)
