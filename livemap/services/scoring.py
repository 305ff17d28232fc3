"""
scoring.py — Per-user contribution to the play and purified totals.

FORMULA
───────
For each result payload with a positive maxScore:

    max_units = floor(maxScore / unit_value)
    purified += floor(max_units * clearRate / 100)
    plays    += 1

Payloads with maxScore <= 0 are attempted-but-unscored stages: they count
neither as a play nor towards purification. Malformed payloads (not a dict,
non-numeric maxScore) are skipped the same way. clearRate is clamped to
[0, 100]; a missing clearRate counts as 0.

USAGE
─────
    from livemap.services.scoring import extract_contribution

    extract_contribution({"r1": {"maxScore": 1000, "clearRate": 50}})
    # → Contribution(plays=1, purified=5)     (unit_value=100)

The function is pure: calling it twice on the same payload gives the same
answer, so callers decide whether they accumulate or rescan.
"""

from __future__ import annotations

import math
from typing import Any, Mapping, NamedTuple, Optional

DEFAULT_UNIT_VALUE = 100


class Contribution(NamedTuple):
    plays: int
    purified: int


def _as_number(value: Any) -> Optional[float]:
    # bool is an int subclass but never a valid score
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    if math.isnan(value) or math.isinf(value):
        return None
    return float(value)


def purified_units(max_score: float, clear_rate: float, unit_value: int = DEFAULT_UNIT_VALUE) -> int:
    """Purified units for one scored result."""
    max_units = math.floor(max_score / unit_value)
    rate = min(max(clear_rate, 0.0), 100.0)
    return math.floor(max_units * rate / 100)


def extract_contribution(
    results: Optional[Mapping[str, Any]],
    unit_value: int = DEFAULT_UNIT_VALUE,
) -> Contribution:
    """Sum plays and purified units over every valid result payload."""
    if unit_value <= 0:
        raise ValueError("unit_value must be positive")
    if not isinstance(results, Mapping):
        return Contribution(0, 0)

    plays = 0
    purified = 0
    for payload in results.values():
        if not isinstance(payload, Mapping):
            continue
        max_score = _as_number(payload.get("maxScore"))
        if max_score is None or max_score <= 0:
            continue
        clear_rate = _as_number(payload.get("clearRate")) or 0.0
        plays += 1
        purified += purified_units(max_score, clear_rate, unit_value)
    return Contribution(plays, purified)
