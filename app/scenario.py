"""Five-step bracelet questionnaire as a pure step function.

The aiogram handlers keep the current step in FSM storage and feed every text
message through :func:`process_step`; everything locale-specific (decimal
commas, ``;``-separated patterns) is parsed here, so the calculator only ever
sees typed values.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from typing import Any

from app.calculator import (
    BeadSequenceFitter,
    FitFailure,
    FitRequest,
    FitResult,
    FitSuccess,
    NotConverged,
)
from app.constants import (
    FINISHED_STEP,
    MAX_PATTERN_ITEMS,
    PATTERN_SEPARATOR,
    VALIDATION_LIMITS,
)
from app.texts import get_text

logger = logging.getLogger(__name__)

_NUMBER_RE = re.compile(r"[+-]?(?:\d+(?:\.\d*)?|\.\d+)")


@dataclass
class StepResult:
    next_step: int
    text: str
    data: dict[str, Any] = field(default_factory=dict)
    result: FitResult | None = None

    @property
    def finished(self) -> bool:
        return self.next_step == FINISHED_STEP


# ---------- разбор ввода ----------
def parse_number(text: str) -> float | None:
    """'15', '15,5', ' 7.25 ' -> float; anything else -> None."""

    value = text.strip().replace(",", ".")
    if not _NUMBER_RE.fullmatch(value):
        return None
    return float(value)


def _in_open_range(value: float | None, limit_key: str) -> bool:
    limits = VALIDATION_LIMITS[limit_key]
    return value is not None and limits["min"] < value < limits["max"]


def _is_bead_size(value: float | None) -> bool:
    limits = VALIDATION_LIMITS["bead_mm"]
    return value is not None and limits["min"] <= value < limits["max"]


def parse_wrist(text: str) -> float | None:
    value = parse_number(text)
    return value if _in_open_range(value, "wrist_cm") else None


def parse_wraps(text: str) -> int | None:
    text = text.strip()
    if not (text.isascii() and text.isdigit()):
        return None
    value = int(text)
    limits = VALIDATION_LIMITS["wraps"]
    return value if limits["min"] <= value <= limits["max"] else None


def parse_pattern(text: str) -> list[float] | None:
    """'10; 8' or '10,5;8' -> list of diameters, or None if any part is bad."""

    normalized = text.replace(",", ".").replace(" ", "")
    parts = [part.strip() for part in normalized.split(PATTERN_SEPARATOR)]
    parts = [part for part in parts if part]
    if not parts or len(parts) > MAX_PATTERN_ITEMS:
        return None

    diameters: list[float] = []
    for part in parts:
        value = parse_number(part)
        if not _is_bead_size(value):
            return None
        diameters.append(value)
    return diameters


def parse_magnet(text: str) -> float | None:
    value = parse_number(text)
    return value if _in_open_range(value, "magnet_mm") else None


def parse_tolerance(text: str) -> float | None:
    value = parse_number(text)
    return value if _in_open_range(value, "tolerance_mm") else None


def format_pattern(diameters: list[float]) -> str:
    return PATTERN_SEPARATOR.join(str(int(d)) if d.is_integer() else repr(d) for d in diameters)


def build_request(data: dict[str, Any], lang: str) -> FitRequest:
    """Collected dialogue data -> FitRequest (KeyError/ValueError if incomplete)."""

    pattern = tuple(float(p) for p in str(data["pattern"]).split(PATTERN_SEPARATOR) if p)
    return FitRequest(
        wrist_cm=float(data["wrist_cm"]),
        wraps=int(data["wraps"]),
        pattern=pattern,
        magnet_mm=float(data["magnet_mm"]),
        tolerance_mm=float(data["tolerance_mm"]),
        language=lang,
    )


# ---------- шаги ----------
def process_step(step: int, text: str, data: dict[str, Any], lang: str = "ru") -> StepResult:
    """Handle the user's answer for ``step`` and return where to go next."""

    text = text.strip()
    data = dict(data)

    if step == 1:
        wrist = parse_wrist(text)
        if wrist is None:
            return StepResult(1, get_text("errors.wrist_invalid", lang), data)
        data["wrist_cm"] = wrist
        return StepResult(2, get_text("questions.wraps", lang), data)

    if step == 2:
        wraps = parse_wraps(text)
        if wraps is None:
            return StepResult(2, get_text("errors.wraps_invalid", lang), data)
        data["wraps"] = wraps
        return StepResult(3, get_text("questions.pattern", lang), data)

    if step == 3:
        pattern = parse_pattern(text)
        if pattern is None:
            return StepResult(3, get_text("errors.pattern_invalid", lang), data)
        data["pattern"] = format_pattern(pattern)
        return StepResult(4, get_text("questions.magnet", lang), data)

    if step == 4:
        magnet = parse_magnet(text)
        if magnet is None:
            return StepResult(4, get_text("errors.magnet_invalid", lang), data)
        data["magnet_mm"] = magnet
        return StepResult(5, get_text("questions.tolerance", lang), data)

    if step == 5:
        tolerance = parse_tolerance(text)
        if tolerance is None:
            return StepResult(5, get_text("errors.tolerance_invalid", lang), data)
        data["tolerance_mm"] = tolerance
        return _finish(data, lang)

    # Любой другой шаг означает, что состояние потеряно
    return StepResult(FINISHED_STEP, get_text("send_start", lang), {})


def _finish(data: dict[str, Any], lang: str) -> StepResult:
    try:
        request = build_request(data, lang)
    except (KeyError, TypeError, ValueError) as exc:
        logger.warning("Incomplete dialogue data %s: %s", data, exc)
        return StepResult(FINISHED_STEP, get_text("send_start", lang), {})

    match BeadSequenceFitter.fit(request):
        case FitSuccess(result=result):
            return StepResult(FINISHED_STEP, result.text, data, result)
        case FitFailure(error=NotConverged() as error):
            data.pop("tolerance_mm", None)
            return StepResult(
                5, get_text("errors.not_converged", lang, reason=error.message(lang)), data
            )
        case FitFailure(error=error) if error.code == "magnet_too_long":
            data.pop("tolerance_mm", None)
            data.pop("magnet_mm", None)
            return StepResult(
                4, get_text("errors.magnet_too_long", lang, reason=error.message(lang)), data
            )
        case FitFailure(error=error):
            logger.info("Calculation rejected (%s) for data %s", error.code, data)
            return StepResult(
                FINISHED_STEP,
                get_text("errors.calculation_error", lang, reason=error.message(lang)),
                {},
            )
