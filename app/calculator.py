"""
Калькулятор бусин для Bracelet Bot.
Подбирает последовательность бусин по обхвату запястья, числу витков,
узору и размеру магнитного замка так, чтобы длина браслета попала в допуск.
"""

from __future__ import annotations

import logging
import math
from collections import Counter
from dataclasses import dataclass
from typing import Iterable, Sequence, Union

logger = logging.getLogger(__name__)

LANGUAGES: tuple[str, ...] = ("ru", "en")


# ---------- ошибки ----------
class BeadFitError(ValueError):
    """Base class for fitting failures; carries a code and ru/en texts."""

    MESSAGES: dict[str, dict[str, str]] = {}

    def __init__(self, code: str, **params: object) -> None:
        self.code = code
        self.params = params
        super().__init__(self.message("en"))

    def message(self, lang: str = "ru") -> str:
        templates = self.MESSAGES.get(self.code, {})
        template = templates.get(lang) or templates.get("ru") or self.code
        return template.format(**self.params)


class InvalidInput(BeadFitError):
    MESSAGES = {
        "value_invalid": {
            "ru": "Все параметры должны быть конечными числами",
            "en": "All parameters must be finite numbers",
        },
        "wraps_invalid": {
            "ru": "Количество витков должно быть больше нуля",
            "en": "Wrap count must be greater than zero",
        },
        "pattern_empty": {
            "ru": "Паттерн должен содержать хотя бы один размер бусины",
            "en": "Pattern must contain at least one bead size",
        },
        "pattern_invalid": {
            "ru": "Размеры бусин в паттерне должны быть больше нуля",
            "en": "Bead sizes in the pattern must be greater than zero",
        },
        "wrist_invalid": {
            "ru": "Обхват запястья должен быть больше нуля",
            "en": "Wrist circumference must be greater than zero",
        },
        "magnet_invalid": {
            "ru": "Размер магнита не может быть отрицательным",
            "en": "Magnet size cannot be negative",
        },
        "tolerance_invalid": {
            "ru": "Допуск не может быть отрицательным",
            "en": "Tolerance cannot be negative",
        },
        "magnet_too_long": {
            "ru": "Общая длина браслета должна превышать размер магнита",
            "en": "Total bracelet length must exceed the magnet size",
        },
        "no_beads": {
            "ru": "Невозможно подобрать набор бусин с указанными параметрами",
            "en": "Unable to pick a bead set for these parameters",
        },
        "too_many_beads": {
            "ru": "Слишком много бусин: больше {limit} шт",
            "en": "Too many beads: more than {limit}",
        },
    }


class NotConverged(BeadFitError):
    MESSAGES = {
        "not_converged": {
            "ru": (
                "Не удалось подобрать бусины так, чтобы длина отличалась "
                "от {target} мм не больше чем на {band} мм"
            ),
            "en": (
                "Could not fit the beads within {band} mm of the {target} mm "
                "target length"
            ),
        },
    }


# ---------- модели ----------
@dataclass(frozen=True)
class FitRequest:
    wrist_cm: float
    wraps: int
    pattern: tuple[float, ...]
    magnet_mm: float
    tolerance_mm: float = 5.0
    language: str = "ru"


@dataclass(frozen=True)
class FitResult:
    text: str
    counts: tuple[tuple[float, int], ...]  # (диаметр, штук), по убыванию диаметра
    bead_count: int
    length_mm: float
    target_mm: float


@dataclass(frozen=True)
class FitSuccess:
    result: FitResult


@dataclass(frozen=True)
class FitFailure:
    error: BeadFitError


FitOutcome = Union[FitSuccess, FitFailure]


def format_number(value: float) -> str:
    """15.0 -> '15', 7.50 -> '7.5', 1/3 -> '0.33'."""

    text = f"{value:.2f}".rstrip("0").rstrip(".")
    return "0" if text in ("", "-0") else text


def _is_whole(value: object) -> bool:
    """Integral int or float (2, 2.0), not bool, nan or inf."""

    if isinstance(value, bool):
        return False
    if isinstance(value, int):
        return True
    return isinstance(value, float) and value.is_integer()


def round_half_up(value: float) -> int:
    """Round positive values with ties going up (14.5 -> 15, 36.5 -> 37)."""

    return int(math.floor(value + 0.5))


class BeadSequenceFitter:
    # Полуширина полосы, в которую должна попасть итоговая длина, мм
    LENGTH_BAND_MM = 2.0
    # Бусина у замка считается «дублем» магнита, если отличается меньше чем на это
    CLASP_MATCH_MM = 0.5
    # Предел итераций корректировки
    MAX_ITERATIONS = 10
    # Округление ключа диаметра при подсчёте
    DIAMETER_PRECISION = 2
    # Верхняя граница числа бусин, чтобы расчёт не съел память
    MAX_BEADS = 50_000

    RESULT_TEMPLATES: dict[str, dict[str, str]] = {
        "ru": {
            "bead": "{count} бусин Ø{diameter} мм",
            "joiner": " и ",
            "result": "Обхват {wrist} см → {parts} + {tolerance} мм допуск + {magnet} мм крепление",
        },
        "en": {
            "bead": "{count} beads Ø{diameter} mm",
            "joiner": " and ",
            "result": "Wrist {wrist} cm → {parts} + {tolerance} mm slack + {magnet} mm clasp",
        },
    }

    # ---------- валидация ----------
    @classmethod
    def validate(cls, request: FitRequest) -> InvalidInput | None:
        numbers = (request.wrist_cm, request.magnet_mm, request.tolerance_mm, *request.pattern)
        if not _is_whole(request.wraps) or request.wraps <= 0:
            return InvalidInput("wraps_invalid")
        if not request.pattern:
            return InvalidInput("pattern_empty")
        if not all(math.isfinite(x) for x in numbers):
            return InvalidInput("value_invalid")
        if any(d <= 0 for d in request.pattern):
            return InvalidInput("pattern_invalid")
        if request.wrist_cm <= 0:
            return InvalidInput("wrist_invalid")
        if request.magnet_mm < 0:
            return InvalidInput("magnet_invalid")
        if request.tolerance_mm < 0:
            return InvalidInput("tolerance_invalid")
        if cls.target_length(request) <= request.magnet_mm:
            return InvalidInput("magnet_too_long")
        return None

    @staticmethod
    def target_length(request: FitRequest) -> float:
        wrist_mm = request.wrist_cm * 10
        return request.wraps * wrist_mm + request.tolerance_mm

    # ---------- основной расчёт ----------
    @classmethod
    def fit(cls, request: FitRequest) -> FitOutcome:
        error = cls.validate(request)
        if error is not None:
            return FitFailure(error)

        pattern = request.pattern
        period = len(pattern)
        magnet = request.magnet_mm
        band = cls.LENGTH_BAND_MM

        target = cls.target_length(request)
        avg = math.fsum(pattern) / period
        estimate = (target - magnet) / avg
        if estimate > cls.MAX_BEADS:
            return FitFailure(InvalidInput("too_many_beads", limit=cls.MAX_BEADS))
        rough = round_half_up(estimate)

        # Последовательность всегда совпадает с началом бесконечного повтора узора,
        # поэтому курсор узора — это len(beads) % period
        beads: list[float] = [pattern[i % period] for i in range(rough)]

        # Не ставим рядом с замком бусину того же размера, что и магнит
        if beads and abs(beads[-1] - magnet) < cls.CLASP_MATCH_MM:
            beads.pop()

        current = math.fsum(beads) + magnet
        delta = target - current

        iterations = 0
        while iterations < cls.MAX_ITERATIONS and abs(delta) > band:
            if delta < -band:
                remove = math.ceil((current - (target + band)) / avg)
                remove = min(remove, len(beads))
                if remove > 0:
                    del beads[-remove:]
            else:
                add = math.ceil((target - band - current) / avg)
                start = len(beads)
                beads.extend(pattern[i % period] for i in range(start, start + add))

            current = math.fsum(beads) + magnet
            delta = target - current
            iterations += 1

        logger.debug(
            "Bead fit: target=%.2f rough=%s beads=%s length=%.2f delta=%.2f iterations=%s",
            target,
            rough,
            len(beads),
            current,
            delta,
            iterations,
        )

        if abs(delta) > band:
            return FitFailure(
                NotConverged(
                    "not_converged",
                    target=format_number(target),
                    band=format_number(band),
                )
            )
        if not beads:
            return FitFailure(InvalidInput("no_beads"))

        counts = cls.tally(beads)
        text = cls.render(request, counts)
        return FitSuccess(
            FitResult(
                text=text,
                counts=counts,
                bead_count=len(beads),
                length_mm=current,
                target_mm=target,
            )
        )

    # ---------- подсчёт и текст ----------
    @classmethod
    def tally(cls, beads: Iterable[float]) -> tuple[tuple[float, int], ...]:
        counter = Counter(round(d, cls.DIAMETER_PRECISION) for d in beads)
        return tuple(sorted(counter.items(), key=lambda item: item[0], reverse=True))

    @classmethod
    def render(cls, request: FitRequest, counts: Sequence[tuple[float, int]]) -> str:
        lang = request.language if request.language in LANGUAGES else LANGUAGES[0]
        templates = cls.RESULT_TEMPLATES[lang]
        parts = templates["joiner"].join(
            templates["bead"].format(count=count, diameter=format_number(diameter))
            for diameter, count in counts
        )
        return templates["result"].format(
            wrist=format_number(request.wrist_cm),
            parts=parts,
            tolerance=format_number(request.tolerance_mm),
            magnet=format_number(request.magnet_mm),
        )


def bracelet_text(
    wrist_cm: float,
    wraps: int,
    pattern: Sequence[float],
    magnet_mm: float,
    tolerance_mm: float = 5,
    lang: str = "ru",
) -> str:
    """Return the bead description or raise InvalidInput / NotConverged."""

    request = FitRequest(
        wrist_cm=float(wrist_cm),
        wraps=wraps,
        pattern=tuple(float(d) for d in pattern),
        magnet_mm=float(magnet_mm),
        tolerance_mm=float(tolerance_mm),
        language=lang,
    )
    match BeadSequenceFitter.fit(request):
        case FitSuccess(result=result):
            return result.text
        case FitFailure(error=error):
            raise error
