"""Measurement windows per category and their odds multipliers."""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass


@dataclass(frozen=True)
class TimeSlot:
    slot_id: str
    label: str
    odds_multiplier: float
    measurement_hour: int | None = None
    cumulative: bool = False


@dataclass(frozen=True)
class CategoryTiming:
    category: str
    default_slot_id: str
    slots: tuple[TimeSlot, ...]

    def slot(self, slot_id: str) -> TimeSlot | None:
        for slot in self.slots:
            if slot.slot_id == slot_id:
                return slot
        return None

    @property
    def default_slot(self) -> TimeSlot:
        slot = self.slot(self.default_slot_id)
        assert slot is not None
        return slot


CATEGORY_TIME_SLOTS: dict[str, CategoryTiming] = {
    "temperature": CategoryTiming(
        "temperature",
        "peak",
        (
            TimeSlot("morning", "9:00 AM", 1.1, measurement_hour=9),
            TimeSlot("peak", "2:00 PM Peak", 1.0, measurement_hour=14),
            TimeSlot("evening", "8:00 PM", 1.15, measurement_hour=20),
        ),
    ),
    "rain": CategoryTiming(
        "rain",
        "daily",
        (TimeSlot("daily", "Any Time Today", 1.0, cumulative=True),),
    ),
    "rainfall": CategoryTiming(
        "rainfall",
        "daily_total",
        (
            TimeSlot("morning", "Morning (6AM-12PM)", 1.3, cumulative=True),
            TimeSlot("afternoon", "Afternoon (12PM-6PM)", 1.25, cumulative=True),
            TimeSlot("evening", "Evening (6PM-12AM)", 1.35, cumulative=True),
            TimeSlot("daily_total", "Daily Total", 1.0, cumulative=True),
        ),
    ),
    "wind": CategoryTiming(
        "wind",
        "daytime",
        (
            TimeSlot("morning", "Morning Peak (6AM-12PM)", 1.2),
            TimeSlot("daytime", "Daytime Peak (12PM-6PM)", 1.0),
            TimeSlot("evening", "Evening Peak (6PM-12AM)", 1.25),
        ),
    ),
    "snow": CategoryTiming(
        "snow",
        "daily",
        (TimeSlot("daily", "Any Time Today", 1.0, cumulative=True),),
    ),
    "cloud_coverage": CategoryTiming(
        "cloud_coverage",
        "midday",
        (
            TimeSlot("morning", "10:00 AM", 1.15, measurement_hour=10),
            TimeSlot("midday", "2:00 PM", 1.0, measurement_hour=14),
            TimeSlot("evening", "7:00 PM", 1.2, measurement_hour=19),
        ),
    ),
    "pressure": CategoryTiming(
        "pressure",
        "morning",
        (
            TimeSlot("morning", "9:00 AM", 1.0, measurement_hour=9),
            TimeSlot("evening", "9:00 PM", 1.1, measurement_hour=21),
        ),
    ),
    "dew_point": CategoryTiming(
        "dew_point",
        "evening",
        (
            TimeSlot("morning", "6:00 AM", 1.1, measurement_hour=6),
            TimeSlot("evening", "6:00 PM", 1.0, measurement_hour=18),
        ),
    ),
}


def category_timing(category: str) -> CategoryTiming | None:
    return CATEGORY_TIME_SLOTS.get(category)


def slot_multiplier(category: str, slot_id: str | None) -> float:
    """Multiplier for one slot; ``None`` selects the category default.

    Raises ``ValueError`` for a slot the category does not offer.
    """

    timing = category_timing(category)
    if timing is None:
        if slot_id is None:
            return 1.0
        raise ValueError(f"Category '{category}' has no time slots")
    if slot_id is None:
        return timing.default_slot.odds_multiplier
    slot = timing.slot(slot_id)
    if slot is None:
        raise ValueError(f"Unknown time slot '{slot_id}' for {category}")
    return slot.odds_multiplier


def multi_slot_multiplier(category: str, slot_ids: Iterable[str], bonus_per_slot: float = 0.10) -> float:
    """Product of the selected slots' multipliers times the combo bonus.

    Two or more slots earn ``1 + n * bonus_per_slot``.
    """

    slot_ids = list(slot_ids)
    multiplier = 1.0
    for slot_id in slot_ids:
        multiplier *= slot_multiplier(category, slot_id)
    if len(slot_ids) >= 2:
        multiplier *= 1 + len(slot_ids) * bonus_per_slot
    return multiplier
