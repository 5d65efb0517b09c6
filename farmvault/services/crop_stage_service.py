from __future__ import annotations

from dataclasses import dataclass
from datetime import date, timedelta

from farmvault.models import CropType


@dataclass(frozen=True)
class CropStage:
    index: int
    name: str
    expected_days: int


@dataclass(frozen=True)
class StageWindow:
    index: int
    name: str
    start_date: date
    end_date: date

    def contains(self, day: date) -> bool:
        return self.start_date <= day <= self.end_date


def _stages(*pairs: tuple[str, int]) -> tuple[CropStage, ...]:
    return tuple(CropStage(index=idx, name=name, expected_days=days) for idx, (name, days) in enumerate(pairs))


CROP_STAGES: dict[str, tuple[CropStage, ...]] = {
    CropType.TOMATOES.value: _stages(
        ('Nursery', 21),
        ('Transplanting', 7),
        ('Vegetative Growth', 28),
        ('Flowering', 14),
        ('Fruiting', 28),
        ('Harvesting', 21),
    ),
    CropType.FRENCH_BEANS.value: _stages(
        ('Planting', 7),
        ('Germination', 7),
        ('Vegetative Growth', 21),
        ('Flowering', 7),
        ('Pod Formation', 14),
        ('Harvesting', 14),
    ),
    CropType.CAPSICUM.value: _stages(
        ('Nursery', 21),
        ('Transplanting', 7),
        ('Vegetative Growth', 35),
        ('Flowering', 14),
        ('Fruiting', 35),
        ('Harvesting', 30),
    ),
    CropType.MAIZE.value: _stages(
        ('Land Preparation', 7),
        ('Planting', 7),
        ('Germination', 7),
        ('Vegetative Growth', 35),
        ('Tasseling & Silking', 14),
        ('Maturity', 21),
        ('Harvesting', 14),
    ),
    CropType.WATERMELONS.value: _stages(
        ('Planting', 7),
        ('Germination', 7),
        ('Vine Development', 28),
        ('Flowering', 14),
        ('Fruit Development', 28),
        ('Harvesting', 21),
    ),
    CropType.RICE.value: _stages(
        ('Nursery', 21),
        ('Transplanting', 7),
        ('Tillering', 21),
        ('Panicle Initiation', 14),
        ('Flowering', 14),
        ('Maturity', 21),
        ('Harvesting', 14),
    ),
}


def normalize_crop_type(crop_type: str) -> str:
    clean = (crop_type or '').strip().lower().replace('_', '-').replace(' ', '-')
    if clean not in CROP_STAGES:
        raise ValueError(f'Unknown crop type: {crop_type}')
    return clean


def get_crop_stages(crop_type: str) -> tuple[CropStage, ...]:
    return CROP_STAGES[normalize_crop_type(crop_type)]


def generate_stage_timeline(
    crop_type: str,
    planting_date: date,
    starting_stage_index: int = 0,
) -> list[StageWindow]:
    """Lay stages end to end from the planting date.

    Each window covers ``expected_days`` calendar days inclusive, so a 7 day
    stage starting on the 1st ends on the 7th and the next starts on the 8th.
    Stages before ``starting_stage_index`` are skipped (a project that was
    planted from seedlings starts at Transplanting, for example).
    """
    stages = get_crop_stages(crop_type)
    if starting_stage_index < 0 or starting_stage_index >= len(stages):
        raise ValueError('Starting stage is out of range')

    windows: list[StageWindow] = []
    cursor = planting_date
    for stage in stages[starting_stage_index:]:
        end = cursor + timedelta(days=stage.expected_days - 1)
        windows.append(StageWindow(index=stage.index, name=stage.name, start_date=cursor, end_date=end))
        cursor = end + timedelta(days=1)
    return windows


def current_stage(timeline: list[StageWindow], today: date) -> StageWindow | None:
    if not timeline:
        return None
    if today < timeline[0].start_date:
        return None
    for window in timeline:
        if window.contains(today):
            return window
    # Past the last window the crop stays in its final stage.
    return timeline[-1]
