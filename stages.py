"""
stages.py — Canonical generation stages for itinerary content runs.

Six stages, always executed in this order when a run asks for everything:

  framework      — overall structure, theme and pacing of the trip
  day_details    — per-day schedule
  transport      — getting around, in and between cities
  scenic_intro   — descriptive narrative of the destination
  tips           — practical advice
  safety_notice  — safety reminders and emergency guidance

Each stage has a default prompt template with a {destination} placeholder.
The registry is built once at import time and never mutated.
"""

from dataclasses import dataclass
from typing import Iterable


@dataclass(frozen=True)
class StageDefinition:
    stage_id: str
    label:    str
    template: str


FRAMEWORK_STAGE = 'framework'

STAGE_DEFINITIONS: tuple[StageDefinition, ...] = (
    StageDefinition(
        FRAMEWORK_STAGE, 'Framework',
        'Create an itinerary framework for {destination}, covering the trip theme '
        'and the overall rhythm of the journey.',
    ),
    StageDefinition(
        'day_details', 'Day details',
        'Provide a detailed day-by-day schedule for the {destination} itinerary, '
        'emphasising experiences and pacing.',
    ),
    StageDefinition(
        'transport', 'Transport',
        'Recommend transport options for the {destination} itinerary, covering the '
        'main ways of getting around within and between cities.',
    ),
    StageDefinition(
        'scenic_intro', 'Scenic introduction',
        'Write an engaging introduction to the scenery of {destination}, '
        'highlighting its natural and cultural character.',
    ),
    StageDefinition(
        'tips', 'Travel tips',
        'Give travel advice for {destination}, including food, cultural etiquette '
        'and essential items to pack.',
    ),
    StageDefinition(
        'safety_notice', 'Safety notice',
        'Write a safety notice for {destination}, with precautions to take and '
        'what to do in an emergency.',
    ),
)

STAGES: tuple[str, ...] = tuple(d.stage_id for d in STAGE_DEFINITIONS)

_BY_ID = {d.stage_id: d for d in STAGE_DEFINITIONS}


def is_valid_stage(stage_id) -> bool:
    return isinstance(stage_id, str) and stage_id in _BY_ID


def get_stage(stage_id: str) -> StageDefinition:
    """Return the definition for stage_id. Raises KeyError for unknown ids."""
    return _BY_ID[stage_id]


def normalize_stages(requested: Iterable[str] | None = None) -> list[str]:
    """
    Turn a caller-supplied stage list into the list a run will execute.

    Unknown ids are dropped and duplicates collapse to their first
    occurrence, keeping the caller's order. None or an empty list means
    every stage in canonical order.
    """
    requested = list(requested or [])
    if not requested:
        return list(STAGES)

    seen: set[str] = set()
    result = []
    for stage_id in requested:
        if not is_valid_stage(stage_id) or stage_id in seen:
            continue
        seen.add(stage_id)
        result.append(stage_id)
    return result
