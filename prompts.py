"""
prompts.py — Builds the user prompt sent to the completion client for one stage.
"""

from errors import InvalidStage
from stages import get_stage, is_valid_stage

SYSTEM_PROMPT = 'You are an expert travel planner.'

DESTINATION_PLACEHOLDER = 'the destination'


def _non_blank(value) -> str | None:
    if isinstance(value, str) and value.strip():
        return value.strip()
    return None


def destination_label(itinerary) -> str:
    """Explicit destination first, then the itinerary title, then a generic label."""
    return (
        _non_blank(getattr(itinerary, 'destination', None))
        or _non_blank(getattr(itinerary, 'title', None))
        or DESTINATION_PLACEHOLDER
    )


def build_prompt(itinerary, stage_id: str, extra: dict | None = None) -> str:
    """
    Render the stage template for this itinerary.

    If extra carries a non-blank 'prompt' string it is trimmed and appended
    on its own line as additional guidance.
    """
    if not is_valid_stage(stage_id):
        raise InvalidStage(stage_id)

    base = get_stage(stage_id).template.replace('{destination}', destination_label(itinerary))

    guidance = _non_blank(extra.get('prompt')) if isinstance(extra, dict) else None
    if guidance:
        return f'{base}\nAdditional guidance: {guidance}'
    return base


def build_messages(prompt: str) -> list[dict]:
    return [
        {'role': 'system', 'content': SYSTEM_PROMPT},
        {'role': 'user',   'content': prompt},
    ]
