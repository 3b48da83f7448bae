"""
itineraries.py — Narrow accessor over the itinerary aggregate.

Generation never edits an itinerary directly. It reads title/destination
through find_by_id() and writes only two things, both through
apply_stage_result():

  sources['ai'][stage]  — the generated text for that stage
  summary               — prefix of the framework stage's text

The repository works inside whatever session it is given. The orchestrator
hands it the run's unit-of-work session, so nothing written here is visible
to other sessions until the run commits.
"""

import json
import logging
from datetime import datetime, timezone

from sqlalchemy.orm import Session

from models import Itinerary
from stages import FRAMEWORK_STAGE

logger = logging.getLogger(__name__)

SUMMARY_MAX_LENGTH = 300

_WRITABLE_FIELDS = {'sources', 'summary'}


class ItineraryRepository:

    def __init__(self, session: Session):
        self.session = session

    def find_by_id(self, itinerary_id: int) -> Itinerary | None:
        return self.session.get(Itinerary, itinerary_id)

    def update_fields(self, itinerary_id: int, fields: dict) -> Itinerary:
        """
        Apply a partial update and return the updated itinerary.

        Only sources and summary may be written; sources is given as a dict
        and stored as JSON.
        """
        unknown = set(fields) - _WRITABLE_FIELDS
        if unknown:
            raise ValueError(f'Fields not writable by generation: {sorted(unknown)}')

        itinerary = self.find_by_id(itinerary_id)
        if itinerary is None:
            raise LookupError(f'Itinerary {itinerary_id} disappeared during generation')

        if 'sources' in fields:
            itinerary.sources = json.dumps(fields['sources'])
        if 'summary' in fields:
            itinerary.summary = fields['summary']
        itinerary.updated_at = datetime.now(timezone.utc)
        return itinerary


def apply_stage_result(itineraries: ItineraryRepository, itinerary: Itinerary,
                       stage_id: str, text: str) -> Itinerary:
    """
    Store one stage's output on the itinerary.

    Overwrites only sources['ai'][stage_id]; every other key of sources is
    carried over. The framework stage also replaces the summary.
    """
    sources = itinerary.sources_dict
    ai = dict(sources.get('ai') or {})
    ai[stage_id] = text
    sources['ai'] = ai

    fields = {'sources': sources}
    if stage_id == FRAMEWORK_STAGE:
        fields['summary'] = text[:SUMMARY_MAX_LENGTH]

    updated = itineraries.update_fields(itinerary.id, fields)
    logger.debug('Itinerary %d: applied %s (%d chars)', itinerary.id, stage_id, len(text))
    return updated
