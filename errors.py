"""
errors.py — Generation error taxonomy.

Each error carries the HTTP status the API answers with; app.py maps any
GenerationError to { "error": "..." } the same way it maps HTTPException.
"""


class GenerationError(Exception):
    status_code = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ItineraryNotFound(GenerationError):
    status_code = 404

    def __init__(self, itinerary_id):
        super().__init__(f'Itinerary {itinerary_id} not found')
        self.itinerary_id = itinerary_id


class GenerationConflict(GenerationError):
    status_code = 409

    def __init__(self, itinerary_id):
        super().__init__(f'A generation run is already in progress for itinerary {itinerary_id}')
        self.itinerary_id = itinerary_id


class InvalidStage(GenerationError):
    status_code = 400

    def __init__(self, stage_id):
        super().__init__(f'Unsupported generation stage: {stage_id}')
        self.stage_id = stage_id


class StageExecutionFailure(GenerationError):
    """A stage's completion call failed; the run was aborted and its job marked failed."""

    status_code = 502

    def __init__(self, message: str, stage: str, job_id: int | None = None):
        super().__init__(message)
        self.stage  = stage
        self.job_id = job_id
