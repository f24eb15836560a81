import logging
from time import perf_counter

from fastapi import APIRouter, Query
from pydantic import ValidationError

from timegrid.core.config import get_settings
from timegrid.core.exceptions import ConfigurationError
from timegrid.schemas.generator import GenerateTimetableRequest, GenerateTimetableResponse, GenerationSettings
from timegrid.schemas.timetable import SubjectPayload
from timegrid.services.generator import TimetableGenerator
from timegrid.services.mandatory import create_mandatory_subjects

router = APIRouter()
logger = logging.getLogger(__name__)


def default_generation_settings() -> GenerationSettings:
    settings = get_settings()
    try:
        return GenerationSettings(
            optimization_algorithm=settings.default_optimization_algorithm,
            random_seed=settings.default_random_seed,
            max_faculty_hours_per_week=settings.default_max_faculty_hours_per_week,
            max_faculty_hours_per_day=settings.default_max_faculty_hours_per_day,
        )
    except ValidationError as exc:
        raise ConfigurationError(
            "Configured generation defaults are invalid",
            details={"errors": exc.errors(include_url=False, include_context=False)},
        ) from exc


@router.get("/timetable/settings/defaults", response_model=GenerationSettings)
def get_default_settings() -> GenerationSettings:
    return default_generation_settings()


@router.get("/timetable/mandatory-subjects", response_model=list[SubjectPayload])
def list_mandatory_subjects(
    year: int = Query(ge=1, le=4),
    department: str | None = Query(default=None, max_length=100),
) -> list[SubjectPayload]:
    return create_mandatory_subjects(department, year)


@router.post("/timetable/generate", response_model=GenerateTimetableResponse)
def generate_timetable(payload: GenerateTimetableRequest) -> GenerateTimetableResponse:
    started = perf_counter()
    settings = payload.settings or default_generation_settings()
    logger.info(
        "TIMETABLE GENERATION START | subjects=%s | faculty=%s | rooms=%s | algorithm=%s | seed=%s",
        len(payload.subjects),
        len(payload.faculty),
        len(payload.rooms),
        settings.optimization_algorithm,
        settings.random_seed,
    )
    try:
        result = TimetableGenerator(settings).run(payload)
    except Exception:
        logger.exception(
            "TIMETABLE GENERATION FAILED | subjects=%s | faculty=%s | wall_ms=%s",
            len(payload.subjects),
            len(payload.faculty),
            int((perf_counter() - started) * 1000),
        )
        raise
    logger.info(
        "TIMETABLE GENERATION COMPLETE | filled=%s | conflicts=%s | resolved=%s | score=%s | runtime_ms=%s | wall_ms=%s",
        result.statistics.filled_cells,
        len(result.conflicts),
        len(result.resolved_conflicts),
        result.quality_score.composite,
        result.runtime_ms,
        int((perf_counter() - started) * 1000),
    )
    return result
