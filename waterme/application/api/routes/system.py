"""
System administration API routes.

Manual evaluation passes and evaluation engine information.
"""

from fastapi import APIRouter, Depends
import structlog

from waterme.application.api.dependencies import provide
from waterme.application.models import EngineInfoResponse, EvaluationSummaryResponse
from waterme.core.domain.services import EvaluationEngine
from waterme.core.use_cases import EvaluateAndNotifyUseCase

logger = structlog.get_logger(__name__)
router = APIRouter()


@router.post("/evaluate", response_model=EvaluationSummaryResponse)
async def evaluate_now(
    notifier: EvaluateAndNotifyUseCase = Depends(provide(EvaluateAndNotifyUseCase))
) -> EvaluationSummaryResponse:
    """
    Run one evaluation pass now.

    Controllers still being evaluated by a scheduled pass are reported as
    skipped.
    """
    logger.info("Manual evaluation requested")
    summary = await notifier.execute()
    return EvaluationSummaryResponse.from_summary(summary)


@router.get("/engine", response_model=EngineInfoResponse)
async def engine_info(
    engine: EvaluationEngine = Depends(provide(EvaluationEngine))
) -> EngineInfoResponse:
    """Name and version of the loaded evaluation engine."""
    engine_class = type(engine)
    return EngineInfoResponse(
        engine=f"{engine_class.__module__}:{engine_class.__name__}",
        version=engine.version()
    )
