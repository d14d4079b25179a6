# atlas_core/modules/metrics/routers.py
from fastapi import APIRouter, Depends

from atlas_core.core.security import require_module
from .models import MetricsOverview
from .services import MetricsService, get_metrics_service

router = APIRouter(dependencies=[Depends(require_module("dashboard"))])


@router.get("/overview", response_model=MetricsOverview, tags=["Metrics"])
async def metrics_overview(metrics_service: MetricsService = Depends(get_metrics_service)):
    """Revenue, tickets and units for today, this week and this month, plus returns and attendance today."""
    return await metrics_service.overview()
