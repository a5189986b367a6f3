# reqflow/routes/dashboard.py
from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends, Query

from reqflow.middleware.auth import get_current_user
from reqflow.schemas.dashboard import DashboardFilters, DashboardStats
from reqflow.schemas.enums import Stage
from reqflow.services.dashboard_service import available_projects, dashboard_stats
from reqflow.services.requisition_repository import (
    RequisitionRepository,
    get_repository,
)

router = APIRouter()


@router.get("/dashboard", response_model=DashboardStats)
async def get_dashboard_stats(
    project: Optional[str] = Query(None),
    stage: Optional[Stage] = Query(None),
    start: Optional[date] = Query(None),
    end: Optional[date] = Query(None),
    current_user: dict = Depends(get_current_user),
    repository: RequisitionRepository = Depends(get_repository),
):
    """Counts and totals for the caller's dashboard; pending approvals follow the caller's role."""
    requisitions = await repository.load_all()
    filters = DashboardFilters(project_name=project, stage=stage, start=start, end=end)
    return dashboard_stats(requisitions, filters, role=current_user["role"])


@router.get("/dashboard/projects", response_model=list[str])
async def get_dashboard_projects(
    current_user: dict = Depends(get_current_user),
    repository: RequisitionRepository = Depends(get_repository),
):
    return available_projects(await repository.load_all())
