from datetime import date
from typing import Dict, List, Optional

from pydantic import Field

from reqflow.schemas.enums import Stage
from reqflow.schemas.requisition import AggregateModel


class DashboardFilters(AggregateModel):
    project_name: Optional[str] = None
    stage: Optional[Stage] = None
    start: Optional[date] = None
    end: Optional[date] = None


class MonthCount(AggregateModel):
    month: str  # YYYY-MM
    count: int


class ProjectCount(AggregateModel):
    project_name: str
    count: int


class ActivityEntry(AggregateModel):
    id: str
    requisition_id: str
    title: str
    time: str
    status: str  # completed | pending | progress
    stage: str


class DashboardStats(AggregateModel):
    total_requisitions: int = 0
    active_requisitions: int = 0
    pending_approvals: int = 0
    total_spent: float = 0
    total_submitted: float = 0
    total_approved: float = 0
    recent_count: int = 0
    monthly_data: List[MonthCount] = Field(default_factory=list)
    project_stats: List[ProjectCount] = Field(default_factory=list)
    status_breakdown: Dict[str, int] = Field(default_factory=dict)
    recent_activity: List[ActivityEntry] = Field(default_factory=list)
