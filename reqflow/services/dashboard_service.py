# reqflow/services/dashboard_service.py
"""
Dashboard aggregates over a set of requisitions.

Filters narrow the set first (project name, current stage, creation date
range); every figure is then computed over what remains. Money figures sum
item totals: submitted is every item, approved is items the CEO approved,
spent is items whose payment is settled.
"""

from datetime import date, datetime, timedelta, timezone
from decimal import Decimal
from typing import Iterable, Optional

from reqflow.schemas.dashboard import (
    ActivityEntry,
    DashboardFilters,
    DashboardStats,
    MonthCount,
    ProjectCount,
)
from reqflow.schemas.enums import ApprovalStatus, RequisitionStatus, Role, Stage
from reqflow.schemas.requisition import Requisition
from reqflow.services.item_calculations import round2

RECENT_WINDOW = timedelta(days=7)
MONTHS_SHOWN = 5
ACTIVITY_SHOWN = 3

STAGE_LABELS = {
    Stage.RESIDENT: "Resident",
    Stage.PROCUREMENT: "Procurement",
    Stage.TREASURY: "Treasury",
    Stage.CEO: "CEO",
    Stage.PAYMENT: "Payment",
    Stage.STOREKEEPER: "Storekeeper",
}


def _aware(value: datetime) -> datetime:
    return value if value.tzinfo else value.replace(tzinfo=timezone.utc)


def _in_range(created: datetime, start: Optional[date], end: Optional[date]) -> bool:
    day = _aware(created).date()
    if start and day < start:
        return False
    if end and day > end:
        return False
    return True


def filter_requisitions(
    requisitions: Iterable[Requisition], filters: Optional[DashboardFilters] = None
) -> list[Requisition]:
    """Apply filters and order by last_modified, newest first."""
    filters = filters or DashboardFilters()
    selected = [
        r for r in requisitions
        if (not filters.project_name or r.project_name == filters.project_name)
        and (filters.stage is None or r.current_stage == filters.stage)
        and _in_range(r.created_at, filters.start, filters.end)
    ]
    return sorted(selected, key=lambda r: _aware(r.last_modified), reverse=True)


def _pending_for(requisitions: list[Requisition], role: Optional[Role]) -> int:
    if role is None:
        return sum(
            1 for r in requisitions
            if r.status != RequisitionStatus.DRAFT and not r.status.is_closed
        )
    return sum(
        1 for r in requisitions
        if r.current_stage.value == role.value and not r.status.is_closed
    )


def _month_keys(now: datetime) -> list[str]:
    keys = []
    year, month = now.year, now.month
    for _ in range(MONTHS_SHOWN):
        keys.append(f"{year:04d}-{month:02d}")
        month -= 1
        if month == 0:
            year, month = year - 1, 12
    return list(reversed(keys))


def time_ago(then: datetime, now: datetime) -> str:
    delta = now - _aware(then)
    for unit, size in (
        ("week", timedelta(weeks=1)),
        ("day", timedelta(days=1)),
        ("hour", timedelta(hours=1)),
    ):
        if delta >= size:
            n = delta // size
            return f"{n} {unit}{'' if n == 1 else 's'} ago"
    n = max(int(delta.total_seconds() // 60), 0)
    return f"{n} minute{'' if n == 1 else 's'} ago"


def _activity(requisition: Requisition, now: datetime) -> ActivityEntry:
    number = requisition.requisition_number
    status = requisition.status
    if status == RequisitionStatus.COMPLETED:
        title, kind = f"{number} completed", "completed"
    elif status == RequisitionStatus.REJECTED:
        title, kind = f"{number} rejected", "pending"
    elif status == RequisitionStatus.DRAFT:
        title, kind = f"{number} created as draft", "progress"
    else:
        title, kind = f"{number} pending approval", "pending"
    return ActivityEntry(
        id=requisition.id,
        requisition_id=requisition.id,
        title=title,
        time=time_ago(requisition.last_modified, now),
        status=kind,
        stage=STAGE_LABELS[requisition.current_stage],
    )


def dashboard_stats(
    requisitions: Iterable[Requisition],
    filters: Optional[DashboardFilters] = None,
    role: Optional[Role] = None,
    now: Optional[datetime] = None,
) -> DashboardStats:
    now = now or datetime.now(timezone.utc)
    selected = filter_requisitions(requisitions, filters)
    if not selected:
        return DashboardStats()

    submitted = approved = spent = Decimal("0")
    for requisition in selected:
        for item in requisition.items:
            total = Decimal(str(item.total or 0))
            submitted += total
            if item.approval_status == ApprovalStatus.APPROVED:
                approved += total
            if item.payment_status.is_settled:
                spent += total

    months: dict[str, int] = {}
    projects: dict[str, int] = {}
    statuses: dict[str, int] = {}
    for requisition in selected:
        created = _aware(requisition.created_at)
        key = f"{created.year:04d}-{created.month:02d}"
        months[key] = months.get(key, 0) + 1
        projects[requisition.project_name] = projects.get(requisition.project_name, 0) + 1
        statuses[requisition.status.value] = statuses.get(requisition.status.value, 0) + 1

    return DashboardStats(
        total_requisitions=len(selected),
        active_requisitions=sum(1 for r in selected if not r.status.is_closed),
        pending_approvals=_pending_for(selected, role),
        total_spent=round2(spent),
        total_submitted=round2(submitted),
        total_approved=round2(approved),
        recent_count=sum(
            1 for r in selected if _aware(r.created_at) >= now - RECENT_WINDOW
        ),
        monthly_data=[
            MonthCount(month=m, count=months.get(m, 0)) for m in _month_keys(now)
        ],
        project_stats=[
            ProjectCount(project_name=name, count=count) for name, count in projects.items()
        ],
        status_breakdown=statuses,
        recent_activity=[_activity(r, now) for r in selected[:ACTIVITY_SHOWN]],
    )


def available_projects(requisitions: Iterable[Requisition]) -> list[str]:
    return sorted({r.project_name for r in requisitions if r.project_name})
