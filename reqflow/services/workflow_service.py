"""
Workflow state machine: strictly forward, single path.

  resident → procurement → treasury → ceo → payment → storekeeper → completed

complete_stage(stage):
  1. caller role must access both the current stage and ``stage``
  2. ``stage`` must be the current stage of an open requisition
     (a draft must have at least one item; completing it submits it)
  3. validation_errors(stage) must be empty       (hard block)
  4. <stage> flag = True, <stage> comments = comments (last write wins)
  5. current_stage = next stage, status = pending-<next>
     (status = completed after the last stage)

The pure functions return a new aggregate and never mutate their input, so a
failed transition or a failed save leaves the caller's object untouched.
WorkflowService adds the document-presence warning (two-phase: attempt, then
confirm with a token) and persistence.
"""

import threading
import time
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Optional, Union

import structlog

from reqflow.config import settings
from reqflow.exceptions import (
    InvalidTransition,
    NotFound,
    PermissionDenied,
    ValidationFailed,
)
from reqflow.schemas.enums import STAGE_ORDER, RequisitionStatus, Role, Stage
from reqflow.schemas.requisition import Requisition, RequisitionItem
from reqflow.services.item_calculations import sync_derived_fields
from reqflow.services.permissions import (
    can_access_stage,
    can_create_requisition,
    next_stage,
    require_stage_access,
)
from reqflow.services.stage_rules import stage_requirements_met
from reqflow.services.validation_service import validation_errors

logger = structlog.get_logger()

REQUISITION_PREFIX = "REQ"

# Stages that never raise the missing-document warning
DOCUMENT_EXEMPT_STAGES = frozenset({Stage.CEO})


def _now(now: Optional[datetime] = None) -> datetime:
    return now or datetime.now(timezone.utc)


def generate_requisition_number(now: Optional[datetime] = None) -> str:
    """REQ-YYYY-MM-DD-NNN, NNN = last 3 digits of the millisecond timestamp."""
    now = _now(now)
    millis = str(int(now.timestamp()) * 1000 + now.microsecond // 1000)
    return f"{REQUISITION_PREFIX}-{now:%Y-%m-%d}-{millis[-3:]}"


def expected_current_stage(requisition: Requisition) -> Stage:
    """Stage after the highest completed one, or the first stage."""
    highest = None
    for stage in STAGE_ORDER:
        if requisition.progress(stage).complete:
            highest = stage
    if highest is None:
        return STAGE_ORDER[0]
    return next_stage(highest) or highest


def has_documents_for_stage(requisition: Requisition, stage: Stage) -> bool:
    if stage in DOCUMENT_EXEMPT_STAGES:
        return True
    return any(doc.stage == stage for doc in requisition.documents)


def new_requisition(
    role: Role,
    project_name: str,
    project_id: Optional[str] = None,
    week: Optional[str] = None,
    created_by: Optional[str] = None,
    items: Optional[list[RequisitionItem]] = None,
    now: Optional[datetime] = None,
) -> Requisition:
    if not can_create_requisition(role):
        raise PermissionDenied(role=role.value, action="create_requisition")
    if not project_name or not project_name.strip():
        raise ValidationFailed(["Project name is required"])

    now = _now(now)
    requisition = Requisition(
        requisition_number=generate_requisition_number(now),
        project_name=project_name.strip(),
        project_id=project_id,
        week=week,
        created_at=now,
        last_modified=now,
        created_by=created_by,
    )
    for item in items or []:
        item.requisition_id = requisition.id
        requisition.items.append(sync_derived_fields(item))
    return requisition


def submit_requisition(
    requisition: Requisition, role: Role, now: Optional[datetime] = None
) -> Requisition:
    if not can_create_requisition(role):
        raise PermissionDenied(role=role.value, action="submit_requisition")
    if requisition.status != RequisitionStatus.DRAFT:
        raise InvalidTransition(
            "Only draft requisitions can be submitted",
            details={"status": requisition.status.value},
        )
    _require_items(requisition)

    updated = requisition.model_copy(deep=True)
    updated.status = RequisitionStatus.pending(updated.current_stage)
    updated.last_modified = _now(now)
    return updated


def _require_items(requisition: Requisition) -> None:
    if not requisition.items:
        raise ValidationFailed(["At least one material item is required"])


def _ensure_open(requisition: Requisition) -> None:
    if requisition.status.is_closed:
        raise InvalidTransition(
            f"Requisition is {requisition.status.value}",
            details={"status": requisition.status.value},
        )


def complete_stage(
    requisition: Requisition,
    role: Role,
    stage: Stage,
    comments: Optional[str] = None,
    now: Optional[datetime] = None,
) -> Requisition:
    require_stage_access(role, requisition.current_stage)
    require_stage_access(role, stage)
    _ensure_open(requisition)
    if stage != requisition.current_stage:
        raise InvalidTransition(
            f"Stage '{stage.value}' is not the current stage",
            details={
                "stage": stage.value,
                "current_stage": requisition.current_stage.value,
            },
        )
    if requisition.status == RequisitionStatus.DRAFT:
        # completing from draft doubles as submission
        _require_items(requisition)

    errors = validation_errors(requisition, stage)
    if errors:
        raise ValidationFailed(errors)

    updated = requisition.model_copy(deep=True)
    progress = updated.progress(stage)
    progress.complete = True
    progress.comments = comments

    following = next_stage(stage)
    if following:
        updated.current_stage = following
        updated.status = RequisitionStatus.pending(following)
    else:
        updated.status = RequisitionStatus.COMPLETED

    updated.last_modified = _now(now)
    return updated


@dataclass
class CompletionStatus:
    """What the stage-completion panel shows for one role."""

    stage: Stage
    can_access: bool
    is_open: bool
    is_complete: bool
    requirements_met: bool
    has_documents: bool
    errors: list[str] = field(default_factory=list)

    @property
    def can_complete(self) -> bool:
        return (
            self.can_access
            and self.is_open
            and not self.is_complete
            and not self.errors
        )


def completion_status(requisition: Requisition, role: Optional[Role]) -> CompletionStatus:
    stage = requisition.current_stage
    return CompletionStatus(
        stage=stage,
        can_access=can_access_stage(role, stage),
        is_open=not requisition.status.is_closed,
        is_complete=requisition.progress(stage).complete,
        requirements_met=stage_requirements_met(requisition, stage),
        has_documents=has_documents_for_stage(requisition, stage),
        errors=validation_errors(requisition, stage),
    )


# ---------- two-phase completion ----------


@dataclass(frozen=True)
class DocumentMissingWarning:
    """Soft stop: no document attached for the stage. Confirm with ``token``."""

    token: str
    requisition_id: str
    stage: Stage
    role: Role
    comments: Optional[str] = None
    message: str = "No documents have been uploaded for this stage"


class PendingCompletions:
    """
    Outstanding document warnings, keyed by single-use token.

    At most one token is outstanding per (requisition, stage, role): a new
    attempt replaces the previous token. Tokens expire after ``ttl`` seconds
    and expired ones are pruned on every access.
    """

    def __init__(self, ttl: Optional[float] = None, clock=time.monotonic):
        self.ttl = settings.COMPLETION_TOKEN_TTL_SECONDS if ttl is None else ttl
        self._clock = clock
        self._lock = threading.Lock()
        self._warnings: dict[str, DocumentMissingWarning] = {}
        self._expires: dict[str, float] = {}
        self._by_key: dict[tuple[str, Stage, Role], str] = {}

    def _drop(self, token: str) -> Optional[DocumentMissingWarning]:
        warning = self._warnings.pop(token, None)
        self._expires.pop(token, None)
        if warning is not None:
            key = (warning.requisition_id, warning.stage, warning.role)
            if self._by_key.get(key) == token:
                del self._by_key[key]
        return warning

    def _prune(self) -> None:
        now = self._clock()
        for token in [t for t, at in self._expires.items() if at <= now]:
            self._drop(token)

    def issue(
        self,
        requisition_id: str,
        stage: Stage,
        role: Role,
        comments: Optional[str],
    ) -> DocumentMissingWarning:
        warning = DocumentMissingWarning(
            token=uuid.uuid4().hex,
            requisition_id=requisition_id,
            stage=stage,
            role=role,
            comments=comments,
        )
        key = (requisition_id, stage, role)
        with self._lock:
            self._prune()
            previous = self._by_key.get(key)
            if previous is not None:
                self._drop(previous)
            self._warnings[warning.token] = warning
            self._expires[warning.token] = self._clock() + self.ttl
            self._by_key[key] = warning.token
        return warning

    def peek(self, token: str) -> Optional[DocumentMissingWarning]:
        with self._lock:
            self._prune()
            return self._warnings.get(token)

    def consume(self, token: str) -> Optional[DocumentMissingWarning]:
        with self._lock:
            self._prune()
            return self._drop(token)

    def __len__(self) -> int:
        with self._lock:
            self._prune()
            return len(self._warnings)


pending_completions = PendingCompletions()


class WorkflowService:
    def __init__(
        self,
        repository,
        pending: Optional[PendingCompletions] = None,
        require_documents: Optional[bool] = None,
    ):
        self.repository = repository
        self.pending = pending if pending is not None else pending_completions
        self.require_documents = (
            settings.REQUIRE_STAGE_DOCUMENTS
            if require_documents is None
            else require_documents
        )

    async def attempt_complete(
        self,
        requisition_id: str,
        role: Role,
        stage: Stage,
        comments: Optional[str] = None,
        actor_name: Optional[str] = None,
    ) -> Union[Requisition, DocumentMissingWarning]:
        requisition = await self.repository.load(requisition_id)
        updated = complete_stage(requisition, role, stage, comments)

        if self.require_documents and not has_documents_for_stage(requisition, stage):
            warning = self.pending.issue(requisition.id, stage, role, comments)
            logger.info(
                "stage_completion_needs_confirmation",
                requisition_id=requisition.id,
                stage=stage.value,
                role=role.value,
            )
            return warning

        return await self._persist(updated, stage, actor_name)

    async def confirm_complete(
        self,
        token: str,
        role: Role,
        actor_name: Optional[str] = None,
    ) -> Requisition:
        warning = self.pending.peek(token)
        if warning is None:
            raise NotFound("Completion token", token)
        if warning.role != role:
            raise PermissionDenied(role=role.value, action="confirm_completion")
        self.pending.consume(token)

        requisition = await self.repository.load(warning.requisition_id)
        updated = complete_stage(requisition, role, warning.stage, warning.comments)
        return await self._persist(updated, warning.stage, actor_name)

    async def _persist(
        self, updated: Requisition, stage: Stage, actor_name: Optional[str]
    ) -> Requisition:
        saved = await self.repository.save(
            updated, actor_name, operation="complete_stage"
        )
        logger.info(
            "stage_completed",
            requisition_id=saved.id,
            stage=stage.value,
            current_stage=saved.current_stage.value,
            status=saved.status.value,
        )
        return saved
