"""
Domain models for Agenda Intel.

Task is the external, read-mostly record from the task store. Everything else
(CalendarEvent, RiskFlags, PriorityScore, Prediction, Recommendation,
Violation, OptimizationSuggestion, WorkforceSuggestion, PerformanceRow)
is derived per request and never persisted by the engines.
"""

from datetime import datetime
from typing import Annotated, Any, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from agenda_intel.services.timeutil import parse_instant, parse_minutes

PriorityTier = Literal["CRITICAL", "IMPORTANT", "NORMAL"]
ManualPriority = Literal["LOW", "MEDIUM", "HIGH"]
ImpactLevel = Literal["low", "medium", "high"]
Difficulty = Literal["low", "medium", "high"]
PredictionType = Literal[
    "DELAY_PROBABILITY",
    "DAY_SATURATION",
    "CLIENT_RISK",
    "TYPE_OVERRUN",
    "DEADLINE_BREACH",
]
RecommendationType = Literal["reschedule", "reassign", "extend_time", "merge", "priority_change"]

STATUS_PENDING = "PENDING"
STATUS_DONE = "DONE"
STATUS_CANCELLED = "CANCELLED"


class Task(BaseModel):
    """Task as read from the task store. Unparseable instants and estimates become None."""

    model_config = ConfigDict(extra="ignore")

    id: str
    title: str = ""
    status: str = STATUS_PENDING
    type: str = ""
    due_date: Optional[datetime] = None
    start_at: Optional[datetime] = None
    end_at: Optional[datetime] = None
    estimated_minutes: Optional[float] = None
    assigned_to: Optional[str] = None
    client_id: Optional[str] = None
    client_name: Optional[str] = None
    lead_name: Optional[str] = None
    sla_minutes: Optional[float] = None
    source_module: Optional[str] = None
    priority: str = "MEDIUM"
    created_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    started_at: Optional[datetime] = None

    @field_validator("due_date", "start_at", "end_at", "created_at", "completed_at", "started_at", mode="before")
    @classmethod
    def _lenient_instant(cls, v: Any) -> Optional[datetime]:
        return parse_instant(v)

    @field_validator("estimated_minutes", "sla_minutes", mode="before")
    @classmethod
    def _lenient_minutes(cls, v: Any) -> Optional[float]:
        return parse_minutes(v)


class RiskFlags(BaseModel):
    overlap: bool = False
    overload: bool = False
    impossible_timing: bool = False

    @property
    def detected(self) -> bool:
        return self.overlap or self.overload or self.impossible_timing


class CalendarEvent(BaseModel):
    """Calendar view of a task; always start < end."""

    id: str
    title: str = ""
    start: datetime
    end: datetime
    status: str = STATUS_PENDING
    priority: str = "MEDIUM"
    auto_priority: Optional[PriorityTier] = None
    due_date: Optional[datetime] = None
    risk: Optional[RiskFlags] = None
    assigned_to: Optional[str] = None
    client_name: Optional[str] = None
    lead_name: Optional[str] = None


class PriorityScore(BaseModel):
    score: int
    priority: PriorityTier


class AffectedTask(BaseModel):
    id: str
    title: str = ""


class Prediction(BaseModel):
    type: PredictionType
    title: str
    description: str
    probability: float = Field(ge=0, le=1)
    impact_level: ImpactLevel
    affected_tasks: list[AffectedTask] = Field(default_factory=list)


class TimeSlot(BaseModel):
    start_at: datetime
    end_at: datetime


class RescheduleChange(BaseModel):
    kind: Literal["reschedule"] = "reschedule"
    task_id: str
    due_date: Optional[datetime] = None
    start_at: Optional[datetime] = None
    end_at: Optional[datetime] = None


class ReassignChange(BaseModel):
    kind: Literal["reassign"] = "reassign"
    task_id: str
    assigned_to: Optional[str] = None


class ExtendTimeChange(BaseModel):
    kind: Literal["extend_time"] = "extend_time"
    task_id: str
    estimated_minutes: int = Field(gt=0)


class MergeChange(BaseModel):
    kind: Literal["merge"] = "merge"
    task_ids: list[str] = Field(min_length=2)
    suggested_slot: Optional[TimeSlot] = None


class PriorityChange(BaseModel):
    kind: Literal["priority_change"] = "priority_change"
    task_id: str
    priority: ManualPriority


SuggestedChange = Annotated[
    Union[RescheduleChange, ReassignChange, ExtendTimeChange, MergeChange, PriorityChange],
    Field(discriminator="kind"),
]


class Recommendation(BaseModel):
    """Advisory change; never applied without explicit caller confirmation."""

    id: str
    type: RecommendationType
    title: str
    explanation: str
    expected_benefit: str
    confidence: float = Field(ge=0, le=1)
    difficulty: Difficulty
    suggested_change: SuggestedChange
    affected_task_titles: list[str] = Field(default_factory=list)

    @model_validator(mode="after")
    def _change_matches_type(self) -> "Recommendation":
        if self.suggested_change.kind != self.type:
            raise ValueError(
                f"suggested_change kind '{self.suggested_change.kind}' does not match type '{self.type}'"
            )
        return self


ViolationType = Literal["OVERLAP", "DAILY_OVERLOAD", "IMPOSSIBLE_TIMING", "OUTSIDE_HOURS"]
Severity = Literal["error", "warning"]
OptimizationType = Literal["FILL_GAP", "BALANCE_LOAD", "GROUP_TASKS", "REORDER", "BETTER_SCHEDULE"]


class Violation(BaseModel):
    type: ViolationType
    severity: Severity
    task_id: str
    message: str


class OptimizationSuggestion(BaseModel):
    """Read-only calendar improvement; carries no change to apply."""

    id: str
    type: OptimizationType
    title: str
    description: str
    affected_task_ids: list[str] = Field(default_factory=list)
    time_saved_minutes: int = Field(ge=0)
    difficulty: Difficulty
    confidence: float = Field(ge=0, le=1)


class WorkforceSuggestion(BaseModel):
    """Move one pending task from an over-capacity assignee to one with spare capacity."""

    task_id: str
    from_user: Optional[str] = None
    to_user: str
    benefit: float


class PerformanceRow(BaseModel):
    user_id: Optional[str] = None
    name: str
    assigned: int = 0
    completed: int = 0
    overdue: int = 0
    within_sla: int = 0
    avg_resolution_minutes: int = 0
    current_load: int = 0
