"""Step-by-step progress model for analytics jobs.

A job's progress is a fixed, ordered list of steps built from a template
for its analysis kind. Steps move ``pending -> active -> completed`` (or
``failed``) and never move backwards out of a terminal state.
``current_step`` is the step a poller should watch next; it only advances
when a step completes, only onto a step that is still pending, and never
regresses.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Dict, List, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field, PrivateAttr, model_validator
from pydantic.alias_generators import to_camel


class StepStatus(str, Enum):
    PENDING = "pending"
    ACTIVE = "active"
    COMPLETED = "completed"
    FAILED = "failed"


class StepRole(str, Enum):
    PREPARATION = "preparation"
    VALIDATION = "validation"
    ANALYSIS = "analysis"
    DETECTION = "detection"
    COMPUTATION = "computation"
    FINALIZE = "finalize"


_SHARED_STEPS: List[Tuple[str, StepRole]] = [
    ("data preparation", StepRole.PREPARATION),
    ("data validation", StepRole.VALIDATION),
    ("data analysis", StepRole.ANALYSIS),
]

STEP_TEMPLATES: Dict[str, List[Tuple[str, StepRole]]] = {
    "trend": _SHARED_STEPS + [
        ("trend detection", StepRole.DETECTION),
        ("finalize trend analysis", StepRole.FINALIZE),
    ],
    "anomaly": _SHARED_STEPS + [
        ("anomaly detection", StepRole.DETECTION),
        ("finalize anomaly analysis", StepRole.FINALIZE),
    ],
    "forecast": _SHARED_STEPS + [
        ("model training", StepRole.DETECTION),
        ("forecast computation", StepRole.COMPUTATION),
        ("finalize forecast analysis", StepRole.FINALIZE),
    ],
}

TERMINAL_STEP_STATUSES = frozenset({StepStatus.COMPLETED, StepStatus.FAILED})

# Roles are not stored; they are recovered from the fixed step descriptions
_ROLE_BY_DESCRIPTION: Dict[str, StepRole] = {
    description: role
    for template in STEP_TEMPLATES.values()
    for description, role in template
}

# Stored progress uses the gateway's camelCase keys (totalSteps, startTime, ...)
CAMEL_CASE = ConfigDict(alias_generator=to_camel, populate_by_name=True)


def _now() -> datetime:
    return datetime.now(timezone.utc)


class ProgressStep(BaseModel):
    model_config = CAMEL_CASE

    index: int
    description: str
    role: Optional[StepRole] = Field(default=None, exclude=True)
    status: StepStatus = StepStatus.PENDING
    start_time: Optional[datetime] = None
    end_time: Optional[datetime] = None
    duration: Optional[int] = None  # milliseconds

    @model_validator(mode="after")
    def _infer_role(self) -> "ProgressStep":
        if self.role is None:
            self.role = _ROLE_BY_DESCRIPTION.get(self.description)
        return self

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STEP_STATUSES

    def _finish(self, status: StepStatus) -> None:
        self.status = status
        self.end_time = _now()
        if self.start_time is not None:
            delta = self.end_time - self.start_time
            self.duration = int(delta.total_seconds() * 1000)
        else:
            self.duration = None


class ProgressInfo(BaseModel):
    model_config = CAMEL_CASE

    total_steps: int
    current_step: int = 0
    steps: List[ProgressStep]

    _roles: Dict[StepRole, int] = PrivateAttr(default_factory=dict)

    def model_post_init(self, __context) -> None:
        self._roles = {step.role: step.index for step in self.steps if step.role is not None}

    def index_of(self, role: StepRole) -> Optional[int]:
        return self._roles.get(role)

    @property
    def active_indices(self) -> List[int]:
        return [s.index for s in self.steps if s.status == StepStatus.ACTIVE]

    def activate(self, index: int) -> bool:
        """Move a pending step to active. Returns True if anything changed."""
        step = self.steps[index]
        if step.status != StepStatus.PENDING:
            return False
        step.status = StepStatus.ACTIVE
        step.start_time = _now()
        step.end_time = None
        step.duration = None
        return True

    def complete(self, index: int) -> bool:
        """Complete a pending or active step.

        ``current_step`` only moves when the watched step or a later one
        completes; finishing an earlier step leaves it where it is.
        """
        step = self.steps[index]
        if step.is_terminal:
            return False
        step._finish(StepStatus.COMPLETED)
        if index >= self.current_step:
            self._advance()
        return True

    def fail(self, index: int) -> bool:
        step = self.steps[index]
        if step.is_terminal:
            return False
        step._finish(StepStatus.FAILED)
        return True

    def fail_active(self) -> List[int]:
        """Fail every active step, or the watched step if none is active.

        Returns the indices that were marked failed.
        """
        failed = [i for i in self.active_indices if self.fail(i)]
        if not failed and self.current_step < self.total_steps:
            if self.fail(self.current_step):
                failed.append(self.current_step)
        return failed

    def _advance(self) -> None:
        for step in self.steps:
            if step.index > self.current_step and step.status == StepStatus.PENDING:
                self.current_step = step.index
                return


def build_progress(kind: str) -> ProgressInfo:
    """Build the fixed step template for an analysis kind."""
    key = kind.value if isinstance(kind, Enum) else kind
    try:
        template = STEP_TEMPLATES[key]
    except KeyError:
        raise ValueError(f"Unknown analysis kind '{kind}'") from None
    steps = [
        ProgressStep(index=i, description=description, role=role)
        for i, (description, role) in enumerate(template)
    ]
    return ProgressInfo(total_steps=len(steps), steps=steps)
