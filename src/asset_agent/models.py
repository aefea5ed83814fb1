# models.py
# Data contracts for the asset agent.
# No business logic lives here, only schema and validation.
#
# JSON field names follow the plan wire format the model is prompted with
# ("plan", "originalRequest"), so every model accepts either the alias or the
# Python attribute name.

from datetime import datetime, timezone
from enum import Enum
from typing import Any

from pydantic import AliasChoices, BaseModel, ConfigDict, Field


class Phase(str, Enum):
    """When a step may run relative to the host's hard reload."""

    PRE_RESET = "pre_reset"
    POST_RESET = "post_reset"


class Outcome(str, Enum):
    SUCCESS = "success"
    FAILURE = "failure"


class RunState(str, Enum):
    """States an engine run moves through. DONE and FAILED are terminal."""

    IDLE = "idle"
    BUILDING_PROMPT = "building_prompt"
    AWAITING_MODEL = "awaiting_model"
    EXECUTING_PRE_RESET = "executing_pre_reset"
    CHECKPOINTED = "checkpointed"
    EXECUTING_POST_RESET = "executing_post_reset"
    BUILDING_CHAINED_PROMPT = "building_chained_prompt"
    EXECUTING_CHAINED = "executing_chained"
    DONE = "done"
    FAILED = "failed"


class Step(BaseModel):
    """A single tool invocation in a plan."""

    model_config = ConfigDict(populate_by_name=True)

    tool: str = Field(..., description="Tool name; must exist in the capability registry.")
    arguments: dict[str, Any] = Field(
        default_factory=dict,
        validation_alias=AliasChoices("arguments", "args"),
        description="Tool arguments keyed by parameter name.",
    )
    description: str = Field(default="", description="Human-readable intent of this step.")


class Plan(BaseModel):
    """An ordered list of steps derived from a natural-language request."""

    model_config = ConfigDict(populate_by_name=True)

    steps: list[Step] = Field(default_factory=list, alias="plan")
    original_request: str | None = Field(default=None, alias="originalRequest")
    correlation_id: str | None = Field(default=None, alias="correlationId")

    @property
    def is_empty(self) -> bool:
        return not self.steps


class StepResult(BaseModel):
    """Outcome of invoking one step against the registry."""

    step: Step
    outcome: Outcome
    detail: str = ""

    @property
    def ok(self) -> bool:
        return self.outcome is Outcome.SUCCESS


class Checkpoint(BaseModel):
    """
    Durable record of an in-flight plan.

    Serialized flat so the file reads as the plan itself plus bookkeeping:
    {"plan": [...], "originalRequest": ..., "phase": ..., "createdAt": ...}
    """

    model_config = ConfigDict(populate_by_name=True)

    steps: list[Step] = Field(default_factory=list, alias="plan")
    original_request: str | None = Field(default=None, alias="originalRequest")
    correlation_id: str | None = Field(default=None, alias="correlationId")
    phase: Phase = Phase.POST_RESET
    created_at: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc), alias="createdAt"
    )
    completed: list[StepResult] = Field(
        default_factory=list,
        description="Results of steps already run before the reload, for the final summary.",
    )

    @classmethod
    def from_plan(
        cls,
        plan: Plan,
        phase: Phase = Phase.POST_RESET,
        completed: list[StepResult] | None = None,
    ) -> "Checkpoint":
        return cls(
            steps=plan.steps,
            original_request=plan.original_request,
            correlation_id=plan.correlation_id,
            phase=phase,
            completed=completed or [],
        )

    def to_plan(self) -> Plan:
        return Plan(
            steps=self.steps,
            original_request=self.original_request,
            correlation_id=self.correlation_id,
        )


class BackendResponse(BaseModel):
    """Uniform result of one model round-trip, whatever the provider."""

    success: bool
    message: str = ""
    error_message: str = ""

    @classmethod
    def ok(cls, message: str) -> "BackendResponse":
        return cls(success=True, message=message)

    @classmethod
    def error(cls, error_message: str) -> "BackendResponse":
        return cls(success=False, error_message=error_message)
