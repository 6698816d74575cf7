"""Session models — the contract between the flow engine and its callers.

``OnboardingData`` is the per-session aggregate the engine mutates; every
merge re-validates the whole model so a badly typed answer never leaves it
half-written.  ``StepView`` is the flattened step handed to the UI and
``StepOutcome`` is what ``submit()`` / ``skip()`` return.
"""

from __future__ import annotations

import enum
from datetime import datetime
from typing import Any, List, Optional

from pydantic import BaseModel, ConfigDict, Field


class FlowState(str, enum.Enum):
    """Lifecycle states for an onboarding session.

    Transitions:
        not_started -> in_progress  (start)
        in_progress -> completed    (no successor left in the sequence)
        any         -> aborted      (abort; data discarded)
    """

    NOT_STARTED = "not_started"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    ABORTED = "aborted"


class OnboardingProgress(BaseModel):
    """Progress bookkeeping for one session."""

    current_step: Optional[str] = None
    # Ordered, unique; only grows within a session
    completed_steps: List[str] = Field(default_factory=list)
    skipped_steps: List[str] = Field(default_factory=list)
    total_steps: int = 0
    skip_count: int = 0
    # Minutes
    estimated_time_left: int = 0


class OnboardingData(BaseModel):
    """Answers collected during onboarding, keyed by domain concept.

    Unknown keys are rejected so a form answer cannot smuggle in fields the
    profile does not define.
    """

    model_config = ConfigDict(extra="forbid")

    # Identity & objective
    first_name: Optional[str] = None
    main_objective: Optional[str] = None

    # Pack selection
    selected_pack: Optional[str] = None
    # Active modules in the order the session asks them
    selected_modules: List[str] = Field(default_factory=list)

    # Personal info (form)
    age: Optional[int] = None
    gender: Optional[str] = None
    height: Optional[float] = None
    current_weight: Optional[float] = None
    lifestyle: Optional[str] = None
    available_time_per_day: Optional[int] = None

    # Sport
    sport: Optional[str] = None
    sport_position: Optional[str] = None
    sport_level: Optional[str] = None
    season_period: Optional[str] = None
    training_frequency: Optional[int] = None

    # Strength
    equipment_level: Optional[str] = None
    strength_objective: Optional[str] = None
    strength_experience: Optional[str] = None

    # Nutrition
    dietary_preference: Optional[str] = None
    nutrition_objective: Optional[str] = None
    food_allergies: Optional[List[str]] = None

    # Sleep
    average_sleep_hours: Optional[float] = None
    sleep_difficulties: Optional[List[str]] = None

    # Hydration
    hydration_goal: Optional[float] = None
    hydration_reminders: Optional[bool] = None

    # Wellness
    stress_level: Optional[int] = None

    # Final questions & consent
    motivation: Optional[str] = None
    privacy_consent: Optional[bool] = None

    progress: OnboardingProgress = Field(default_factory=OnboardingProgress)

    started_at: Optional[datetime] = None
    last_updated: Optional[datetime] = None
    completed_at: Optional[datetime] = None

    def answers(self) -> dict[str, Any]:
        """Flat dict of answer fields, for predicate evaluation."""
        return self.model_dump(exclude={"progress"})


class FieldError(BaseModel):
    """A validation failure surfaced to the UI for one step."""

    step_id: str
    field: Optional[str] = None
    rule: str
    message: str


class StepView(BaseModel):
    """Flattened step for UI consumers.

    Strips routing details (conditions, resolvers, rules) and presents only
    what the renderer needs.
    """

    id: str
    type: str
    title: str
    description: str = ""
    question: Optional[str] = None
    input_type: Optional[str] = None
    field: Optional[str] = None
    # [{id, label, value}] for select types
    options: Optional[list[dict]] = None
    # [{id, label, kind}] for forms
    fields: Optional[list[dict]] = None
    # {min, max, step} for sliders / numbers
    constraints: Optional[dict] = None
    default_value: Any = None
    skippable: bool = False
    estimated_seconds: int = 0


class StepOutcome(BaseModel):
    """Result of a submit/skip: accepted or not, and where the session is now."""

    accepted: bool
    state: FlowState
    current_step: Optional[str] = None
    error: Optional[FieldError] = None
    # Steps passed over automatically while advancing
    auto_skipped: List[str] = Field(default_factory=list)

    @property
    def completed(self) -> bool:
        return self.state == FlowState.COMPLETED
