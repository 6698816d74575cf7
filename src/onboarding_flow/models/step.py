"""Step models for the onboarding step graph.

Each step type maps to a distinct kind of screen:

    - info: a passive message with a "continue" action
    - question: collects one answer (or a dict of answers for forms)
    - summary: recap of the collected profile
    - confirmation: final acknowledgement

Question steps carry an ``input_type`` (text, number, slider, toggle,
single-select, multi-select, form), optional options, validation rules and
the ``field`` of ``OnboardingData`` the answer is written to.  When
``field`` is omitted the answer must be a dict, merged key by key.

Every step may carry a ``condition`` (predicates AND-ed against the data
collected so far), ``required_modules`` (visible when any is active) and a
``next_step``: either a literal step id or declarative rules::

    next_step:
      rules:
        - when: [{field: sport_level, op: eq, value: recreational}]
          then: training_frequency
      default: season_period

Successors that depend on the active modules cannot be expressed in YAML;
they are registered as resolver functions keyed by step id (see
:mod:`onboarding_flow.resolvers`).

The discriminated ``Step`` union uses ``type`` as its discriminator.
The ``step_mapper`` dict maps type strings to their Pydantic classes.
"""

from __future__ import annotations

from typing import Annotated, Any, List, Literal, Optional, Union

from pydantic import BaseModel, Field, model_validator


# --- Conditional logic models ---

class Predicate(BaseModel):
    """A single condition that references a collected answer.

    ``field`` names an ``OnboardingData`` attribute; ``key`` drills into a
    dict-valued answer.

    Operators:
      - eq, ne: equality / inequality
      - lt, le, gt, ge: numeric comparisons
      - between: value is [min, max] inclusive
      - contains, not_contains: substring / element membership
      - contains_any, contains_all: set membership
      - matches: regex match
    """

    field: str
    key: Optional[str] = None
    op: Literal[
        "eq", "ne", "contains", "not_contains", "matches",
        "contains_any", "contains_all",
        "lt", "le", "gt", "ge", "between",
    ]
    value: Any = None


class NextStepRule(BaseModel):
    """If ALL predicates in ``when`` are true, go to ``then``."""

    when: List[Predicate]
    then: str


class NextStepRules(BaseModel):
    """Ordered rules; the first match wins, else ``default`` (None → end of flow)."""

    rules: List[NextStepRule]
    default: Optional[str] = None


# A literal step id or declarative rules.
NextStep = Union[str, NextStepRules]


# --- Validation rules ---

class _BaseRule(BaseModel):
    message: str


class RequiredRule(_BaseRule):
    """Fails on None, blank strings and empty collections."""

    type: Literal["required"] = "required"


class MinRule(_BaseRule):
    """Numbers compare by value; strings and lists by length."""

    type: Literal["min"] = "min"
    value: float


class MaxRule(_BaseRule):
    """Numbers compare by value; strings and lists by length."""

    type: Literal["max"] = "max"
    value: float


class RangeRule(_BaseRule):
    """Inclusive numeric range."""

    type: Literal["range"] = "range"
    min: float
    max: float


class PatternRule(_BaseRule):
    """Regex search on string answers."""

    type: Literal["pattern"] = "pattern"
    regex: str


class OneOfRule(_BaseRule):
    """Answer (or every element of a list answer) must be in ``values``."""

    type: Literal["one_of"] = "one_of"
    values: List[Any]


class CustomRule(_BaseRule):
    """Named predicate looked up in the validator registry."""

    type: Literal["custom"] = "custom"
    validator: str


ValidationRule = Annotated[
    Union[RequiredRule, MinRule, MaxRule, RangeRule, PatternRule, OneOfRule, CustomRule],
    Field(discriminator="type"),
]


# --- Shared option/field models ---

class StepOption(BaseModel):
    """A selectable option.  ``next_step`` overrides the step's successor."""

    id: str
    label: str
    value: Any
    next_step: Optional[str] = None


class FormField(BaseModel):
    """A sub-field of a form question."""

    id: str
    label: str
    kind: Literal["text", "number"] = "text"


# --- Step types ---

class BaseStep(BaseModel):
    """Fields shared by all step types."""

    id: str
    title: str
    description: str = ""
    condition: List[Predicate] = Field(default_factory=list)
    required_modules: List[str] = Field(default_factory=list)
    next_step: Optional[NextStep] = None
    estimated_seconds: int = 60


class InfoStep(BaseStep):
    """Passive informational screen."""

    type: Literal["info"] = "info"


class SummaryStep(BaseStep):
    """Recap of the collected profile."""

    type: Literal["summary"] = "summary"


class ConfirmationStep(BaseStep):
    """Final acknowledgement screen."""

    type: Literal["confirmation"] = "confirmation"


_SELECT_TYPES = {"single-select", "multi-select"}


class QuestionStep(BaseStep):
    """Collects an answer and writes it into ``OnboardingData``."""

    type: Literal["question"] = "question"
    question: str
    input_type: Literal[
        "text", "number", "slider", "toggle", "single-select", "multi-select", "form",
    ]
    field: Optional[str] = None
    options: List[StepOption] = Field(default_factory=list)
    fields: List[FormField] = Field(default_factory=list)
    validation: List[ValidationRule] = Field(default_factory=list)
    skippable: bool = False
    default_value: Any = None
    # Slider / number constraints
    min_value: Optional[float] = None
    max_value: Optional[float] = None
    step: Optional[float] = None

    @model_validator(mode="after")
    def _chk(self):
        if self.input_type in _SELECT_TYPES and not self.options:
            raise ValueError(f"{self.input_type} step '{self.id}' needs options")
        if self.input_type == "form" and not self.fields:
            raise ValueError(f"form step '{self.id}' needs fields")
        if self.input_type != "form" and self.field is None:
            raise ValueError(f"step '{self.id}' needs a target field")
        if (
            self.min_value is not None
            and self.max_value is not None
            and self.min_value >= self.max_value
        ):
            raise ValueError("min_value must be < max_value")
        return self

    def option_for(self, value: Any) -> Optional[StepOption]:
        """The option whose ``value`` (or ``id``) equals *value*, if any."""
        for opt in self.options:
            if opt.value == value or opt.id == value:
                return opt
        return None


# --- Discriminated union of all step types ---

Step = Annotated[
    Union[InfoStep, QuestionStep, SummaryStep, ConfirmationStep],
    Field(discriminator="type"),
]

# Maps type string → Pydantic class for dynamic deserialization from YAML.
step_mapper = {
    "info": InfoStep,
    "question": QuestionStep,
    "summary": SummaryStep,
    "confirmation": ConfirmationStep,
}
