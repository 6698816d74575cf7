"""Public model re-exports for onboarding_flow.

Consumers should import from ``onboarding_flow.models`` rather than
reaching into sub-modules directly.
"""

# --- Catalog ---
from onboarding_flow.models.catalog import ModuleId, QuestionCatalog

# --- Packs ---
from onboarding_flow.models.pack import (
    AllQuestions,
    PackRegistry,
    QuestionSelection,
    QuestionSubset,
    SmartPack,
)

# --- Steps ---
from onboarding_flow.models.step import (
    BaseStep,
    ConfirmationStep,
    CustomRule,
    FormField,
    InfoStep,
    MaxRule,
    MinRule,
    NextStep,
    NextStepRule,
    NextStepRules,
    OneOfRule,
    PatternRule,
    Predicate,
    QuestionStep,
    RangeRule,
    RequiredRule,
    Step,
    StepOption,
    SummaryStep,
    ValidationRule,
    step_mapper,
)

# --- Session ---
from onboarding_flow.models.session import (
    FieldError,
    FlowState,
    OnboardingData,
    OnboardingProgress,
    StepOutcome,
    StepView,
)

__all__ = [
    # Catalog
    "ModuleId",
    "QuestionCatalog",
    # Packs
    "AllQuestions",
    "PackRegistry",
    "QuestionSelection",
    "QuestionSubset",
    "SmartPack",
    # Steps
    "BaseStep",
    "ConfirmationStep",
    "CustomRule",
    "FormField",
    "InfoStep",
    "MaxRule",
    "MinRule",
    "NextStep",
    "NextStepRule",
    "NextStepRules",
    "OneOfRule",
    "PatternRule",
    "Predicate",
    "QuestionStep",
    "RangeRule",
    "RequiredRule",
    "Step",
    "StepOption",
    "SummaryStep",
    "ValidationRule",
    "step_mapper",
    # Session
    "FieldError",
    "FlowState",
    "OnboardingData",
    "OnboardingProgress",
    "StepOutcome",
    "StepView",
]
