"""onboarding_flow — Rules-driven adaptive onboarding SDK.

Public API:
    OnboardingFlow       — drives one onboarding session over the step graph
    RulesetStore         — loads the YAML ruleset into typed models
    QuestionSetCompiler  — pack id (+ custom modules) → ordered question ids
    Recommender          — objective → pack ids, pack/module time estimates
    StepGraph            — visibility, validation, next-step resolution, graph checks
    FlowSettings         — immutable configuration, see ``load_settings``

Session models:
    OnboardingData       — per-session answers and progress
    StepView             — flattened step handed to the UI
    StepOutcome          — result of submit()/skip()
    FlowState            — session lifecycle states

Persistence interface:
    ProgressSink         — ABC notified after each transition
    InMemoryProgressSink — reference implementation
"""

from onboarding_flow.compiler import QuestionSetCompiler
from onboarding_flow.config import FlowSettings, configure_logging, load_settings
from onboarding_flow.engine import OnboardingFlow
from onboarding_flow.errors import (
    DanglingStepError,
    InvalidTransitionError,
    OnboardingError,
    RulesetError,
    UnknownPackError,
)
from onboarding_flow.graph import GraphIssue, StepGraph
from onboarding_flow.interfaces import ProgressSink
from onboarding_flow.models.session import (
    FieldError,
    FlowState,
    OnboardingData,
    OnboardingProgress,
    StepOutcome,
    StepView,
)
from onboarding_flow.recommendation import Recommender
from onboarding_flow.ruleset import RulesetStore
from onboarding_flow.sinks import InMemoryProgressSink

__all__ = [
    # Engine & store
    "OnboardingFlow",
    "QuestionSetCompiler",
    "Recommender",
    "RulesetStore",
    "StepGraph",
    "GraphIssue",
    # Config
    "FlowSettings",
    "configure_logging",
    "load_settings",
    # Errors
    "OnboardingError",
    "UnknownPackError",
    "InvalidTransitionError",
    "RulesetError",
    "DanglingStepError",
    # Session
    "FieldError",
    "FlowState",
    "OnboardingData",
    "OnboardingProgress",
    "StepOutcome",
    "StepView",
    # Persistence
    "ProgressSink",
    "InMemoryProgressSink",
]
