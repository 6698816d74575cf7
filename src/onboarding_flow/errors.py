"""Exception hierarchy for the onboarding SDK.

Soft failures (unknown pack in the compiler, unknown objective in the
recommender) never raise: they log and return an empty list or a fallback
value.  Validation failures are returned as values on ``StepOutcome``.
The exceptions below cover the remaining cases::

    OnboardingError
    ├── UnknownPackError        (ValueError)  start() with nothing to ask
    ├── InvalidTransitionError  (ValueError)  submit/skip/go_back in a wrong state
    ├── RulesetError            (ValueError)  malformed YAML at load time
    └── DanglingStepError       (LookupError) resolver target missing, strict mode

Each concrete error also subclasses a builtin so callers that only catch
``ValueError`` / ``LookupError`` keep working.
"""


class OnboardingError(Exception):
    """Base class for all onboarding SDK errors."""


class UnknownPackError(OnboardingError, ValueError):
    """The pack id is unknown or compiles to an empty question set."""

    def __init__(self, pack_id: str, message: str | None = None) -> None:
        self.pack_id = pack_id
        super().__init__(message or f"Pack '{pack_id}' not found or has no questions")


class InvalidTransitionError(OnboardingError, ValueError):
    """The requested transition is not allowed in the current session state."""


class RulesetError(OnboardingError, ValueError):
    """Ruleset YAML is malformed or internally inconsistent."""


class DanglingStepError(OnboardingError, LookupError):
    """A next-step reference points at an id that is not in the step graph."""

    def __init__(self, source_id: str, target_id: str) -> None:
        self.source_id = source_id
        self.target_id = target_id
        super().__init__(
            f"Step '{source_id}' resolved to '{target_id}', which is not in the step graph"
        )
