"""Onboarding constants shared across the SDK.

These values are referenced by the compiler, recommender, and flow engine.
They mirror conventions encoded in the YAML rulesets under ``v1/``.

The time-estimate constants can be overridden via environment variables so
that product can tune the figures shown on pack cards without code changes.
"""

import os

# The pack whose module list is supplied by the caller at compile time.
CUSTOM_PACK_ID = "custom"

# Minutes per question used for pack time estimates (ceil(count * this)).
# Overridable via MINUTES_PER_QUESTION env var.
MINUTES_PER_QUESTION = float(os.getenv("MINUTES_PER_QUESTION", "0.5"))

# Returned by the pack estimator when the pack id is unknown.  Never zero so
# the UI never implies that no time is needed.
# Overridable via UNKNOWN_PACK_ESTIMATE_MINUTES env var.
UNKNOWN_PACK_ESTIMATE_MINUTES = int(os.getenv("UNKNOWN_PACK_ESTIMATE_MINUTES", "15"))

# Human-readable state names for logging and the simulator transcript.
STATE_NAMES: dict[str, str] = {
    "not_started": "Not started",
    "in_progress": "In progress",
    "completed": "Completed",
    "aborted": "Aborted",
}
