"""Flow configuration — reads settings from environment variables.

All settings have sensible defaults for local development.  Production
deployments usually only set ``ONBOARDING_RULESET_DIR``.
"""

import logging
import os
from dataclasses import dataclass

_TRUTHY = {"1", "true", "yes", "on"}


@dataclass(frozen=True)
class FlowSettings:
    """Immutable flow configuration read from environment at startup."""

    # Ruleset directory (None → RulesetStore default, which is v1/ from repo root)
    ruleset_dir: str | None = None

    # When True a dangling next-step target raises DanglingStepError.
    # When False (production) the session is completed instead.
    strict_graph: bool = False

    # Logging
    log_level: str = "INFO"


def load_settings() -> FlowSettings:
    """Build settings from ``ONBOARDING_*`` environment variables."""
    strict = os.getenv("ONBOARDING_STRICT_GRAPH", "").strip().lower() in _TRUTHY
    return FlowSettings(
        ruleset_dir=os.getenv("ONBOARDING_RULESET_DIR") or None,
        strict_graph=strict,
        log_level=os.getenv("ONBOARDING_LOG_LEVEL", "INFO").upper(),
    )


def configure_logging(level: str = "INFO") -> None:
    """Install a basic stderr handler, for scripts and local runs."""
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )
