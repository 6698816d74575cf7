"""RulesetStore — loads the onboarding YAML from ``v1/`` into typed models.

This is the single source of truth for reference data at runtime.  The
store is loaded once at startup and is read-only afterwards.

Usage::

    store = RulesetStore()          # defaults to v1/ relative to repo root
    store.load()                    # parse all YAML files

    pack = store.packs.get_pack("muscle_building")
    step = store.get_step("sport_level")
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Optional

import yaml
from pydantic import ValidationError

from onboarding_flow.errors import RulesetError
from onboarding_flow.models.catalog import QuestionCatalog
from onboarding_flow.models.pack import PackRegistry, SmartPack
from onboarding_flow.models.step import Step, step_mapper

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Utility helpers
# ---------------------------------------------------------------------------

def find_repo_root(start: Optional[Path] = None) -> Path:
    """Walk upwards from *start* to find the repo root (dir with pyproject.toml or .git).

    Falls back to cwd if no marker is found.
    """
    p = (start or Path(__file__).resolve()).parent
    for parent in [p, *p.parents]:
        if (parent / "pyproject.toml").exists() or (parent / ".git").exists():
            return parent
    return Path.cwd()


def load_yaml(path: Path | str) -> Any:
    """Load a single YAML file and return the parsed contents."""
    if isinstance(path, str):
        path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Missing YAML file: {path}")
    with path.open("r", encoding="utf-8") as f:
        return yaml.safe_load(f)


# ---------------------------------------------------------------------------
# RulesetStore
# ---------------------------------------------------------------------------

class RulesetStore:
    """Loads all YAML from ``v1/`` and provides typed lookup.

    Attributes populated after :meth:`load`:

        catalog          — QuestionCatalog
        packs            — PackRegistry
        objectives       — dict[objective, list[pack_id]]
        fallback_packs   — list[pack_id] for unknown objectives
        module_minutes   — dict with base / floor / unknown / per_module
        steps            — dict[step_id, Step] in YAML order
    """

    def __init__(self, ruleset_dir: str | Path | None = None) -> None:
        if ruleset_dir is None:
            ruleset_dir = find_repo_root() / "v1"
        self._base = Path(ruleset_dir)

        # Populated by load()
        self.catalog: QuestionCatalog | None = None
        self.packs: PackRegistry = PackRegistry([])
        self.objectives: dict[str, list[str]] = {}
        self.fallback_packs: list[str] = []
        self.module_minutes: dict[str, Any] = {}
        self.steps: dict[str, Step] = {}

    @property
    def base_dir(self) -> Path:
        return self._base

    # ------------------------------------------------------------------
    # Loading
    # ------------------------------------------------------------------

    def load(self) -> None:
        """Parse all YAML files under the ruleset directory into typed models.

        Call this once at startup.  Raises ``FileNotFoundError`` if expected
        YAML files are missing and :class:`RulesetError` if their contents do
        not match the models.
        """
        self._load_catalog()
        self._load_packs()
        self._load_recommendations()
        self._load_steps()
        logger.info(
            "RulesetStore loaded: %d questions, %d modules, %d packs, %d steps",
            len(self.catalog.questions),
            len(self.catalog.modules),
            len(self.packs),
            len(self.steps),
        )

    def _load_catalog(self) -> None:
        """Load v1/catalog.yaml into a QuestionCatalog."""
        raw = load_yaml(self._base / "catalog.yaml")
        try:
            self.catalog = QuestionCatalog(**raw)
        except (TypeError, ValidationError) as exc:
            raise RulesetError(f"Invalid catalog.yaml: {exc}") from exc

    def _load_packs(self) -> None:
        """Load v1/packs.yaml into a PackRegistry, checking ids against the catalog."""
        known = set(self.catalog.questions)
        packs: list[SmartPack] = []
        for raw in load_yaml(self._base / "packs.yaml"):
            try:
                pack = SmartPack(**raw)
            except (TypeError, ValidationError) as exc:
                raise RulesetError(f"Invalid pack {raw.get('id')!r}: {exc}") from exc

            listed = list(pack.questions_to_skip)
            if not pack.asks_all:
                listed += pack.questions_to_ask.ids
            unknown = [qid for qid in listed if qid not in known]
            if unknown:
                raise RulesetError(f"Pack '{pack.id}' references unknown questions: {unknown}")
            for module in pack.modules:
                if module not in self.catalog.modules:
                    raise RulesetError(f"Pack '{pack.id}' references unknown module '{module}'")
            packs.append(pack)

        try:
            self.packs = PackRegistry(packs)
        except ValueError as exc:
            raise RulesetError(str(exc)) from exc

    def _load_recommendations(self) -> None:
        """Load v1/recommendations.yaml: objective table and module time costs."""
        raw = load_yaml(self._base / "recommendations.yaml")
        self.objectives = {k: list(v) for k, v in raw.get("objectives", {}).items()}
        self.fallback_packs = list(raw.get("fallback") or [])
        if not self.fallback_packs:
            raise RulesetError("recommendations.yaml needs a non-empty fallback list")

        for objective, pack_ids in self.objectives.items():
            for pack_id in [*pack_ids, *self.fallback_packs]:
                if pack_id not in self.packs:
                    raise RulesetError(
                        f"Objective '{objective}' recommends unknown pack '{pack_id}'"
                    )

        minutes = raw.get("module_minutes", {})
        self.module_minutes = {
            "base": int(minutes.get("base", 0)),
            "floor": int(minutes.get("floor", 0)),
            "unknown": int(minutes.get("unknown", 0)),
            "per_module": {k: int(v) for k, v in (minutes.get("per_module") or {}).items()},
        }

    def _load_steps(self) -> None:
        """Load v1/steps.yaml, keyed by step id.

        Each step is parsed through ``step_mapper`` to get the right Pydantic
        type based on ``type``.
        """
        for s_dict in load_yaml(self._base / "steps.yaml"):
            stype = s_dict.get("type")
            cls = step_mapper.get(stype)
            if cls is None:
                raise RulesetError(f"Unknown step type '{stype}' for step {s_dict.get('id')!r}")
            try:
                step = cls(**s_dict)
            except ValidationError as exc:
                raise RulesetError(f"Invalid step {s_dict.get('id')!r}: {exc}") from exc
            if step.id in self.steps:
                raise RulesetError(f"Duplicate step id '{step.id}'")
            self.steps[step.id] = step

    # ------------------------------------------------------------------
    # Lookup helpers
    # ------------------------------------------------------------------

    def get_step(self, step_id: str) -> Step:
        """Look up a step by id.

        Raises:
            KeyError: if the step is not defined.
        """
        return self.steps[step_id]

    def has_step(self, step_id: str) -> bool:
        return step_id in self.steps
