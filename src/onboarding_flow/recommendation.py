"""Recommender — objective → pack suggestions and time estimates.

Two soft-failure policies live here and differ on purpose from the
compiler's:

  - an unknown objective recommends the fallback list (``["custom"]``),
    never an empty list
  - an unknown pack is estimated at ``UNKNOWN_PACK_ESTIMATE_MINUTES``,
    never zero
"""

from __future__ import annotations

import logging
import math
from typing import Iterable

from onboarding_flow import constants
from onboarding_flow.ruleset import RulesetStore

logger = logging.getLogger(__name__)


class Recommender:
    """Pack recommendations and duration estimates backed by a loaded store."""

    def __init__(self, store: RulesetStore) -> None:
        self._store = store

    def get_recommended_packs(self, main_objective: str) -> list[str]:
        """Ordered pack ids for *main_objective*, most relevant first (a copy)."""
        pack_ids = self._store.objectives.get(main_objective)
        if not pack_ids:
            logger.debug("No recommendation for objective %r, using fallback", main_objective)
            return list(self._store.fallback_packs)
        return list(pack_ids)

    def get_estimated_time_for_pack(self, pack_id: str) -> int:
        """Minutes for a pack: ``ceil(question_count * MINUTES_PER_QUESTION)``."""
        pack = self._store.packs.get_pack(pack_id)
        if pack is None:
            logger.warning("get_estimated_time_for_pack: unknown pack '%s'", pack_id)
            return constants.UNKNOWN_PACK_ESTIMATE_MINUTES

        if pack.asks_all:
            count = len(self._store.catalog.questions)
        else:
            count = len(pack.questions_to_ask.ids)
        return math.ceil(count * constants.MINUTES_PER_QUESTION)

    def estimate_time_for_modules(self, modules: Iterable[str]) -> int:
        """Minutes for a custom module selection.

        Base cost plus a per-module cost (unknown modules cost the
        ``unknown`` figure), never below the floor.
        """
        table = self._store.module_minutes
        per_module = table["per_module"]
        total = table["base"]
        for module in modules:
            total += per_module.get(module, table["unknown"])
        return max(total, table["floor"])
