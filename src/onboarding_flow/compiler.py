"""QuestionSetCompiler — turns a pack id (+ custom modules) into a question sequence.

The compiler is pure and deterministic: identical inputs always yield an
identical ordered list, which makes it snapshot-testable.  It never raises
for an unknown pack; it logs and returns ``[]`` and the caller decides
whether that is fatal (the flow engine raises ``UnknownPackError``).

Resolution order for ``compile_question_set(pack_id, custom_modules)``:

    1. unknown pack                      → []
    2. custom pack with modules given    → module splicing
    3. selection ``all``                 → whole catalog, skip list ignored
    4. selection ``subset``              → the pack's ask list verbatim

Module splicing starts from the catalog's base sequence and inserts each
module's questions immediately before the splice anchor
(``final_questions``), in caller module order.  A question already present
is not inserted again: first-seen position wins.
"""

from __future__ import annotations

import logging
from typing import Iterable, Optional

from onboarding_flow.constants import CUSTOM_PACK_ID
from onboarding_flow.models.catalog import QuestionCatalog
from onboarding_flow.models.pack import PackRegistry

logger = logging.getLogger(__name__)


class QuestionSetCompiler:
    """Compiles question sequences from the catalog and pack registry.

    Args:
        catalog: the loaded :class:`QuestionCatalog`
        packs: the loaded :class:`PackRegistry`
    """

    def __init__(self, catalog: QuestionCatalog, packs: PackRegistry) -> None:
        self._catalog = catalog
        self._packs = packs

    def compile_question_set(
        self, pack_id: str, custom_modules: Optional[Iterable[str]] = None
    ) -> list[str]:
        """Return the ordered question ids a session with this pack asks."""
        pack = self._packs.get_pack(pack_id)
        if pack is None:
            logger.warning("compile_question_set: unknown pack '%s'", pack_id)
            return []

        if pack.id == CUSTOM_PACK_ID and custom_modules is not None:
            return self.generate_for_modules(custom_modules)

        if pack.asks_all:
            # "all" is absolute: the skip list is ignored
            return self._catalog.all_questions()

        return list(pack.questions_to_ask.ids)

    def generate_for_modules(self, modules: Iterable[str]) -> list[str]:
        """Splice each module's questions into the base sequence before the anchor."""
        base = list(self._catalog.base_sequence)
        anchor = base.index(self._catalog.splice_anchor)
        head, tail = base[:anchor], base[anchor:]

        seen = set(base)
        middle: list[str] = []
        for module in modules:
            qids = self._catalog.questions_for_module(module)
            if not qids:
                logger.warning("generate_for_modules: unknown module '%s' ignored", module)
                continue
            for qid in qids:
                if qid in seen:
                    logger.debug(
                        "generate_for_modules: duplicate question '%s' from module '%s' dropped",
                        qid, module,
                    )
                    continue
                seen.add(qid)
                middle.append(qid)

        return head + middle + tail

    def active_modules_for(
        self, pack_id: str, custom_modules: Optional[Iterable[str]] = None
    ) -> list[str]:
        """Modules active for a session: the pack's list, or the caller's for ``custom``.

        Unknown pack → ``[]``.  Unknown and repeated module ids are dropped.
        """
        pack = self._packs.get_pack(pack_id)
        if pack is None:
            return []
        if pack.id == CUSTOM_PACK_ID and custom_modules is not None:
            source = custom_modules
        else:
            source = pack.modules

        modules: list[str] = []
        for module in source:
            if module in self._catalog.modules and module not in modules:
                modules.append(module)
        return modules

    def should_ask_question(
        self,
        question_id: str,
        pack_id: str,
        custom_modules: Optional[Iterable[str]] = None,
    ) -> bool:
        """True when *question_id* is part of the compiled sequence."""
        return question_id in self.compile_question_set(pack_id, custom_modules)

    def modules_in_sequence_order(self, modules: Iterable[str], sequence: list[str]) -> list[str]:
        """Order *modules* by where their first question appears in *sequence*.

        Modules with no question in the sequence keep their relative order
        at the end.
        """
        positions = {qid: i for i, qid in enumerate(sequence)}

        def first_position(module: str) -> int:
            hits = [positions[q] for q in self._catalog.questions_for_module(module) if q in positions]
            return min(hits) if hits else len(sequence)

        # sorted() is stable, so ties keep the caller's order
        return sorted(modules, key=first_position)
