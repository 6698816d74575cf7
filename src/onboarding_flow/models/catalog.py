"""Question catalog — the closed, ordered universe of question ids.

Catalog order is the canonical "ask everything" order.  Each feature module
owns an ordered slice of the catalog; the base sequence holds the identity
and consent questions every session asks.
"""

from __future__ import annotations

from typing import Dict, List

from pydantic import BaseModel, Field, model_validator

# Closed module set, in the canonical order used for routing between modules.
ModuleId = str


class QuestionCatalog(BaseModel):
    """Catalog of question ids and the module → question-id table.

    ``modules`` keeps YAML insertion order; that order is the canonical
    module order used when routing from one module to the next.
    """

    model_config = {"frozen": True}

    questions: List[str]
    base_sequence: List[str]
    splice_anchor: str
    modules: Dict[ModuleId, List[str]] = Field(default_factory=dict)

    @model_validator(mode="after")
    def _chk(self):
        if len(set(self.questions)) != len(self.questions):
            raise ValueError("question ids must be unique")
        known = set(self.questions)
        for qid in self.base_sequence:
            if qid not in known:
                raise ValueError(f"base_sequence references unknown question '{qid}'")
        if self.splice_anchor not in self.base_sequence:
            raise ValueError(f"splice_anchor '{self.splice_anchor}' is not in base_sequence")
        for module, qids in self.modules.items():
            for qid in qids:
                if qid not in known:
                    raise ValueError(f"module '{module}' references unknown question '{qid}'")
        return self

    def all_questions(self) -> list[str]:
        """Canonical ordering of every question id (a fresh copy)."""
        return list(self.questions)

    def questions_for_module(self, module: ModuleId) -> list[str]:
        """Ordered question ids for *module*; unknown module → ``[]``."""
        return list(self.modules.get(module, []))

    def module_ids(self) -> list[ModuleId]:
        """Known modules in canonical order."""
        return list(self.modules)

    def module_of(self, qid: str) -> ModuleId | None:
        """The module owning *qid*, or None for base questions."""
        for module, qids in self.modules.items():
            if qid in qids:
                return module
        return None
