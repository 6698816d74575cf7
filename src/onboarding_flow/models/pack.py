"""Smart Pack models — named templates selecting a slice of the catalog.

A pack's ``questions_to_ask`` is a tagged selection:

  - ``{kind: all}``: every catalog question, skip list ignored
  - ``{kind: subset, ids: [...]}``: a fixed ordered list

The discriminated ``QuestionSelection`` union uses ``kind`` as its
discriminator so Pydantic can deserialise YAML dicts directly.
"""

from __future__ import annotations

from typing import Annotated, List, Literal, Optional, Union

from pydantic import BaseModel, Field


class AllQuestions(BaseModel):
    """Select the whole catalog."""

    kind: Literal["all"] = "all"


class QuestionSubset(BaseModel):
    """Select a fixed, ordered list of question ids."""

    kind: Literal["subset"] = "subset"
    ids: List[str] = Field(default_factory=list)


QuestionSelection = Annotated[
    Union[AllQuestions, QuestionSubset], Field(discriminator="kind")
]


class SmartPack(BaseModel):
    """A statically defined onboarding template.  Immutable."""

    model_config = {"frozen": True}

    id: str
    name: str
    description: str = ""
    icon: str = ""
    modules: List[str] = Field(default_factory=list)
    recommended_for: List[str] = Field(default_factory=list)
    questions_to_ask: QuestionSelection = Field(default_factory=QuestionSubset)
    questions_to_skip: List[str] = Field(default_factory=list)
    order: int = 0
    popular: bool = False

    @property
    def asks_all(self) -> bool:
        """True when the pack selects the whole catalog."""
        return isinstance(self.questions_to_ask, AllQuestions)


class PackRegistry:
    """Read-only lookup over the loaded packs, keyed by id."""

    def __init__(self, packs: list[SmartPack]) -> None:
        self._packs: dict[str, SmartPack] = {}
        for pack in packs:
            if pack.id in self._packs:
                raise ValueError(f"Duplicate pack id '{pack.id}'")
            self._packs[pack.id] = pack

    def __contains__(self, pack_id: object) -> bool:
        return pack_id in self._packs

    def __len__(self) -> int:
        return len(self._packs)

    def get_pack(self, pack_id: str) -> Optional[SmartPack]:
        """Return the pack, or None when the id is unknown."""
        return self._packs.get(pack_id)

    def list_packs(self) -> list[SmartPack]:
        """All packs sorted by display ``order``."""
        return sorted(self._packs.values(), key=lambda p: p.order)

    def popular_packs(self) -> list[SmartPack]:
        """Packs flagged ``popular``, in display order."""
        return [p for p in self.list_packs() if p.popular]
