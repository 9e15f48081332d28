"""Pydantic models shared by the term drill services, engine and router."""
from __future__ import annotations

import uuid
from datetime import datetime, timezone
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field

TermSource = Literal["concept", "flashcard", "glossary", "generated"]
PreparationSource = Literal["existing", "generated", "mixed"]
GameScopeMode = Literal["single-material", "multi-material", "generated"]
GameType = Literal["snake", "whack"]


def new_id() -> str:
    return str(uuid.uuid4())


class _CamelModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True)


# --- Raw material records (as stored by the study app) ---


class Concept(_CamelModel):
    id: Optional[str] = None
    term: Optional[str] = ""
    definition: Optional[str] = ""
    examples: List[Optional[str]] = Field(default_factory=list)


class Flashcard(_CamelModel):
    id: Optional[str] = None
    front: Optional[str] = ""
    back: Optional[str] = ""
    type: Optional[str] = None


class GlossaryEntry(_CamelModel):
    id: Optional[str] = None
    term: Optional[str] = ""
    definition: Optional[str] = ""
    example: Optional[str] = None


class Material(_CamelModel):
    id: str
    title: str = ""
    content: str = ""
    concepts: List[Concept] = Field(default_factory=list)
    flashcards: List[Flashcard] = Field(default_factory=list)
    glossary: List[GlossaryEntry] = Field(default_factory=list)


# --- Drill terms ---


class Term(_CamelModel):
    """Canonical drill unit harvested from a material or generated."""

    id: str = Field(default_factory=new_id)
    material_id: str = Field(alias="materialId")
    term: str
    definition: str
    examples: List[str] = Field(default_factory=list)
    source: TermSource
    language: str


class GameTerm(Term):
    """A term enriched with its prepared distractor pool."""

    distractors: List[str] = Field(default_factory=list)


class GameContentPreparation(_CamelModel):
    terms: List[GameTerm]
    language: str
    source: PreparationSource
    needs_review: bool = Field(alias="needsReview")
    material_ids: List[str] = Field(alias="materialIds")


# --- Persistence records ---


class MistakeEntry(_CamelModel):
    id: str = Field(default_factory=new_id)
    material_id: str = Field(alias="materialId")
    term: str
    definition: str = ""
    language: str
    miss_count: int = Field(default=0, alias="missCount")
    last_missed_at: str = Field(alias="lastMissedAt")


class GameSessionRecord(_CamelModel):
    id: str = Field(default_factory=new_id)
    game_type: GameType = Field(alias="gameType")
    score: int
    duration: int
    completed_at: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc), alias="completedAt"
    )
    xp_earned: int = Field(alias="xpEarned")
    material_ids: List[str] = Field(default_factory=list, alias="materialIds")
    source: Optional[PreparationSource] = None
    reason: str = "completed"
    settings: Dict[str, Any] = Field(default_factory=dict)
