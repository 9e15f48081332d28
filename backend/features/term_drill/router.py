"""Term drill feature module: content preparation and live Snake / Whack-a-Term sessions."""
from __future__ import annotations

import logging
from typing import Any, Callable, Dict, List, Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, ConfigDict, Field

from . import config
from .engine.rounds import GameStateError, RoundEngine
from .engine.snake import DIRECTION_VECTORS, SnakeBoard
from .engine.whack import WhackBoard
from .models import GameContentPreparation, GameScopeMode, GameType, Material, MistakeEntry, Term
from .services.generation import ConceptGenerator, GeminiConceptGenerator, GenerationFailedError
from .services.preparer import ContentPreparer, PreparationError, PreparationRequest
from .sessions import POLICIES, GameSessionManager, SessionNotFoundError
from .store import InMemoryStudyStore

router = APIRouter(prefix="/term-drill", tags=["Term Drill Games"])


class PrepareRequest(BaseModel):
    """Schema for preparing the term list of one game."""

    scope: GameScopeMode = "single-material"
    material_ids: List[str] = Field(default_factory=list, alias="materialIds")
    include_all_materials: bool = Field(default=False, alias="includeAllMaterials")
    language: str = config.DEFAULT_LANGUAGE
    min_terms: Optional[int] = Field(default=None, alias="minTerms", ge=1)
    max_distractors: Optional[int] = Field(default=None, alias="maxDistractors", ge=0)
    topic_hint: str = Field(default="", alias="topicHint")
    grade: int = Field(default=config.DEFAULT_GRADE, ge=1, le=12)
    mask_definitions: bool = Field(default=True, alias="maskDefinitions")

    model_config = ConfigDict(populate_by_name=True)


class CreateSessionRequest(BaseModel):
    """Schema for opening a live game session from a prepared term list."""

    game: GameType
    preparation: GameContentPreparation
    confirm_review: bool = Field(default=False, alias="confirmReview")
    edited_terms: Optional[List[Term]] = Field(default=None, alias="editedTerms")

    model_config = ConfigDict(populate_by_name=True)


class DirectionRequest(BaseModel):
    direction: str


class WhackRequest(BaseModel):
    hole_index: int = Field(alias="holeIndex", ge=0)

    model_config = ConfigDict(populate_by_name=True)


STORE = InMemoryStudyStore()
SESSIONS = GameSessionManager(STORE)


def get_store() -> InMemoryStudyStore:
    return STORE


def get_sessions() -> GameSessionManager:
    return SESSIONS


def get_concept_generator() -> Optional[ConceptGenerator]:
    if not config.GEMINI_API_KEY:
        return None
    return GeminiConceptGenerator()


def _run(sessions: GameSessionManager, session_id: str, action: Callable[[RoundEngine], Any]) -> Dict[str, Any]:
    try:
        sessions.run(session_id, action)
        return sessions.snapshot(session_id)
    except SessionNotFoundError as exc:
        raise HTTPException(status_code=404, detail="Spelsessionen finns inte.") from exc
    except GameStateError as exc:
        raise HTTPException(status_code=409, detail=str(exc)) from exc


# --- Materials ---


@router.post("/materials")
def save_material(material: Material, store: InMemoryStudyStore = Depends(get_store)) -> Dict[str, Any]:
    store.save_material(material)
    logging.info("Saved material %s (%s)", material.id, material.title)
    return {"id": material.id}


@router.get("/materials")
def list_materials(store: InMemoryStudyStore = Depends(get_store)) -> List[Material]:
    return store.list_materials()


@router.get("/materials/{material_id}/mistakes")
def read_mistakes(material_id: str, store: InMemoryStudyStore = Depends(get_store)) -> List[MistakeEntry]:
    entries = store.mistakes_for(material_id)
    return sorted(entries.values(), key=lambda entry: entry.miss_count, reverse=True)


@router.delete("/materials/{material_id}/mistakes")
def clear_mistakes(material_id: str, store: InMemoryStudyStore = Depends(get_store)) -> Dict[str, Any]:
    removed = store.clear_mistakes(material_id)
    logging.info("Cleared %d mistake(s) for material %s", removed, material_id)
    return {"materialId": material_id, "removed": removed}


# --- Preparation ---


@router.post("/prepare/{game}", response_model=GameContentPreparation, response_model_by_alias=True)
def prepare_game(
    game: str,
    payload: PrepareRequest,
    store: InMemoryStudyStore = Depends(get_store),
    generator: Optional[ConceptGenerator] = Depends(get_concept_generator),
) -> GameContentPreparation:
    if game not in POLICIES:
        raise HTTPException(status_code=404, detail=f"Okänt spel: {game}")

    preparer = ContentPreparer(store.list_materials(), store.mistake_bank(), generator)
    request = PreparationRequest(
        scope=payload.scope,
        material_ids=payload.material_ids,
        include_all_materials=payload.include_all_materials,
        language=payload.language,
        min_terms=payload.min_terms,
        max_distractors=payload.max_distractors,
        topic_hint=payload.topic_hint,
        grade=payload.grade,
        mask_definitions=payload.mask_definitions,
    )
    try:
        return preparer.prepare(game, request)
    except PreparationError as exc:
        status = 404 if exc.code == "material_not_found" else 400
        raise HTTPException(status_code=status, detail={"code": exc.code, "message": exc.message}) from exc
    except GenerationFailedError as exc:
        logging.error("Preparing %s content failed: %s", game, exc)
        raise HTTPException(
            status_code=502,
            detail={"code": "generation_failed", "message": "Kunde inte skapa nya begrepp just nu."},
        ) from exc


# --- Live sessions ---


@router.post("/sessions")
def create_session(
    payload: CreateSessionRequest,
    sessions: GameSessionManager = Depends(get_sessions),
) -> Dict[str, Any]:
    session = sessions.create(payload.game, payload.preparation)
    if payload.confirm_review or payload.edited_terms is not None:
        try:
            sessions.run(session.id, lambda engine: engine.confirm_review(payload.edited_terms))
        except PreparationError as exc:
            sessions.close(session.id)
            raise HTTPException(status_code=400, detail={"code": exc.code, "message": exc.message}) from exc
    return sessions.snapshot(session.id)


@router.get("/sessions/{session_id}")
def read_session(session_id: str, sessions: GameSessionManager = Depends(get_sessions)) -> Dict[str, Any]:
    return _run(sessions, session_id, lambda engine: None)


@router.post("/sessions/{session_id}/start")
def start_session(session_id: str, sessions: GameSessionManager = Depends(get_sessions)) -> Dict[str, Any]:
    return _run(sessions, session_id, lambda engine: engine.start())


@router.post("/sessions/{session_id}/pause")
def pause_session(session_id: str, sessions: GameSessionManager = Depends(get_sessions)) -> Dict[str, Any]:
    return _run(sessions, session_id, lambda engine: engine.pause())


@router.post("/sessions/{session_id}/resume")
def resume_session(session_id: str, sessions: GameSessionManager = Depends(get_sessions)) -> Dict[str, Any]:
    return _run(sessions, session_id, lambda engine: engine.resume())


@router.post("/sessions/{session_id}/abort")
def abort_session(session_id: str, sessions: GameSessionManager = Depends(get_sessions)) -> Dict[str, Any]:
    return _run(sessions, session_id, lambda engine: engine.abort())


@router.post("/sessions/{session_id}/direction")
def change_direction(
    session_id: str,
    payload: DirectionRequest,
    sessions: GameSessionManager = Depends(get_sessions),
) -> Dict[str, Any]:
    if payload.direction not in DIRECTION_VECTORS:
        raise HTTPException(status_code=400, detail=f"Okänd riktning: {payload.direction}")

    def _steer(engine: RoundEngine) -> None:
        if not isinstance(engine.board, SnakeBoard):
            raise GameStateError("Riktning kan bara ändras i Snake.")
        engine.board.change_direction(payload.direction)

    return _run(sessions, session_id, _steer)


@router.post("/sessions/{session_id}/whack")
def whack_hole(
    session_id: str,
    payload: WhackRequest,
    sessions: GameSessionManager = Depends(get_sessions),
) -> Dict[str, Any]:
    def _hit(engine: RoundEngine) -> None:
        if not isinstance(engine.board, WhackBoard):
            raise GameStateError("Bara Whack-a-Term har hål att slå på.")
        if payload.hole_index >= engine.board.holes:
            raise HTTPException(status_code=400, detail=f"Hålet {payload.hole_index} finns inte.")
        engine.board.whack(payload.hole_index)

    return _run(sessions, session_id, _hit)


@router.delete("/sessions/{session_id}")
def delete_session(session_id: str, sessions: GameSessionManager = Depends(get_sessions)) -> Dict[str, Any]:
    try:
        sessions.close(session_id)
    except SessionNotFoundError as exc:
        raise HTTPException(status_code=404, detail="Spelsessionen finns inte.") from exc
    return {"id": session_id, "closed": True}


@router.get("/game-config")
def read_game_config() -> Dict[str, Any]:
    """Expose the tuning of both games so the client can render HUD hints."""

    return {
        "games": {game: policy.describe() for game, policy in POLICIES.items()},
        "languages": config.LANGUAGE_LABELS,
        "minPlayableTerms": config.MIN_PLAYABLE_TERMS,
        "minTopicHintLength": config.MIN_TOPIC_HINT_LENGTH,
    }
