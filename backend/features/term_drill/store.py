"""In-memory study store: materials, the per-material mistake bank and game session log."""
from __future__ import annotations

import logging
from copy import deepcopy
from datetime import datetime, timezone
from threading import Lock
from typing import Dict, List, Optional

from . import config
from .models import GameSessionRecord, Material, MistakeEntry


class InMemoryStudyStore:
    """Thread-safe key-value store standing in for the app's persistence layer."""

    def __init__(self, materials: Optional[List[Material]] = None) -> None:
        self._materials: Dict[str, Material] = {}
        self._mistakes: Dict[str, Dict[str, MistakeEntry]] = {}
        self._sessions: List[GameSessionRecord] = []
        self._lock = Lock()
        for material in materials or []:
            self.save_material(material)

    # --- materials ---

    def save_material(self, material: Material) -> None:
        with self._lock:
            self._materials[material.id] = material.model_copy(deep=True)

    def list_materials(self) -> List[Material]:
        with self._lock:
            return [item.model_copy(deep=True) for item in self._materials.values()]

    def get_material(self, material_id: str) -> Optional[Material]:
        with self._lock:
            material = self._materials.get(material_id)
            return material.model_copy(deep=True) if material else None

    # --- mistake bank ---

    def mistake_bank(self) -> Dict[str, Dict[str, MistakeEntry]]:
        with self._lock:
            return deepcopy(self._mistakes)

    def mistakes_for(self, material_id: str) -> Dict[str, MistakeEntry]:
        with self._lock:
            return deepcopy(self._mistakes.get(material_id, {}))

    def record_mistake(
        self,
        material_id: str,
        term: str,
        definition: Optional[str] = None,
        language: Optional[str] = None,
    ) -> Optional[MistakeEntry]:
        """Increment the miss counter for ``term`` within ``material_id``."""

        normalized_material_id = (material_id or "").strip()
        raw_term = (term or "").strip()
        if not normalized_material_id or not raw_term:
            return None

        key = raw_term.lower()
        timestamp = datetime.now(timezone.utc).isoformat()
        with self._lock:
            bank = self._mistakes.setdefault(normalized_material_id, {})
            existing = bank.get(key)
            if existing is not None:
                updated = existing.model_copy(
                    update={
                        "miss_count": existing.miss_count + 1,
                        "last_missed_at": timestamp,
                        "definition": (definition or "").strip() or existing.definition,
                    }
                )
            else:
                updated = MistakeEntry(
                    material_id=normalized_material_id,
                    term=raw_term,
                    definition=(definition or "").strip(),
                    language=language or config.DEFAULT_LANGUAGE,
                    miss_count=1,
                    last_missed_at=timestamp,
                )
            bank[key] = updated
            return updated.model_copy()

    def clear_mistakes(self, material_id: str) -> int:
        with self._lock:
            removed = self._mistakes.pop(material_id, {})
        return len(removed)

    # --- game sessions ---

    def log_game_session(self, record: GameSessionRecord) -> None:
        with self._lock:
            self._sessions.append(record.model_copy())
        logging.info(
            "Logged %s session %s: score=%d xp=%d", record.game_type, record.id, record.score, record.xp_earned
        )

    def game_sessions(self) -> List[GameSessionRecord]:
        with self._lock:
            return [item.model_copy() for item in self._sessions]
