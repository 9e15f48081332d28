"""Whack-a-Term board: terms pop up in holes and the player hits the matching one."""
from __future__ import annotations

import random
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Sequence

from ..models import GameTerm, new_id
from ..services.distractors import round_distractors
from .rounds import ACTION_TIMER, EXPIRY_TIMER, NO_SELECTION, BoardAdapter, GamePhase


@dataclass
class Mole:
    id: str
    label: str
    is_correct: bool
    hole_index: int
    appeared_at: float


class WhackBoard(BoardAdapter):
    game_type = "whack"

    def __init__(self, holes: int = 6, spawn_delay_ms: int = 500, rng: Optional[random.Random] = None) -> None:
        super().__init__()
        if holes < 2:
            raise ValueError("holes must be at least 2")
        self.holes = holes
        self.spawn_delay_ms = spawn_delay_ms
        self._rng = rng or random.Random()
        self.moles: List[Mole] = []
        self._pending_labels: List[str] = []

    def setup_round(self, term: GameTerm, terms: Sequence[GameTerm]) -> None:
        self.moles = []
        count = self.engine.distractor_count if self.engine else 2
        count = min(count, self.holes - 1)
        labels = round_distractors(term, term.distractors, terms, count, self._rng)
        self._pending_labels = [term.term] + labels
        if self.engine is not None:
            self.engine.schedule(ACTION_TIMER, self.spawn_delay_ms, self.spawn)

    def spawn(self) -> None:
        """Show this round's moles in random distinct holes and start the expiry timer."""

        engine = self.engine
        if engine is None or not engine.round_active or engine.current_term is None:
            return
        target = engine.current_term.term
        labels = self._pending_labels
        holes = self._rng.sample(range(self.holes), len(labels))
        now = engine.now()
        self.moles = [
            Mole(new_id(), label, label == target, hole_index, now)
            for label, hole_index in zip(labels, holes)
        ]
        engine.schedule(EXPIRY_TIMER, engine.tempo_ms, self.expire)

    def expire(self) -> None:
        engine = self.engine
        if engine is None or not engine.round_active:
            return
        engine.handle_mistake("timeout", selected=NO_SELECTION)

    def whack(self, hole_index: int) -> bool:
        """Hit a hole; returns whether the hit resolved the round."""

        engine = self.engine
        if engine is None or engine.phase != GamePhase.PLAYING or engine.manual_pause:
            return False
        if not engine.round_active:
            return False
        mole = next((item for item in self.moles if item.hole_index == hole_index), None)
        if mole is None:
            return False
        if mole.is_correct:
            return engine.handle_correct()
        return engine.handle_mistake("incorrect", selected=mole.label)

    def clear(self) -> None:
        self.moles = []
        self._pending_labels = []

    def snapshot(self) -> Dict[str, Any]:
        return {
            "holes": self.holes,
            "moles": [
                {"id": mole.id, "label": mole.label, "holeIndex": mole.hole_index}
                for mole in sorted(self.moles, key=lambda item: item.hole_index)
            ],
        }
