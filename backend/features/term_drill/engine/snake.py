"""Snake board: steer onto the cell labelled with the term that matches the definition."""
from __future__ import annotations

import random
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Sequence, Tuple

from ..models import GameTerm, new_id
from ..services.distractors import round_distractors
from .rounds import TICK_TIMER, BoardAdapter, GamePhase

Position = Tuple[int, int]

DIRECTION_VECTORS: Dict[str, Position] = {
    "up": (0, -1),
    "down": (0, 1),
    "left": (-1, 0),
    "right": (1, 0),
}
OPPOSITE_DIRECTIONS = {"up": "down", "down": "up", "left": "right", "right": "left"}


@dataclass
class Token:
    id: str
    label: str
    is_correct: bool
    position: Position


def initial_snake(grid_size: int) -> List[Position]:
    center = grid_size // 2
    return [(center + 1, center), (center, center), (center - 1, center)]


class SnakeBoard(BoardAdapter):
    game_type = "snake"

    def __init__(self, grid_size: int = 12, rng: Optional[random.Random] = None) -> None:
        super().__init__()
        if grid_size < 4:
            raise ValueError("grid_size must be at least 4")
        self.grid_size = grid_size
        self._rng = rng or random.Random()
        self.snake: List[Position] = initial_snake(grid_size)
        self.direction = "right"
        self.next_direction = "right"
        self.tokens: List[Token] = []

    def setup_round(self, term: GameTerm, terms: Sequence[GameTerm]) -> None:
        self.snake = initial_snake(self.grid_size)
        self.direction = "right"
        self.next_direction = "right"

        count = self.engine.distractor_count if self.engine else 2
        labels = round_distractors(term, term.distractors, terms, count, self._rng)
        occupied = set(self.snake)
        self.tokens = []
        for label, is_correct in [(term.term, True)] + [(label, False) for label in labels]:
            position = self._free_position(occupied)
            if position is None:
                break
            occupied.add(position)
            self.tokens.append(Token(new_id(), label, is_correct, position))

        self._schedule_tick()

    def clear(self) -> None:
        self.tokens = []

    def _free_position(self, occupied: set) -> Optional[Position]:
        free = [
            (x, y)
            for y in range(self.grid_size)
            for x in range(self.grid_size)
            if (x, y) not in occupied
        ]
        if not free:
            return None
        return self._rng.choice(free)

    def _schedule_tick(self) -> None:
        if self.engine is not None:
            self.engine.schedule(TICK_TIMER, self.engine.tempo_ms, self.tick)

    def change_direction(self, direction: str) -> bool:
        """Queue a heading change for the next tick; reversals are rejected."""

        if direction not in DIRECTION_VECTORS:
            raise ValueError(f"Unknown direction: {direction}")
        engine = self.engine
        if engine is None or engine.phase != GamePhase.PLAYING or engine.manual_pause:
            return False
        if direction == self.direction or OPPOSITE_DIRECTIONS[self.direction] == direction:
            return False
        self.next_direction = direction
        return True

    def tick(self) -> None:
        """Advance the snake one cell and resolve whatever it runs into."""

        engine = self.engine
        if engine is None or not engine.round_active or engine.manual_pause:
            return

        self.direction = self.next_direction
        dx, dy = DIRECTION_VECTORS[self.direction]
        head_x, head_y = self.snake[0]
        head = (head_x + dx, head_y + dy)

        if not (0 <= head[0] < self.grid_size and 0 <= head[1] < self.grid_size):
            self.snake = initial_snake(self.grid_size)
            engine.handle_mistake("collision")
            return

        moved = [head] + self.snake[:-1]
        if head in moved[1:]:
            self.snake = initial_snake(self.grid_size)
            engine.handle_mistake("collision")
            return

        token = next((item for item in self.tokens if item.position == head), None)
        if token is not None:
            if token.is_correct:
                self.snake = [head] + self.snake
                engine.handle_correct()
            else:
                self.snake = initial_snake(self.grid_size)
                engine.handle_mistake("incorrect", selected=token.label)
            return

        self.snake = moved
        self._schedule_tick()

    def snapshot(self) -> Dict[str, Any]:
        return {
            "gridSize": self.grid_size,
            "snake": [list(position) for position in self.snake],
            "direction": self.direction,
            "tokens": [
                {"id": token.id, "label": token.label, "position": list(token.position)}
                for token in self.tokens
            ],
        }
