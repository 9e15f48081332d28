"""Live game sessions served over HTTP.

Each session owns a round engine and its own ``TimerScheduler``. The scheduler
is a manual clock, so every request first advances it to the session's wall
clock time; that fires whatever ticks, expiries and feedback advances fell due
since the previous request, in order, before the request is applied.
"""
from __future__ import annotations

import logging
import random
import time
from threading import Lock
from typing import Any, Callable, Dict, List, Optional, TypeVar

from . import config
from .engine.policy import SNAKE_POLICY, WHACK_POLICY, ScoringPolicy
from .engine.rounds import RoundEngine
from .engine.snake import SnakeBoard
from .engine.timers import TimerScheduler
from .engine.whack import WhackBoard
from .models import GameContentPreparation, new_id
from .store import InMemoryStudyStore

T = TypeVar("T")

POLICIES: Dict[str, ScoringPolicy] = {"snake": SNAKE_POLICY, "whack": WHACK_POLICY}


class SessionNotFoundError(KeyError):
    """No live session exists under the requested id."""


def build_engine(
    game: str,
    preparation: GameContentPreparation,
    store: Optional[InMemoryStudyStore] = None,
    scheduler: Optional[TimerScheduler] = None,
    rng: Optional[random.Random] = None,
    policy: Optional[ScoringPolicy] = None,
) -> RoundEngine:
    """Wire a round engine for ``game`` with the board and policy it needs."""

    if game not in POLICIES:
        raise ValueError(f"Unknown game: {game}")
    policy = policy or POLICIES[game]
    if game == "snake":
        board = SnakeBoard(grid_size=policy.extra.get("gridSize", 12), rng=rng)
    else:
        board = WhackBoard(
            holes=policy.extra.get("holes", 6),
            spawn_delay_ms=policy.extra.get("spawnDelayMs", 500),
            rng=rng,
        )
    return RoundEngine(
        preparation,
        board,
        policy,
        scheduler=scheduler or TimerScheduler(),
        record_mistake=store.record_mistake if store else None,
        log_session=store.log_game_session if store else None,
    )


class GameSession:
    def __init__(self, session_id: str, engine: RoundEngine, clock: Callable[[], float]) -> None:
        self.id = session_id
        self.engine = engine
        self._clock = clock
        self._origin = clock()
        self.last_access = self._origin
        self.lock = Lock()

    def sync(self) -> None:
        """Bring the engine's clock up to wall time, firing due timers."""

        now = self._clock()
        self.last_access = now
        self.engine.scheduler.advance_to((now - self._origin) * 1000.0)

    def close(self) -> None:
        """Close the engine and drop its queued timers."""

        with self.lock:
            self.engine.close()
            self.engine.scheduler.cancel_all()

    def snapshot(self) -> Dict[str, Any]:
        payload = self.engine.snapshot()
        payload["sessionId"] = self.id
        return payload


class GameSessionManager:
    """Thread-safe registry of live game sessions."""

    def __init__(
        self,
        store: InMemoryStudyStore,
        clock: Callable[[], float] = time.monotonic,
        idle_seconds: int = config.SESSION_IDLE_SECONDS,
    ) -> None:
        self._store = store
        self._clock = clock
        self._idle_seconds = idle_seconds
        self._sessions: Dict[str, GameSession] = {}
        self._lock = Lock()

    def create(
        self,
        game: str,
        preparation: GameContentPreparation,
        rng: Optional[random.Random] = None,
    ) -> GameSession:
        self.purge_idle()
        engine = build_engine(game, preparation, store=self._store, rng=rng)
        session = GameSession(new_id(), engine, self._clock)
        with self._lock:
            self._sessions[session.id] = session
        logging.info("Created %s session %s with %d terms", game, session.id, len(preparation.terms))
        return session

    def get(self, session_id: str) -> GameSession:
        with self._lock:
            session = self._sessions.get(session_id)
        if session is None:
            raise SessionNotFoundError(session_id)
        return session

    def run(self, session_id: str, action: Callable[[RoundEngine], T]) -> T:
        """Sync the session clock, then apply ``action`` to its engine."""

        session = self.get(session_id)
        with session.lock:
            session.sync()
            return action(session.engine)

    def snapshot(self, session_id: str) -> Dict[str, Any]:
        session = self.get(session_id)
        with session.lock:
            session.sync()
            return session.snapshot()

    def close(self, session_id: str) -> None:
        with self._lock:
            session = self._sessions.pop(session_id, None)
        if session is None:
            raise SessionNotFoundError(session_id)
        session.close()
        logging.info("Closed session %s", session_id)

    def purge_idle(self) -> List[str]:
        cutoff = self._clock() - self._idle_seconds
        with self._lock:
            stale = [sid for sid, session in self._sessions.items() if session.last_access < cutoff]
            removed = [self._sessions.pop(sid) for sid in stale]
        for session in removed:
            session.close()
        if stale:
            logging.info("Purged %d idle game session(s)", len(stale))
        return stale

    def __len__(self) -> int:
        with self._lock:
            return len(self._sessions)
