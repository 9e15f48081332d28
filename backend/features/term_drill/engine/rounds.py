"""Round engine shared by the Snake and Whack-a-Term drills.

The engine owns the game lifecycle (``prepare -> playing <-> paused ->
finished``), scoring, lives, streaks and the difficulty ladder. The
board-specific half of each game (snake movement, mole slots) lives in a
``BoardAdapter`` that calls back into ``handle_correct`` / ``handle_mistake``.

Every timer goes through a named slot. Scheduling into a slot cancels what
was there, resolving or advancing a round cancels the slots it supersedes,
and each callback is bound to the round that scheduled it, so a late timer
can never mutate a newer round.
"""
from __future__ import annotations

import logging
from dataclasses import asdict, dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple

from ..models import GameContentPreparation, GameSessionRecord, GameTerm, Term
from ..services.preparer import confirm_review
from .policy import ScoringPolicy
from .timers import TimerHandle, TimerScheduler

ACTION_TIMER = "action"
EXPIRY_TIMER = "expiry"
TICK_TIMER = "tick"

NO_SELECTION = "(ingen vald)"


class GamePhase(str, Enum):
    PREPARE = "prepare"
    PLAYING = "playing"
    PAUSED = "paused"
    FINISHED = "finished"


class GameStateError(RuntimeError):
    """Raised when the engine is driven in a way its lifecycle forbids."""


@dataclass
class RoundResult:
    term: str
    definition: str
    example: Optional[str]
    success: bool
    time_ms: float
    tier: str
    reason: str = "correct"
    selected: Optional[str] = None


@dataclass
class Feedback:
    status: str
    term: str
    message: str
    definition: str
    example: Optional[str] = None


@dataclass
class Badge:
    id: str
    name: str
    description: str


@dataclass
class GameSummary:
    reason: str
    score: int
    max_streak: int
    rounds_played: int
    correct: int
    accuracy: int
    duration_seconds: int
    xp_earned: int
    badges: List[Badge] = field(default_factory=list)


@dataclass
class GameEvent:
    kind: str
    payload: Dict[str, Any]


MistakeRecorder = Callable[[str, str, str, str], Any]
SessionLogger = Callable[[GameSessionRecord], Any]
EventListener = Callable[[GameEvent], None]


class BoardAdapter:
    """Board half of a game: on-board items and the player's input model."""

    game_type = "board"

    def __init__(self) -> None:
        self.engine: Optional["RoundEngine"] = None

    def bind(self, engine: "RoundEngine") -> None:
        self.engine = engine

    def setup_round(self, term: GameTerm, terms: Sequence[GameTerm]) -> None:
        raise NotImplementedError

    def clear(self) -> None:
        raise NotImplementedError

    def snapshot(self) -> Dict[str, Any]:
        return {}


class RoundEngine:
    def __init__(
        self,
        preparation: GameContentPreparation,
        board: BoardAdapter,
        policy: ScoringPolicy,
        scheduler: Optional[TimerScheduler] = None,
        record_mistake: Optional[MistakeRecorder] = None,
        log_session: Optional[SessionLogger] = None,
    ) -> None:
        self.preparation = preparation
        self.board = board
        self.policy = policy
        self.scheduler = scheduler or TimerScheduler()
        self._record_mistake = record_mistake
        self._log_session = log_session
        self._listeners: List[EventListener] = []

        self.phase = GamePhase.PREPARE
        self.round_index = 0
        self.current_term: Optional[GameTerm] = None
        self.score = 0
        self.streak = 0
        self.max_streak = 0
        self.lives = policy.starting_lives
        self.tier_index = 0
        self.tempo_ms = policy.tempo_start_ms
        self.results: List[RoundResult] = []
        self.feedback: Optional[Feedback] = None
        self.badges: List[Badge] = []
        self.finish_reason: Optional[str] = None
        self.summary: Optional[GameSummary] = None
        self.manual_pause = False

        self._round_active = False
        self._awaiting_advance = False
        self._round_start = 0.0
        self._session_start = 0.0
        self._round_token = 0
        self._timers: Dict[str, Tuple[TimerHandle, Callable[[], None], int]] = {}
        self._suspended: Dict[str, Tuple[float, Callable[[], None], int]] = {}
        self._closed = False

        board.bind(self)

    # --- derived state ---

    @property
    def terms(self) -> List[GameTerm]:
        return self.preparation.terms

    @property
    def total_rounds(self) -> int:
        return min(self.policy.max_rounds, len(self.preparation.terms))

    @property
    def needs_review(self) -> bool:
        return self.preparation.needs_review

    @property
    def tier(self) -> str:
        return self.policy.tiers[self.tier_index].name

    @property
    def distractor_count(self) -> int:
        return self.policy.tiers[self.tier_index].distractor_count

    @property
    def round_active(self) -> bool:
        return self._round_active

    @property
    def awaiting_advance(self) -> bool:
        return self._awaiting_advance

    def now(self) -> float:
        return self.scheduler.now()

    def pending_timers(self) -> List[str]:
        return sorted(slot for slot, entry in self._timers.items() if entry[0].active)

    def suspended_timers(self) -> List[str]:
        return sorted(self._suspended)

    def subscribe(self, listener: EventListener) -> None:
        self._listeners.append(listener)

    def _emit(self, kind: str, **payload: Any) -> None:
        event = GameEvent(kind=kind, payload=payload)
        for listener in list(self._listeners):
            listener(event)

    # --- timers ---

    def schedule(self, slot: str, delay_ms: float, callback: Callable[[], None]) -> TimerHandle:
        """Schedule ``callback`` in ``slot``, replacing whatever the slot held."""

        return self._schedule(slot, delay_ms, callback, self._round_token)

    def _schedule(self, slot: str, delay_ms: float, callback: Callable[[], None], token: int) -> TimerHandle:
        self.cancel_timer(slot)

        def _fire() -> None:
            entry = self._timers.get(slot)
            if entry is not None and entry[0] is handle:
                del self._timers[slot]
            if self._closed or token != self._round_token:
                logging.debug("Ignoring stale %s timer for round token %d", slot, token)
                return
            callback()

        handle = self.scheduler.call_later(delay_ms, _fire)
        self._timers[slot] = (handle, callback, token)
        return handle

    def cancel_timer(self, slot: str) -> None:
        entry = self._timers.pop(slot, None)
        if entry is not None:
            entry[0].cancel()
        self._suspended.pop(slot, None)

    def cancel_all_timers(self) -> None:
        for slot in list(self._timers):
            self.cancel_timer(slot)
        self._suspended.clear()

    def _suspend_timers(self) -> None:
        now = self.now()
        for slot, (handle, callback, token) in list(self._timers.items()):
            if handle.active:
                self._suspended[slot] = (max(0.0, handle.when - now), callback, token)
            handle.cancel()
        self._timers.clear()

    def _restore_timers(self) -> None:
        suspended, self._suspended = self._suspended, {}
        for slot, (remaining, callback, token) in suspended.items():
            self._schedule(slot, remaining, callback, token)

    # --- lifecycle ---

    def confirm_review(self, edited_terms: Optional[Sequence[Term]] = None) -> None:
        """Accept generated content (optionally edited) so the game may start."""

        if self.phase in (GamePhase.PLAYING, GamePhase.PAUSED):
            raise GameStateError("Content cannot be reviewed while a game is running.")
        max_distractors = max((len(term.distractors) for term in self.preparation.terms), default=0)
        self.preparation = confirm_review(
            self.preparation, edited_terms, max_distractors=max(2, max_distractors)
        )

    def start(self) -> None:
        if self._closed:
            raise GameStateError("The game has been closed.")
        if self.needs_review:
            raise GameStateError("Generated content must be reviewed before the game can start.")
        if not self.preparation.terms:
            raise GameStateError("There are no terms to play.")

        self.cancel_all_timers()
        self.score = 0
        self.streak = 0
        self.max_streak = 0
        self.lives = self.policy.starting_lives
        self.tier_index = 0
        self.tempo_ms = self.policy.tempo_start_ms
        self.results = []
        self.feedback = None
        self.badges = []
        self.finish_reason = None
        self.summary = None
        self.manual_pause = False
        self._awaiting_advance = False
        self._session_start = self.now()

        self.phase = GamePhase.PLAYING
        self._setup_round(0)
        self._emit("started", total_rounds=self.total_rounds)

    def pause(self) -> bool:
        """Manual pause; freezes every outstanding timer until ``resume``."""

        if self.manual_pause or self.phase not in (GamePhase.PLAYING, GamePhase.PAUSED):
            return False
        self.manual_pause = True
        self._suspend_timers()
        self.phase = GamePhase.PAUSED
        self._emit("paused")
        return True

    def resume(self) -> bool:
        if not self.manual_pause or self.phase != GamePhase.PAUSED:
            return False
        self.manual_pause = False
        self._restore_timers()
        self.phase = GamePhase.PAUSED if self.awaiting_advance else GamePhase.PLAYING
        self._emit("resumed")
        return True

    def abort(self) -> bool:
        if self.phase in (GamePhase.FINISHED, GamePhase.PREPARE) or self._closed:
            return False
        self._finish("aborted")
        return True

    def close(self) -> None:
        """Tear the engine down; no callback will mutate it afterwards."""

        self.cancel_all_timers()
        self._round_active = False
        self._awaiting_advance = False
        self._closed = True
        self._listeners.clear()

    @property
    def closed(self) -> bool:
        return self._closed

    # --- rounds ---

    def _setup_round(self, index: int) -> bool:
        if self._closed or self.phase == GamePhase.FINISHED:
            return False
        if index >= len(self.preparation.terms):
            return False
        term = self.preparation.terms[index]
        self.round_index = index
        self.current_term = term
        self._round_token += 1
        self._round_active = True
        self._round_start = self.now()
        self.feedback = None
        self.board.setup_round(term, self.preparation.terms)
        self._emit("round_started", index=index, total_rounds=self.total_rounds)
        return True

    def _advance_round(self) -> None:
        self._awaiting_advance = False
        self.cancel_all_timers()
        next_index = self.round_index + 1
        if next_index >= self.total_rounds:
            self._finish("completed")
            return
        self.phase = GamePhase.PLAYING
        self._setup_round(next_index)

    def _elapsed(self) -> float:
        return max(0.0, self.now() - self._round_start)

    def _resolve(self) -> Optional[GameTerm]:
        """Claim the current round; ``None`` if it was already resolved."""

        if not self._round_active or self.manual_pause or self.current_term is None:
            return None
        self._round_active = False
        self.cancel_timer(EXPIRY_TIMER)
        self.cancel_timer(TICK_TIMER)
        return self.current_term

    def handle_correct(self) -> bool:
        term = self._resolve()
        if term is None:
            return False
        elapsed = self._elapsed()
        policy = self.policy

        points = policy.correct_points(self.streak, elapsed)
        self.streak += 1
        self.max_streak = max(self.max_streak, self.streak)

        if policy.perfect_streak_count and self.streak == policy.perfect_streak_count:
            points += policy.perfect_streak_bonus
            if policy.award_badges:
                self._award(Badge("perfect-streak", "Fattat!", f"{self.streak} rätt på rad"))

        new_tier = policy.tier_for_streak(self.tier_index, self.streak)
        if new_tier != self.tier_index:
            self.tier_index = new_tier
            points += policy.tier_bonus
            self.tempo_ms = policy.clamp_tempo(self.tempo_ms - policy.tempo_step_on_tier_up)
            self._emit("tier", tier=self.tier, direction="up")
        if policy.tempo_step_on_correct and self.streak >= policy.tempo_streak_threshold:
            self.tempo_ms = policy.clamp_tempo(self.tempo_ms - policy.tempo_step_on_correct)

        self.score += points
        example = term.examples[0] if term.examples else None
        result = RoundResult(term.term, term.definition, example, True, elapsed, self.tier)
        self.results.append(result)
        self.feedback = Feedback("correct", term.term, f"+{points} poäng!", term.definition, example)
        self._emit("score", score=self.score, delta=points, streak=self.streak)
        self._emit("round_result", result=asdict(result))
        self._after_resolution(finished=False)
        return True

    def handle_mistake(self, reason: str = "incorrect", selected: Optional[str] = None) -> bool:
        term = self._resolve()
        if term is None:
            return False
        elapsed = self._elapsed()
        policy = self.policy
        played_tier = self.tier

        if policy.downgrade_window and self.tier_index > 0:
            recent = self.results[-policy.downgrade_window:]
            misses = sum(1 for item in recent if not item.success)
            if misses >= policy.downgrade_min_misses:
                self.tier_index -= 1
                self.tempo_ms = policy.clamp_tempo(self.tempo_ms + policy.tempo_step_on_tier_down)
                self._emit("tier", tier=self.tier, direction="down")
        if policy.tempo_step_on_mistake:
            self.tempo_ms = policy.clamp_tempo(self.tempo_ms + policy.tempo_step_on_mistake)

        self.streak = 0
        self.lives = max(self.lives - 1, 0)

        example = term.examples[0] if term.examples else None
        result = RoundResult(
            term.term, term.definition, example, False, elapsed, played_tier, reason=reason, selected=selected
        )
        self.results.append(result)
        self._forward_mistake(term)

        if reason == "collision":
            message = "Oj! Du krockade innan du hann fram."
        elif reason == "timeout":
            message = "Tiden tog slut!"
        else:
            message = f"Fel begrepp ({selected or 'okänt val'})."
        self.feedback = Feedback(reason, term.term, message, term.definition, example)
        self._emit("lives", lives=self.lives)
        self._emit("mistake", term=term.term, reason=reason, selected=selected)
        self._emit("round_result", result=asdict(result))
        self._after_resolution(finished=self.lives <= 0)
        return True

    def _after_resolution(self, finished: bool) -> None:
        self.board.clear()
        self.phase = GamePhase.PAUSED
        self._awaiting_advance = True
        if finished:
            self.schedule(ACTION_TIMER, self.policy.feedback_delay_ms, lambda: self._finish("lives"))
        else:
            self.schedule(ACTION_TIMER, self.policy.feedback_delay_ms, self._advance_round)

    def _forward_mistake(self, term: GameTerm) -> None:
        if self._record_mistake is None:
            return
        language = self.preparation.language or term.language
        for material_id in self.preparation.material_ids:
            try:
                self._record_mistake(material_id, term.term, term.definition, language)
            except Exception:
                logging.exception("Could not record mistake for '%s' in %s", term.term, material_id)

    def _award(self, badge: Badge) -> None:
        if any(item.id == badge.id for item in self.badges):
            return
        self.badges.append(badge)
        self._emit("badge", badge=asdict(badge))

    def _finish(self, reason: str) -> None:
        self.cancel_all_timers()
        self._round_active = False
        self._awaiting_advance = False
        self.manual_pause = False
        self.phase = GamePhase.FINISHED
        self.finish_reason = reason
        self.feedback = None
        self.board.clear()

        total = self.total_rounds
        correct = sum(1 for item in self.results if item.success)
        if self.policy.award_badges:
            if reason == "completed" and total and correct == total:
                self._award(Badge("perfect-game", "Begreppsmästare", "Alla rätt!"))
            if self.results:
                average = sum(item.time_ms for item in self.results) / len(self.results)
                if average < 1500 and correct >= total * 0.8:
                    self._award(Badge("speed-demon", "Snabb som vinden", "Genomsnitt < 1.5s"))
            if self.max_streak and self.max_streak >= total / 2:
                self._award(Badge("streak-master", "Streak-mästare", f"{self.max_streak} rätt i rad"))

        duration = max(1, round((self.now() - self._session_start) / 1000))
        accuracy = round(correct / len(self.results) * 100) if self.results else 0
        self.summary = GameSummary(
            reason=reason,
            score=self.score,
            max_streak=self.max_streak,
            rounds_played=len(self.results),
            correct=correct,
            accuracy=accuracy,
            duration_seconds=duration,
            xp_earned=self.policy.xp_for(self.score),
            badges=list(self.badges),
        )
        logging.info(
            "%s game finished (%s): score=%d rounds=%d/%d",
            self.board.game_type,
            reason,
            self.score,
            len(self.results),
            total,
        )
        if self._log_session is not None:
            record = GameSessionRecord(
                game_type=self.board.game_type,
                score=self.score,
                duration=duration,
                xp_earned=self.summary.xp_earned,
                material_ids=list(self.preparation.material_ids),
                source=self.preparation.source,
                reason=reason,
                settings={"rounds": total, "language": self.preparation.language},
            )
            try:
                self._log_session(record)
            except Exception:
                logging.exception("Could not log %s game session", self.board.game_type)
        self._emit("finished", summary=asdict(self.summary))

    # --- serialisation ---

    def snapshot(self) -> Dict[str, Any]:
        term = self.current_term
        prompt = None
        if term is not None and self._round_active:
            prompt = {
                "definition": term.definition,
                "example": term.examples[0] if term.examples else None,
            }
        return {
            "game": self.board.game_type,
            "phase": self.phase.value,
            "manualPause": self.manual_pause,
            "needsReview": self.needs_review,
            "awaitingAdvance": self.awaiting_advance,
            "roundIndex": self.round_index,
            "totalRounds": self.total_rounds,
            "prompt": prompt,
            "score": self.score,
            "streak": self.streak,
            "maxStreak": self.max_streak,
            "lives": self.lives,
            "tier": self.tier,
            "distractorCount": self.distractor_count,
            "tempoMs": self.tempo_ms,
            "feedback": asdict(self.feedback) if self.feedback else None,
            "results": [asdict(item) for item in self.results],
            "badges": [asdict(item) for item in self.badges],
            "finishReason": self.finish_reason,
            "summary": asdict(self.summary) if self.summary else None,
            "board": self.board.snapshot(),
        }
