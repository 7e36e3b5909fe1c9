from __future__ import annotations

from typing import Any, Dict, List, Optional
import logging
import random
import threading
import uuid

from .config import Settings
from .history import ResultHistory
from .leaderboard import LeaderboardActor
from .session import SessionActor
from .types import Difficulty, GameConfig, GameResult, GameState, Leaderboard, LeaderboardCategory, MoveAction, PlayerStats


logger = logging.getLogger("uvicorn.error")


class GameService:
    """Routes each operation to the actor that owns the target state.

    Closed sessions give up their actor and journal; only the final
    snapshot is kept so they stay queryable.
    """

    def __init__(self, settings: Optional[Settings] = None, rng: Optional[random.Random] = None) -> None:
        self.settings = settings or Settings()
        self._rng = rng
        self.leaderboard = LeaderboardActor(self.settings).start()
        self.history = ResultHistory().start()
        self._lock = threading.Lock()
        self._sessions: Dict[str, SessionActor] = {}
        self._retired: Dict[str, GameState] = {}

    def _session(self, game_id: str) -> SessionActor:
        actor = self._sessions.get(game_id)
        if actor is None:
            raise KeyError("session_not_found")
        return actor

    def _retired_state(self, game_id: str) -> Optional[GameState]:
        self._prune()
        return self._retired.get(game_id)

    def _prune(self) -> None:
        with self._lock:
            for game_id, actor in list(self._sessions.items()):
                if actor.closed:
                    self._retired[game_id] = actor.get_state()
                    del self._sessions[game_id]

    @property
    def live_sessions(self) -> int:
        return len(self._sessions)

    def _session_rng(self) -> Optional[random.Random]:
        if self._rng is None:
            return None
        return random.Random(self._rng.getrandbits(64))

    def create_session(self, config: GameConfig, owner_id: Optional[str] = None) -> str:
        config.validate(self.settings.max_board_dim)
        self._prune()
        game_id = uuid.uuid4().hex
        with self._lock:
            rng = self._session_rng()
        actor = SessionActor(
            game_id,
            config,
            owner_id=owner_id,
            settings=self.settings,
            result_sinks=(self.leaderboard.add_result, self.history.record),
            rng=rng,
        )
        with self._lock:
            self._sessions[game_id] = actor.start()
        return game_id

    def get_state(self, game_id: str) -> GameState:
        state = self._retired_state(game_id)
        if state is not None:
            return state
        return self._session(game_id).get_state()

    def apply_move(self, game_id: str, row: int, col: int, action) -> GameState:
        action = MoveAction.parse(action)
        state = self._retired_state(game_id)
        if state is not None:
            if not state.board.in_bounds(row, col):
                raise ValueError("out_of_bounds")
            return state
        return self._session(game_id).move(row, col, action)

    def restart(self, game_id: str, config: GameConfig) -> GameState:
        config.validate(self.settings.max_board_dim)
        state = self._retired_state(game_id)
        if state is not None:
            return state
        return self._session(game_id).restart(config)

    def close(self, game_id: str, timeout: Optional[float] = 10.0) -> GameState:
        state = self._retired_state(game_id)
        if state is not None:
            return state
        state = self._session(game_id).close().result(timeout)
        self._prune()
        return state

    def list_results_for_player(self, owner_id: str) -> List[GameResult]:
        return self.history.list_results(owner_id)

    def player_summary(self, owner_id: str) -> Dict[str, Any]:
        return self.history.summary(owner_id)

    def get_leaderboard(
        self,
        category: LeaderboardCategory,
        difficulty: Optional[Difficulty] = None,
        limit: int = 10,
    ) -> Leaderboard:
        return self.leaderboard.get_leaderboard(category, difficulty, limit)

    def get_player_stats(self, player_id: str) -> PlayerStats:
        stats = self.leaderboard.get_player_stats(player_id)
        if stats is None:
            raise KeyError("player_not_found")
        return stats

    def shutdown(self) -> None:
        with self._lock:
            actors = list(self._sessions.values()) + [self.leaderboard, self.history]
        for actor in actors:
            actor.stop()
        for actor in actors:
            actor.join(timeout=1.0)
        logger.info(f"[minesweeper] service stopped sessions={len(self._sessions)}")
