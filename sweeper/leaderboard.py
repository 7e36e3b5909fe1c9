from __future__ import annotations

from concurrent.futures import Future
from dataclasses import replace
from datetime import datetime
from typing import Dict, List, Optional, Tuple, Union
import copy
import logging

from .actor import Actor
from .config import Settings
from .types import (
    Difficulty,
    GameResult,
    GameStatus,
    Leaderboard,
    LeaderboardCategory,
    LeaderboardEntry,
    PlayerStats,
    difficulty_for,
)


logger = logging.getLogger("uvicorn.error")

GLOBAL = "GLOBAL"

ListKey = Tuple[LeaderboardCategory, Union[Difficulty, str]]

# Lower is better only for times.
_ASCENDING = {
    LeaderboardCategory.FASTEST_TIME: True,
    LeaderboardCategory.MOST_WINS: False,
    LeaderboardCategory.BEST_WIN_RATE: False,
}

# One entry per player; a newer entry replaces the old one.
_REPLACE_ON_UPDATE = {LeaderboardCategory.MOST_WINS, LeaderboardCategory.BEST_WIN_RATE}


class LeaderboardActor(Actor):
    """Single ranking aggregator fed by finished games."""

    def __init__(self, settings: Optional[Settings] = None) -> None:
        super().__init__("leaderboard")
        self.settings = settings or Settings()
        self._lists: Dict[ListKey, List[LeaderboardEntry]] = {}
        self._updated: Dict[ListKey, datetime] = {}
        self._players: Dict[str, PlayerStats] = {}

    # public API

    def add_result(self, result: GameResult) -> Future:
        return self.tell(self._add_result, result)

    def get_leaderboard(
        self,
        category: LeaderboardCategory,
        difficulty: Optional[Difficulty] = None,
        limit: int = 10,
    ) -> Leaderboard:
        if difficulty is not None:
            difficulty = Difficulty(difficulty)
        return self.ask(self._get_leaderboard, LeaderboardCategory(category), difficulty, limit)

    def get_player_stats(self, player_id: str) -> Optional[PlayerStats]:
        return self.ask(self._get_player_stats, player_id)

    # handlers

    def _add_result(self, result: GameResult) -> bool:
        if result.status != GameStatus.WON:
            return False
        difficulty = difficulty_for(result.config)
        # Work on copies; nothing is assigned until every list is built.
        previous = self._players.get(result.session_id)
        stats = copy.deepcopy(previous) if previous is not None else PlayerStats(player_id=result.session_id)
        stats.total_games += 1
        stats.total_wins += 1
        stats.win_rate = stats.total_wins / stats.total_games
        stats.last_played = result.end_time
        best = stats.best_times.get(difficulty)
        if best is None or result.duration < best:
            stats.best_times[difficulty] = result.duration

        base = LeaderboardEntry(
            player_id=result.session_id,
            value=result.duration,
            game_id=result.id,
            difficulty=difficulty,
            timestamp=result.end_time,
            game_config=result.config,
            total_games=stats.total_games,
            total_wins=stats.total_wins,
            win_rate=stats.win_rate,
        )
        entries = {
            LeaderboardCategory.FASTEST_TIME: base,
            LeaderboardCategory.MOST_WINS: replace(base, value=stats.total_wins),
        }
        if stats.total_games >= self.settings.win_rate_min_games:
            entries[LeaderboardCategory.BEST_WIN_RATE] = replace(
                base, value=round(stats.win_rate * 10000) / 100
            )
        ranked: Dict[ListKey, List[LeaderboardEntry]] = {}
        for category, entry in entries.items():
            for key in ((category, difficulty), (category, GLOBAL)):
                ranked[key] = self._ranked(key, entry)

        self._players[result.session_id] = stats
        for key, ranked_list in ranked.items():
            self._lists[key] = ranked_list
            self._updated[key] = result.end_time
        logger.info(
            f"[minesweeper] leaderboard updated player={result.session_id} game_id={result.id} "
            f"difficulty={difficulty.value} duration={result.duration}s wins={stats.total_wins}"
        )
        return True

    def _ranked(self, key: ListKey, entry: LeaderboardEntry) -> List[LeaderboardEntry]:
        category = key[0]
        entries = list(self._lists.get(key, ()))
        if category in _REPLACE_ON_UPDATE:
            entries = [e for e in entries if e.player_id != entry.player_id]
        entries.append(entry)
        # list.sort is stable, so ties keep their earlier order
        entries.sort(key=lambda e: e.value, reverse=not _ASCENDING[category])
        return entries[: self.settings.leaderboard_max_entries]

    def _get_leaderboard(
        self,
        category: LeaderboardCategory,
        difficulty: Optional[Difficulty],
        limit: int,
    ) -> Leaderboard:
        key: ListKey = (category, difficulty if difficulty is not None else GLOBAL)
        limit = max(0, min(int(limit), self.settings.leaderboard_max_entries))
        entries = self._lists.get(key, [])
        return Leaderboard(
            category=category,
            difficulty=difficulty,
            entries=list(entries[:limit]),
            last_updated=self._updated.get(key),
        )

    def _get_player_stats(self, player_id: str) -> Optional[PlayerStats]:
        stats = self._players.get(player_id)
        return copy.deepcopy(stats) if stats is not None else None
