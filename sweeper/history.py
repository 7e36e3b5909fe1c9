from __future__ import annotations

from concurrent.futures import Future
from typing import Any, Dict, List

from .actor import Actor
from .types import GameResult, GameStatus


class ResultHistory(Actor):
    """Finished games per owner, wins and losses alike."""

    def __init__(self) -> None:
        super().__init__("history")
        self.results: Dict[str, List[GameResult]] = {}
        self.stats_totals: Dict[str, Dict[str, Any]] = {}
        self.stats_by_option: Dict[str, Dict[str, Dict[str, Any]]] = {}

    def record(self, result: GameResult) -> Future:
        return self.tell(self._record, result)

    def list_results(self, owner_id: str) -> List[GameResult]:
        return self.ask(self._list_results, owner_id)

    def summary(self, owner_id: str) -> Dict[str, Any]:
        return self.ask(self._summary, owner_id)

    def _ensure_stats(self, owner_id: str) -> None:
        if owner_id not in self.stats_totals:
            self.stats_totals[owner_id] = {"played": 0, "wins": 0, "losses": 0}
        if owner_id not in self.stats_by_option:
            self.stats_by_option[owner_id] = {}

    def _record(self, result: GameResult) -> None:
        owner_id = result.session_id
        self.results.setdefault(owner_id, []).append(result)
        self._ensure_stats(owner_id)
        totals = self.stats_totals[owner_id]
        options = self.stats_by_option[owner_id]
        config = result.config
        option = options.get(config.key)
        if option is None:
            option = {
                "board_width": config.width,
                "board_height": config.height,
                "num_mines": config.mine_count,
                "played": 0,
                "wins": 0,
                "losses": 0,
            }
            options[config.key] = option
        outcome = "wins" if result.status == GameStatus.WON else "losses"
        for bucket in (totals, option):
            bucket["played"] += 1
            bucket[outcome] += 1

    def _list_results(self, owner_id: str) -> List[GameResult]:
        return list(self.results.get(owner_id, []))

    def _summary(self, owner_id: str) -> Dict[str, Any]:
        totals = self.stats_totals.get(owner_id) or {"played": 0, "wins": 0, "losses": 0}
        played = int(totals["played"])
        by_option = []
        for key, opt in (self.stats_by_option.get(owner_id) or {}).items():
            by_option.append(
                {
                    "key": key,
                    "board_width": opt["board_width"],
                    "board_height": opt["board_height"],
                    "num_mines": opt["num_mines"],
                    "played": opt["played"],
                    "wins": opt["wins"],
                    "losses": opt["losses"],
                    "winPct": float(opt["wins"]) / opt["played"] if opt["played"] > 0 else 0.0,
                }
            )
        return {
            "totals": {
                "played": played,
                "wins": int(totals["wins"]),
                "losses": int(totals["losses"]),
                "winPct": float(totals["wins"]) / played if played > 0 else 0.0,
            },
            "byOption": by_option,
        }
