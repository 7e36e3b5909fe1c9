from __future__ import annotations

from dataclasses import dataclass
import os


def _float_env(name: str, default: float) -> float:
    raw = os.getenv(name)
    return float(raw) if raw not in (None, "") else default


def _int_env(name: str, default: int) -> int:
    raw = os.getenv(name)
    return int(raw) if raw not in (None, "") else default


@dataclass(frozen=True)
class Settings:
    inactivity_timeout_seconds: float = 24 * 60 * 60
    inactivity_check_seconds: float = 60.0
    leaderboard_max_entries: int = 100
    win_rate_min_games: int = 5
    max_board_dim: int = 100

    @classmethod
    def from_env(cls) -> "Settings":
        return cls(
            inactivity_timeout_seconds=_float_env("INACTIVITY_TIMEOUT_SECONDS", cls.inactivity_timeout_seconds),
            inactivity_check_seconds=_float_env("INACTIVITY_CHECK_SECONDS", cls.inactivity_check_seconds),
            leaderboard_max_entries=_int_env("LEADERBOARD_MAX_ENTRIES", cls.leaderboard_max_entries),
            win_rate_min_games=_int_env("WIN_RATE_MIN_GAMES", cls.win_rate_min_games),
            max_board_dim=_int_env("MAX_BOARD_DIM", cls.max_board_dim),
        )
