from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Dict, List, Optional


class GameStatus(str, Enum):
    NOT_STARTED = "NOT_STARTED"
    IN_PROGRESS = "IN_PROGRESS"
    WON = "WON"
    LOST = "LOST"
    CLOSED = "CLOSED"


FINISHED = (GameStatus.WON, GameStatus.LOST)


class MoveAction(str, Enum):
    REVEAL = "reveal"
    FLAG = "flag"
    UNFLAG = "unflag"
    CHORD = "chord"

    @classmethod
    def parse(cls, value) -> "MoveAction":
        try:
            return cls(value)
        except ValueError:
            raise ValueError("invalid_action") from None


class Difficulty(str, Enum):
    BEGINNER = "BEGINNER"
    INTERMEDIATE = "INTERMEDIATE"
    EXPERT = "EXPERT"
    CUSTOM = "CUSTOM"


class LeaderboardCategory(str, Enum):
    FASTEST_TIME = "FASTEST_TIME"
    MOST_WINS = "MOST_WINS"
    BEST_WIN_RATE = "BEST_WIN_RATE"


@dataclass(frozen=True)
class GameConfig:
    width: int
    height: int
    mine_count: int

    def validate(self, max_dim: Optional[int] = None) -> "GameConfig":
        if self.width <= 0 or self.height <= 0 or self.mine_count <= 0:
            raise ValueError("invalid_config")
        if max_dim is not None and (self.width > max_dim or self.height > max_dim):
            raise ValueError("invalid_config")
        if self.mine_count >= self.width * self.height:
            raise ValueError("too_many_mines_for_board")
        return self

    @property
    def key(self) -> str:
        return f"{self.width}x{self.height}x{self.mine_count}"


PRESETS: Dict[Difficulty, GameConfig] = {
    Difficulty.BEGINNER: GameConfig(9, 9, 10),
    Difficulty.INTERMEDIATE: GameConfig(16, 16, 40),
    Difficulty.EXPERT: GameConfig(30, 16, 99),
}


def difficulty_for(config: GameConfig) -> Difficulty:
    for difficulty, preset in PRESETS.items():
        if preset == config:
            return difficulty
    return Difficulty.CUSTOM


@dataclass
class Cell:
    row: int
    col: int
    is_mine: bool = False
    is_revealed: bool = False
    is_flagged: bool = False
    neighbor_mines: int = 0


@dataclass
class Board:
    cells: List[List[Cell]]
    width: int
    height: int
    mine_count: int

    @property
    def config(self) -> GameConfig:
        return GameConfig(self.width, self.height, self.mine_count)

    def in_bounds(self, row: int, col: int) -> bool:
        return 0 <= row < self.height and 0 <= col < self.width

    def cell(self, row: int, col: int) -> Cell:
        return self.cells[row][col]

    def iter_cells(self):
        for row in self.cells:
            yield from row


@dataclass
class GameState:
    id: str
    board: Board
    status: GameStatus = GameStatus.NOT_STARTED
    start_time: Optional[datetime] = None
    end_time: Optional[datetime] = None
    flags_used: int = 0
    cells_revealed: int = 0
    session_id: Optional[str] = None


@dataclass(frozen=True)
class GameResult:
    """Snapshot of a session taken the moment it finished."""

    id: str
    session_id: str
    config: GameConfig
    status: GameStatus
    start_time: datetime
    end_time: datetime
    duration: float
    cells_revealed: int
    flags_used: int


@dataclass(frozen=True)
class LeaderboardEntry:
    player_id: str
    value: float
    game_id: str
    difficulty: Difficulty
    timestamp: datetime
    game_config: GameConfig
    total_games: Optional[int] = None
    total_wins: Optional[int] = None
    win_rate: Optional[float] = None


@dataclass(frozen=True)
class Leaderboard:
    category: LeaderboardCategory
    difficulty: Optional[Difficulty]
    entries: List[LeaderboardEntry]
    last_updated: Optional[datetime]


@dataclass
class PlayerStats:
    player_id: str
    total_games: int = 0
    total_wins: int = 0
    win_rate: float = 0.0
    best_times: Dict[Difficulty, float] = field(default_factory=dict)
    last_played: Optional[datetime] = None
