from __future__ import annotations

from collections import deque
from typing import Iterable, List, Optional, Tuple
import random

from .types import Board, Cell


Coord = Tuple[int, int]

WON = "won"
LOST = "lost"


def _neighbors(r: int, c: int, w: int, h: int):
    for nr in range(max(0, r - 1), min(h, r + 2)):
        for nc in range(max(0, c - 1), min(w, c + 2)):
            if nr == r and nc == c:
                continue
            yield nr, nc


def _check_bounds(board: Board, row: int, col: int) -> None:
    if not board.in_bounds(row, col):
        raise ValueError("out_of_bounds")


def choose_mine_positions(width: int, height: int, mine_count: int, rng: Optional[random.Random] = None) -> List[Coord]:
    """Pick distinct mine cells uniformly at random.

    Every position is shuffled and the first ``mine_count`` are taken, so the
    first click gets no special protection.
    """
    rng = rng or random.Random()
    positions = [(r, c) for r in range(height) for c in range(width)]
    rng.shuffle(positions)
    return positions[: min(mine_count, len(positions))]


def build_board(width: int, height: int, mine_count: int, positions: Iterable[Coord]) -> Board:
    cells = [[Cell(row=r, col=c) for c in range(width)] for r in range(height)]
    placed = 0
    for r, c in positions:
        if not (0 <= r < height and 0 <= c < width) or cells[r][c].is_mine:
            raise ValueError("invalid_mine_layout")
        cells[r][c].is_mine = True
        placed += 1
    if placed != min(mine_count, width * height):
        raise ValueError("invalid_mine_layout")
    for row in cells:
        for cell in row:
            if cell.is_mine:
                continue
            cell.neighbor_mines = sum(
                1 for nr, nc in _neighbors(cell.row, cell.col, width, height) if cells[nr][nc].is_mine
            )
    return Board(cells=cells, width=width, height=height, mine_count=mine_count)


def generate_board(width: int, height: int, mine_count: int, rng: Optional[random.Random] = None) -> Board:
    positions = choose_mine_positions(width, height, mine_count, rng)
    return build_board(width, height, mine_count, positions)


def mine_positions(board: Board) -> List[Coord]:
    return [(cell.row, cell.col) for cell in board.iter_cells() if cell.is_mine]


def count_revealed(board: Board) -> int:
    # Mines uncovered on a loss do not count towards progress.
    return sum(1 for cell in board.iter_cells() if cell.is_revealed and not cell.is_mine)


def count_flags(board: Board) -> int:
    return sum(1 for cell in board.iter_cells() if cell.is_flagged)


def is_win(board: Board) -> bool:
    return count_revealed(board) == board.width * board.height - board.mine_count


def _flood(board: Board, row: int, col: int) -> int:
    q = deque()
    q.append((row, col))
    cleared = 0
    while q:
        r, c = q.popleft()
        cell = board.cells[r][c]
        if cell.is_revealed or cell.is_flagged or cell.is_mine:
            continue
        cell.is_revealed = True
        cleared += 1
        if cell.neighbor_mines == 0:
            for nr, nc in _neighbors(r, c, board.width, board.height):
                n = board.cells[nr][nc]
                if not n.is_revealed and not n.is_flagged:
                    q.append((nr, nc))
    return cleared


def _reveal_all_mines(board: Board) -> None:
    # Flagged mines keep their flag so a cell is never both revealed and flagged.
    for cell in board.iter_cells():
        if cell.is_mine and not cell.is_flagged:
            cell.is_revealed = True


def _result(board: Board, hit_mine: bool, cleared: int, outcome: Optional[str]):
    return {
        "hit_mine": hit_mine,
        "cleared_cells": cleared,
        "outcome": outcome,
        "revealed_total": count_revealed(board),
        "flags_total": count_flags(board),
    }


def reveal(board: Board, row: int, col: int):
    _check_bounds(board, row, col)
    cell = board.cells[row][col]
    if cell.is_revealed or cell.is_flagged:
        return board, _result(board, False, 0, None)
    if cell.is_mine:
        _reveal_all_mines(board)
        return board, _result(board, True, 0, LOST)
    cleared = _flood(board, row, col)
    return board, _result(board, False, cleared, WON if is_win(board) else None)


def toggle_flag(board: Board, row: int, col: int):
    _check_bounds(board, row, col)
    cell = board.cells[row][col]
    if not cell.is_revealed:
        cell.is_flagged = not cell.is_flagged
    return board, _result(board, False, 0, None)


def chord_reveal(board: Board, row: int, col: int):
    """Reveal every unflagged neighbour of a numbered cell.

    Only fires when the number of flagged neighbours matches the cell's
    number exactly; anything else is a no-op.
    """
    _check_bounds(board, row, col)
    cell = board.cells[row][col]
    if not cell.is_revealed or cell.is_mine or cell.neighbor_mines == 0:
        return board, _result(board, False, 0, None)
    flagged = 0
    targets: List[Coord] = []
    for nr, nc in _neighbors(row, col, board.width, board.height):
        n = board.cells[nr][nc]
        if n.is_flagged:
            flagged += 1
        elif not n.is_revealed:
            targets.append((nr, nc))
    if flagged != cell.neighbor_mines:
        return board, _result(board, False, 0, None)
    hit = False
    cleared = 0
    for nr, nc in targets:
        n = board.cells[nr][nc]
        if n.is_mine:
            hit = True
            n.is_revealed = True
        else:
            cleared += _flood(board, nr, nc)
    if hit:
        _reveal_all_mines(board)
        return board, _result(board, True, cleared, LOST)
    return board, _result(board, False, cleared, WON if is_win(board) else None)


def to_client_view(board: Board, show_mines: bool) -> List[List[str]]:
    view: List[List[str]] = []
    for row in board.cells:
        out: List[str] = []
        for cell in row:
            if show_mines and cell.is_mine and not cell.is_flagged:
                out.append("M")
            elif cell.is_revealed:
                out.append("M" if cell.is_mine else str(cell.neighbor_mines))
            else:
                out.append("F" if cell.is_flagged else "H")
        view.append(out)
    return view
