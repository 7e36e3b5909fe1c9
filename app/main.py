import logging
from concurrent import futures
from dataclasses import asdict
from pathlib import Path
from typing import Optional

from fastapi import FastAPI, Header, HTTPException, Query
from fastapi.middleware.cors import CORSMiddleware
from fastapi.staticfiles import StaticFiles
from pydantic import BaseModel, Field
from dotenv import load_dotenv

from sweeper.config import Settings
from sweeper.game_engine import to_client_view
from sweeper.registry import GameService
from sweeper.session import SessionFailed
from sweeper.types import Difficulty, GameConfig, GameResult, GameState, GameStatus, LeaderboardCategory

load_dotenv(dotenv_path=Path('.env.local'))

API_BASE = "/api"


class ConfigBody(BaseModel):
    width: int
    height: int
    mine_count: int

    def to_config(self) -> GameConfig:
        return GameConfig(self.width, self.height, self.mine_count)


class CreateBody(BaseModel):
    config: ConfigBody


class MoveBody(BaseModel):
    row: int
    col: int
    action: str = Field(..., description="reveal | flag | unflag | chord")


def _iso(ts):
    return ts.isoformat() if ts is not None else None


def to_client(state: GameState) -> dict:
    board = state.board
    show_mines = state.status not in (GameStatus.NOT_STARTED, GameStatus.IN_PROGRESS)
    return {
        "game_id": state.id,
        "status": state.status.value,
        "board": to_client_view(board, show_mines),
        "board_width": board.width,
        "board_height": board.height,
        "mine_count": board.mine_count,
        "flags_used": state.flags_used,
        "cells_revealed": state.cells_revealed,
        "start_time": _iso(state.start_time),
        "end_time": _iso(state.end_time),
        "owner_id": state.session_id,
    }


def result_to_client(result: GameResult) -> dict:
    return {
        "game_id": result.id,
        "owner_id": result.session_id,
        "config": asdict(result.config),
        "status": result.status.value,
        "start_time": _iso(result.start_time),
        "end_time": _iso(result.end_time),
        "duration": result.duration,
        "cells_revealed": result.cells_revealed,
        "flags_used": result.flags_used,
    }


def _call(fn, *args):
    try:
        return fn(*args)
    except KeyError as e:
        raise HTTPException(status_code=404, detail=str(e.args[0]) if e.args else "not found")
    except SessionFailed:
        raise HTTPException(status_code=500, detail="session_failed")
    except futures.TimeoutError:
        raise HTTPException(status_code=504, detail="session_busy")
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))


def create_app(service: Optional[GameService] = None) -> FastAPI:
    app = FastAPI(title="Minesweeper Service", version="0.2.0")

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"]
    )

    app.state.service = service or GameService(Settings.from_env())

    @app.on_event("startup")
    async def _log_settings():
        s = app.state.service.settings
        logging.getLogger("uvicorn.error").info(
            f"[minesweeper] inactivity_timeout={s.inactivity_timeout_seconds}s check={s.inactivity_check_seconds}s "
            f"leaderboard_max={s.leaderboard_max_entries} win_rate_min_games={s.win_rate_min_games}"
        )

    @app.on_event("shutdown")
    async def _stop_actors():
        app.state.service.shutdown()

    @app.post(f"{API_BASE}/games")
    def create_game(body: CreateBody, x_user_id: Optional[str] = Header(None)):
        svc = app.state.service
        game_id = _call(svc.create_session, body.config.to_config(), x_user_id or None)
        return to_client(svc.get_state(game_id))

    @app.get(f"{API_BASE}/games/{{game_id}}")
    def get_game(game_id: str):
        return to_client(_call(app.state.service.get_state, game_id))

    @app.post(f"{API_BASE}/games/{{game_id}}/moves")
    def make_move(game_id: str, body: MoveBody):
        svc = app.state.service
        board = _call(svc.get_state, game_id).board
        if not board.in_bounds(body.row, body.col):
            raise HTTPException(status_code=400, detail="out_of_bounds")
        return to_client(_call(svc.apply_move, game_id, body.row, body.col, body.action))

    @app.post(f"{API_BASE}/games/{{game_id}}/restart")
    def restart_game(game_id: str, body: CreateBody):
        svc = app.state.service
        return to_client(_call(svc.restart, game_id, body.config.to_config()))

    @app.post(f"{API_BASE}/games/{{game_id}}/close")
    def close_game(game_id: str):
        return to_client(_call(app.state.service.close, game_id))

    @app.get(f"{API_BASE}/players/{{owner_id}}/results")
    def list_results(owner_id: str):
        svc = app.state.service
        results = svc.list_results_for_player(owner_id)
        return {
            "owner_id": owner_id,
            "results": [result_to_client(r) for r in results],
            "summary": svc.player_summary(owner_id),
        }

    @app.get(f"{API_BASE}/players/{{player_id}}/stats")
    def player_stats(player_id: str):
        stats = _call(app.state.service.get_player_stats, player_id)
        return {
            "player_id": stats.player_id,
            "total_games": stats.total_games,
            "total_wins": stats.total_wins,
            "win_rate": stats.win_rate,
            "best_times": {d.value: t for d, t in stats.best_times.items()},
            "last_played": _iso(stats.last_played),
        }

    @app.get(f"{API_BASE}/leaderboard/{{category}}")
    def leaderboard(
        category: LeaderboardCategory,
        difficulty: Optional[Difficulty] = None,
        limit: int = Query(10, ge=0),
    ):
        board = app.state.service.get_leaderboard(category, difficulty, limit)
        return {
            "category": board.category.value,
            "difficulty": board.difficulty.value if board.difficulty else None,
            "entries": [
                {
                    "player_id": e.player_id,
                    "value": e.value,
                    "game_id": e.game_id,
                    "difficulty": e.difficulty.value,
                    "timestamp": _iso(e.timestamp),
                    "game_config": asdict(e.game_config),
                    "total_games": e.total_games,
                    "total_wins": e.total_wins,
                    "win_rate": e.win_rate,
                }
                for e in board.entries
            ],
            "last_updated": _iso(board.last_updated),
        }

    @app.get(f"{API_BASE}/health")
    def health():
        return {"status": "ok"}

    # Static frontend
    frontend_dir = Path(__file__).resolve().parent.parent / "frontend"
    if frontend_dir.exists():
        app.mount("/", StaticFiles(directory=str(frontend_dir), html=True), name="frontend")

    return app


app = create_app()
