from __future__ import annotations

from concurrent.futures import Future
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Dict, Iterable, List, Optional, Tuple
import copy
import logging
import random
import threading

from .actor import Actor
from .config import Settings
from .effects import CommandRecord, EffectRecorder
from .game_engine import LOST, build_board, choose_mine_positions, chord_reveal, reveal, toggle_flag
from .types import FINISHED, GameConfig, GameResult, GameState, GameStatus, MoveAction


logger = logging.getLogger("uvicorn.error")

ResultSink = Callable[[GameResult], Any]


def _now() -> datetime:
    return datetime.now(timezone.utc)


class SessionFailed(RuntimeError):
    pass


class SessionMachine:
    """Deterministic session state machine.

    State is a function of the journal alone: every accepted command is
    recorded together with the random and clock values it consumed, so
    ``replay`` rebuilds an identical session without touching either.
    """

    def __init__(
        self,
        game_id: str,
        owner_id: Optional[str] = None,
        clock: Callable[[], datetime] = _now,
        rng: Optional[random.Random] = None,
    ) -> None:
        self.game_id = game_id
        self.owner_id = owner_id or None
        self.state: Optional[GameState] = None
        self.last_activity: Optional[datetime] = None
        self.journal: List[CommandRecord] = []
        self._clock = clock
        self._rng = rng

    @classmethod
    def replay(
        cls,
        game_id: str,
        owner_id: Optional[str],
        journal: Iterable[CommandRecord],
        clock: Callable[[], datetime] = _now,
        rng: Optional[random.Random] = None,
    ) -> "SessionMachine":
        machine = cls(game_id, owner_id, clock, rng)
        for record in journal:
            machine._apply(record, EffectRecorder.replay(record))
            machine.journal.append(record)
        return machine

    def execute(self, kind: str, **args: Any) -> Tuple[bool, Optional[GameResult]]:
        record = CommandRecord(seq=len(self.journal), kind=kind, args=args)
        accepted, result = self._apply(record, EffectRecorder.live(record))
        if accepted:
            self.journal.append(record)
        return accepted, result

    def _apply(self, record: CommandRecord, recorder: EffectRecorder) -> Tuple[bool, Optional[GameResult]]:
        handler = getattr(self, f"_on_{record.kind}", None)
        if handler is None:
            raise ValueError(f"unknown_command:{record.kind}")
        return handler(recorder, **record.args)

    def _new_board(self, recorder: EffectRecorder, config: GameConfig):
        positions = recorder.capture(
            "mine_positions",
            lambda: choose_mine_positions(config.width, config.height, config.mine_count, self._rng),
        )
        return build_board(config.width, config.height, config.mine_count, positions)

    def _on_create(self, recorder: EffectRecorder, width: int, height: int, mine_count: int):
        config = GameConfig(width, height, mine_count).validate()
        board = self._new_board(recorder, config)
        self.state = GameState(id=self.game_id, board=board, session_id=self.owner_id)
        self.last_activity = recorder.capture("clock", self._clock)
        return True, None

    def _on_move(self, recorder: EffectRecorder, row: int, col: int, action: str):
        state = self.state
        act = MoveAction.parse(action)
        if not state.board.in_bounds(row, col):
            raise ValueError("out_of_bounds")
        if state.status in FINISHED or state.status == GameStatus.CLOSED:
            return False, None
        now = recorder.capture("clock", self._clock)
        if state.status == GameStatus.NOT_STARTED:
            state.status = GameStatus.IN_PROGRESS
            state.start_time = now
        if act == MoveAction.REVEAL:
            _, res = reveal(state.board, row, col)
        elif act == MoveAction.CHORD:
            _, res = chord_reveal(state.board, row, col)
        else:
            _, res = toggle_flag(state.board, row, col)
        state.cells_revealed = res["revealed_total"]
        state.flags_used = res["flags_total"]
        self.last_activity = now
        if res["outcome"] is None:
            return True, None
        state.status = GameStatus.LOST if res["outcome"] == LOST else GameStatus.WON
        state.end_time = now
        return True, self._game_result()

    def _on_restart(self, recorder: EffectRecorder, width: int, height: int, mine_count: int):
        if self.state.status == GameStatus.CLOSED:
            return False, None
        config = GameConfig(width, height, mine_count).validate()
        board = self._new_board(recorder, config)
        self.state = GameState(id=self.game_id, board=board, session_id=self.owner_id)
        self.last_activity = recorder.capture("clock", self._clock)
        return True, None

    def _on_close(self, recorder: EffectRecorder, reason: str):
        if self.state.status == GameStatus.CLOSED:
            return False, None
        self.state.status = GameStatus.CLOSED
        self.state.end_time = recorder.capture("clock", self._clock)
        return True, None

    def _game_result(self) -> Optional[GameResult]:
        state = self.state
        if not self.owner_id:
            return None
        return GameResult(
            id=state.id,
            session_id=self.owner_id,
            config=state.board.config,
            status=state.status,
            start_time=state.start_time,
            end_time=state.end_time,
            duration=round((state.end_time - state.start_time).total_seconds(), 3),
            cells_revealed=state.cells_revealed,
            flags_used=state.flags_used,
        )


def replay_session(game_id: str, owner_id: Optional[str], journal: Iterable[CommandRecord]) -> GameState:
    return SessionMachine.replay(game_id, owner_id, journal).state


class SessionActor(Actor):
    """One game, served by its own thread.

    Commands go through the mailbox; ``get_state`` reads the snapshot
    published after the last committed command and never waits.
    """

    def __init__(
        self,
        game_id: str,
        config: GameConfig,
        owner_id: Optional[str] = None,
        settings: Optional[Settings] = None,
        result_sinks: Iterable[ResultSink] = (),
        clock: Callable[[], datetime] = _now,
        rng: Optional[random.Random] = None,
    ) -> None:
        self.settings = settings or Settings()
        super().__init__(f"session-{game_id}", tick_seconds=self.settings.inactivity_check_seconds)
        self.game_id = game_id
        self.owner_id = owner_id or None
        self._sinks = list(result_sinks)
        self._clock = clock
        self._rng = rng
        self._close_requested = threading.Event()
        self._closed: Future = Future()
        self._failed = False
        self._machine = SessionMachine(game_id, self.owner_id, clock, rng)
        self._machine.execute("create", width=config.width, height=config.height, mine_count=config.mine_count)
        self._publish()
        logger.info(f"[minesweeper] session created game_id={game_id} owner={self.owner_id or '-'} config={config.key}")

    # public API

    def get_state(self) -> GameState:
        return self._snapshot

    @property
    def closed(self) -> bool:
        return self._closed.done() and self._snapshot.status == GameStatus.CLOSED

    def journal(self) -> List[CommandRecord]:
        return list(self._machine.journal)

    def move(self, row: int, col: int, action) -> GameState:
        act = MoveAction.parse(action)
        return self.ask(self._handle, "move", {"row": row, "col": col, "action": act.value})

    def restart(self, config: GameConfig) -> GameState:
        return self.ask(
            self._handle,
            "restart",
            {"width": config.width, "height": config.height, "mine_count": config.mine_count},
        )

    def close(self) -> Future:
        self._close_requested.set()
        self.wake()
        return self._closed

    # actor hooks

    def on_schedule(self) -> None:
        if self._close_requested.is_set() and not self._closed.done():
            self._close("requested")

    def on_tick(self) -> None:
        last = self._machine.last_activity
        if self._closed.done() or last is None:
            return
        idle = self._clock() - last
        if idle >= timedelta(seconds=self.settings.inactivity_timeout_seconds):
            logger.info(f"[minesweeper] session inactive game_id={self.game_id} idle={idle}")
            self._close("inactive")

    def should_stop(self) -> bool:
        return super().should_stop() or self._failed or self._closed.done()

    def on_exit(self) -> None:
        # Stopped without closing (shutdown or failure): settle pending closers.
        if self._closed.done():
            return
        if self._failed:
            self._closed.set_exception(SessionFailed("session_failed"))
        else:
            self._closed.set_result(self._snapshot)

    def on_stopped_message(self, handler, args) -> GameState:
        if self._failed:
            raise SessionFailed("session_failed")
        return self._snapshot

    # internals

    def _publish(self) -> None:
        self._snapshot = copy.deepcopy(self._machine.state)

    def _handle(self, kind: str, args: Dict[str, Any]) -> GameState:
        try:
            accepted, result = self._machine.execute(kind, **args)
        except ValueError:
            raise
        except Exception as exc:
            logger.exception(f"[minesweeper] session command failed game_id={self.game_id} kind={kind}")
            self._recover()
            raise SessionFailed("session_failed") from exc
        if accepted:
            self._publish()
        if result is not None:
            self._emit(result)
        if kind == "restart" and accepted:
            logger.info(f"[minesweeper] session restarted game_id={self.game_id} config={self._snapshot.board.config.key}")
        return self._snapshot

    def _recover(self) -> None:
        # Roll back to the last committed command by replaying the journal.
        journal = self._machine.journal
        try:
            self._machine = SessionMachine.replay(self.game_id, self.owner_id, journal, self._clock, self._rng)
        except Exception:
            logger.exception(f"[minesweeper] session replay failed game_id={self.game_id}")
            self._failed = True

    def _close(self, reason: str) -> None:
        try:
            self._machine.execute("close", reason=reason)
        except Exception:
            logger.exception(f"[minesweeper] session close failed game_id={self.game_id}")
            self._recover()
            self._failed = True
            self._closed.set_exception(SessionFailed("session_failed"))
            return
        self._publish()
        logger.info(f"[minesweeper] session closed game_id={self.game_id} reason={reason}")
        self._closed.set_result(self._snapshot)

    def _emit(self, result: GameResult) -> None:
        logger.info(
            f"[minesweeper] session finished game_id={self.game_id} owner={result.session_id} "
            f"status={result.status.value} duration={result.duration}s"
        )
        for sink in self._sinks:
            try:
                sink(result)
            except Exception:
                logger.exception(f"[minesweeper] result sink failed game_id={self.game_id}")
