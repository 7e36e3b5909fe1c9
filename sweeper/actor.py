from __future__ import annotations

from concurrent.futures import Future
from typing import Any, Callable, Optional
import logging
import queue
import threading
import time


logger = logging.getLogger("uvicorn.error")

_WAKE = object()


class Actor:
    """A unit of state served by a single thread through a FIFO mailbox.

    Handlers run one at a time in the order they were accepted. Subclasses
    keep their mutable state private and only touch it from handlers.
    """

    def __init__(self, name: str, tick_seconds: Optional[float] = None) -> None:
        self.name = name
        self._tick_seconds = tick_seconds
        self._mailbox: "queue.Queue[Any]" = queue.Queue()
        self._gate = threading.Lock()
        self._stopping = False
        self._stopped = False
        self._thread = threading.Thread(target=self._run, name=f"actor-{name}", daemon=True)

    def start(self) -> "Actor":
        self._thread.start()
        return self

    @property
    def running(self) -> bool:
        return not self._stopped

    def tell(self, handler: Callable[..., Any], *args: Any) -> Future:
        fut: Future = Future()
        with self._gate:
            if not self._stopped:
                self._mailbox.put((handler, args, fut))
                return fut
        self._answer_stopped(handler, args, fut)
        return fut

    def ask(self, handler: Callable[..., Any], *args: Any) -> Any:
        return self.tell(handler, *args).result()

    def wake(self) -> None:
        self._mailbox.put(_WAKE)

    def stop(self) -> None:
        self._stopping = True
        self.wake()

    def join(self, timeout: Optional[float] = None) -> None:
        if self._thread.is_alive():
            self._thread.join(timeout)

    # hooks

    def on_schedule(self) -> None:
        """Runs on the actor thread before each message is taken."""

    def on_tick(self) -> None:
        """Runs on the actor thread at most once per tick interval."""

    def on_stopped_message(self, handler: Callable[..., Any], args: tuple) -> Any:
        raise RuntimeError(f"actor {self.name} is stopped")

    def on_exit(self) -> None:
        """Runs on the actor thread once the loop has ended."""

    def should_stop(self) -> bool:
        return self._stopping

    # loop

    def _answer_stopped(self, handler, args, fut: Future) -> None:
        try:
            fut.set_result(self.on_stopped_message(handler, args))
        except Exception as exc:
            fut.set_exception(exc)

    def _run(self) -> None:
        last_tick = time.monotonic()
        while True:
            self.on_schedule()
            if self.should_stop():
                break
            try:
                msg = self._mailbox.get(timeout=self._tick_seconds)
            except queue.Empty:
                msg = None
            if msg is not None and msg is not _WAKE:
                handler, args, fut = msg
                if fut.set_running_or_notify_cancel():
                    try:
                        fut.set_result(handler(*args))
                    except ValueError as exc:
                        logger.warning(f"[minesweeper] actor={self.name} rejected: {exc}")
                        fut.set_exception(exc)
                    except Exception as exc:
                        logger.exception(f"[minesweeper] actor={self.name} handler failed")
                        fut.set_exception(exc)
            if self._tick_seconds is not None and time.monotonic() - last_tick >= self._tick_seconds:
                last_tick = time.monotonic()
                try:
                    self.on_tick()
                except Exception:
                    logger.exception(f"[minesweeper] actor={self.name} tick failed")
        with self._gate:
            self._stopped = True
        try:
            self.on_exit()
        except Exception:
            logger.exception(f"[minesweeper] actor={self.name} exit hook failed")
        while True:
            try:
                msg = self._mailbox.get_nowait()
            except queue.Empty:
                break
            if msg is _WAKE:
                continue
            handler, args, fut = msg
            if fut.set_running_or_notify_cancel():
                self._answer_stopped(handler, args, fut)
        logger.info(f"[minesweeper] actor={self.name} stopped")
