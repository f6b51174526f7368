"""
Typewriter scheduler - reveals a reply to a sink one visual unit at a time.

Runs on the asyncio event loop with at most one pending tick. HTML tags
are revealed atomically and cost no delay.
"""

import asyncio
import re
from dataclasses import dataclass
from enum import Enum
from typing import Callable, List, Optional

from utils.logging_config import get_logger


TAG_PATTERN = re.compile(r"<[^>]+>")

logger = get_logger(__name__)


@dataclass(frozen=True)
class TextUnit:
    text: str
    is_tag: bool = False


def segment_text(text: str) -> List[TextUnit]:
    """Split text into single characters and whole <...> tags"""
    units: List[TextUnit] = []
    last_index = 0

    for match in TAG_PATTERN.finditer(text):
        units.extend(TextUnit(char) for char in text[last_index:match.start()])
        units.append(TextUnit(match.group(0), is_tag=True))
        last_index = match.end()

    units.extend(TextUnit(char) for char in text[last_index:])
    return units


class TypewriterState(Enum):
    IDLE = "idle"
    RUNNING = "running"
    PAUSED = "paused"
    STOPPED = "stopped"
    COMPLETE = "complete"


_TERMINAL_STATES = (TypewriterState.STOPPED, TypewriterState.COMPLETE)


class TypewriterScheduler:
    """
    Incrementally feeds ``full_text`` to ``on_update``.

    Each tick appends the next unit and calls ``on_update`` with the whole
    text revealed so far. Callers must ``stop()`` a previous scheduler
    before starting another one on the same sink.
    """

    def __init__(
        self,
        full_text: str,
        on_update: Callable[[str], None],
        interval_ms: float = 30,
        loop: Optional[asyncio.AbstractEventLoop] = None,
    ):
        if interval_ms < 0:
            raise ValueError(f"interval_ms must be >= 0, got {interval_ms}")

        self.full_text = full_text
        self.on_update = on_update
        self.interval_ms = interval_ms

        self._units = segment_text(full_text)
        self._cursor = 0
        self._revealed = ""
        self._state = TypewriterState.IDLE
        self._handle: Optional[asyncio.Handle] = None
        self._loop = loop
        self._done: Optional[asyncio.Future] = None

    @property
    def state(self) -> TypewriterState:
        return self._state

    @property
    def revealed_text(self) -> str:
        return self._revealed

    def is_complete(self) -> bool:
        return self._state is TypewriterState.COMPLETE

    def is_active(self) -> bool:
        return self._state in (TypewriterState.RUNNING, TypewriterState.PAUSED)

    def start(self) -> None:
        """Begin or resume; emits the next unit immediately"""
        if self._state in _TERMINAL_STATES or self._state is TypewriterState.RUNNING:
            return

        self._ensure_done_future()
        self._state = TypewriterState.RUNNING

        if not self._units:
            if self._emit(""):
                self._finish(TypewriterState.COMPLETE)
            return

        self._tick()

    def pause(self) -> None:
        if self._state is not TypewriterState.RUNNING:
            return
        self._cancel_pending()
        self._state = TypewriterState.PAUSED

    def stop(self) -> None:
        if self._state in _TERMINAL_STATES:
            return
        self._finish(TypewriterState.STOPPED)

    def complete(self) -> None:
        """Skip the animation and publish the full text once"""
        if self._state is TypewriterState.COMPLETE:
            return

        self._cancel_pending()
        self._state = TypewriterState.STOPPED
        self._cursor = len(self._units)
        self._revealed = self.full_text
        if self._emit(self._revealed):
            self._finish(TypewriterState.COMPLETE)

    async def wait(self) -> TypewriterState:
        """
        Wait until the scheduler completes or is stopped.

        Re-raises an exception thrown by ``on_update``.
        """
        done = self._ensure_done_future()
        return await asyncio.shield(done)

    def _tick(self) -> None:
        self._handle = None
        if self._state is not TypewriterState.RUNNING:
            return

        unit = self._units[self._cursor]
        self._revealed += unit.text
        self._cursor += 1

        if not self._emit(self._revealed):
            return

        if self._cursor >= len(self._units):
            self._finish(TypewriterState.COMPLETE)
            return

        self._schedule(0 if unit.is_tag else self.interval_ms / 1000)

    def _schedule(self, delay: float) -> None:
        loop = self._get_loop()
        if delay <= 0:
            self._handle = loop.call_soon(self._tick)
        else:
            self._handle = loop.call_later(delay, self._tick)

    def _emit(self, text: str) -> bool:
        # Runs inside loop callbacks: whatever the sink raises, including
        # BaseException control signals, must end up in wait()
        try:
            self.on_update(text)
            return True
        except BaseException as e:
            if isinstance(e, Exception):
                logger.error(f"Typewriter sink failed, stopping: {e}", exc_info=True)
            else:
                logger.info(f"Typewriter interrupted by {type(e).__name__}")
            self._cancel_pending()
            self._state = TypewriterState.STOPPED
            done = self._ensure_done_future()
            if not done.done():
                done.set_exception(e)
            return False

    def _finish(self, state: TypewriterState) -> None:
        self._cancel_pending()
        self._state = state
        if self._done is not None and not self._done.done():
            self._done.set_result(state)

    def _cancel_pending(self) -> None:
        if self._handle is not None:
            self._handle.cancel()
            self._handle = None

    def _get_loop(self) -> asyncio.AbstractEventLoop:
        if self._loop is None:
            self._loop = asyncio.get_running_loop()
        return self._loop

    def _ensure_done_future(self) -> asyncio.Future:
        if self._done is None:
            self._done = self._get_loop().create_future()
            if self._state in _TERMINAL_STATES:
                self._done.set_result(self._state)
        return self._done
