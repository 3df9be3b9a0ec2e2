"""Fakes shared by the dispatch proxy tests."""

import asyncio
from typing import Any, List


from wa_proxy.transport.base import Closed, Opened, Transport


class FakeTransport(Transport):
    """Scripted transport.

    Each ``initialize`` call replays the next script from ``sessions``
    (default: a single ``Opened``). A script that does not end with
    ``Closed`` keeps the session open until the task is cancelled.
    """

    name = "fake"

    def __init__(self, sessions=None):
        self.sessions: List[list] = [list(s) for s in (sessions or [])]
        self.initialize_calls = 0
        self.initialize_error: Exception | None = None
        self.sent: List[tuple] = []
        self.outcomes: List[Any] = []
        self.send_hook = None
        self.logged_out = False
        self.shut_down = False

    async def initialize(self):
        self.initialize_calls += 1
        if self.initialize_error is not None:
            raise self.initialize_error
        script = self.sessions.pop(0) if self.sessions else [Opened()]
        for event in script:
            yield event
        if not script or not isinstance(script[-1], Closed):
            await asyncio.Event().wait()

    async def send(self, destination, text=None, attachment=None):
        self.sent.append((destination, text, attachment))
        if self.send_hook is not None:
            await self.send_hook(destination, text, attachment)
        outcome = self.outcomes.pop(0) if self.outcomes else f"ack-{len(self.sent)}"
        if isinstance(outcome, BaseException):
            raise outcome
        return outcome

    async def logout(self):
        self.logged_out = True

    async def shutdown(self):
        self.shut_down = True


class StubConnection:
    """Connection manager stand-in exposing only what the dispatcher uses."""

    def __init__(self, ready: bool = True):
        self._ready = asyncio.Event()
        if ready:
            self._ready.set()
        self.touched = 0

    @property
    def ready(self) -> bool:
        return self._ready.is_set()

    def set_ready(self, value: bool) -> None:
        if value:
            self._ready.set()
        else:
            self._ready.clear()

    async def wait_ready(self) -> None:
        await self._ready.wait()

    def touch(self) -> None:
        self.touched += 1


class FakeClock:
    def __init__(self, now: float = 1000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now


class RecordingSleep:
    """Replacement for ``asyncio.sleep`` that records delays and advances a clock."""

    def __init__(self, clock: FakeClock | None = None):
        self.calls: List[float] = []
        self.clock = clock

    async def __call__(self, delay: float) -> None:
        self.calls.append(delay)
        if self.clock is not None:
            self.clock.now += delay
        await asyncio.sleep(0)


class ScriptedRandom:
    """``random.Random`` stand-in returning scripted ``uniform`` values."""

    def __init__(self, *values: float):
        self.values = list(values)
        self.calls: List[tuple] = []

    def uniform(self, a: float, b: float) -> float:
        self.calls.append((a, b))
        if len(self.values) > 1:
            return self.values.pop(0)
        return self.values[0]


def drain(queue: asyncio.Queue) -> list:
    """Return every item currently buffered in ``queue``."""
    items = []
    while not queue.empty():
        items.append(queue.get_nowait())
    return items


async def wait_until(predicate, timeout: float = 2.0) -> None:
    """Yield to the loop until ``predicate()`` holds."""
    async with asyncio.timeout(timeout):
        while not predicate():
            await asyncio.sleep(0.001)


