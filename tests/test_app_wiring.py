"""Unit tests for api/main.py wiring: middleware order and the sweep task."""

import asyncio
from types import SimpleNamespace

import pytest
from fastapi.middleware.cors import CORSMiddleware
from slowapi.middleware import SlowAPIMiddleware

from api.main import _sweep_loop, app
from cache.store import MemoryStore


def test_cors_wraps_rate_limiter():
    # user_middleware is ordered outermost first.
    classes = [m.cls for m in app.user_middleware]
    assert classes.index(CORSMiddleware) < classes.index(SlowAPIMiddleware)


class FlakySessions:
    """sweep_expired() fails on its first call, then succeeds."""

    def __init__(self) -> None:
        self.calls = 0

    def sweep_expired(self) -> int:
        self.calls += 1
        if self.calls == 1:
            raise RuntimeError("registry unavailable")
        return 0


def test_sweep_loop_survives_a_failing_pass():
    sessions = FlakySessions()
    app = SimpleNamespace(
        state=SimpleNamespace(sessions=sessions, token_store=MemoryStore(), content_type_cache=MemoryStore())
    )

    async def run() -> bool:
        task = asyncio.create_task(_sweep_loop(app, 0))
        for _ in range(100):
            await asyncio.sleep(0)
            if sessions.calls >= 3:
                break
        still_running = not task.done()
        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task
        return still_running

    assert asyncio.run(run()) is True
    assert sessions.calls >= 3
