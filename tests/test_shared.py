from sqlalchemy.exc import OperationalError

from app.user import shared
from app.user.shared import safe_db_operation, sanitize_text


def test_sanitize_text():
    assert sanitize_text("<b>10;8</b>") == "&lt;b&gt;10;8&lt;/b&gt;"
    assert sanitize_text(None) == ""
    assert sanitize_text("x" * 10, max_length=4) == "xxxx…"


async def test_safe_db_operation_returns_result():
    async def operation(value):
        return value * 2

    assert await safe_db_operation(operation, 21) == 42


async def test_safe_db_operation_retries_operational_errors(monkeypatch):
    monkeypatch.setattr(shared, "DB_OPERATION_RETRY_DELAY", 0)
    calls = []

    async def flaky():
        calls.append(1)
        if len(calls) < 2:
            raise OperationalError("SELECT 1", {}, Exception("database is locked"))
        return "ok"

    assert await safe_db_operation(flaky) == "ok"
    assert len(calls) == 2


async def test_safe_db_operation_reports_failure():
    async def broken():
        raise RuntimeError("boom")

    assert await safe_db_operation(broken) is False


def test_sliding_window_limiter():
    limiter = shared.SlidingWindowLimiter(limit=2, window=60)
    assert limiter.hit(1, now=0)
    assert limiter.hit(1, now=10)
    assert not limiter.hit(1, now=20)
    assert limiter.hit(2, now=20)
    assert limiter.hit(1, now=60)
    limiter.reset()
    assert limiter.hit(1, now=61)
