# NG-HEADER: Nombre de archivo: test_ctx_logger.py
# NG-HEADER: Ubicación: tests/test_ctx_logger.py
# NG-HEADER: Descripción: Tests de eventos estructurados y del decorador log_step.
# NG-HEADER: Lineamientos: Ver AGENTS.md
import json
import logging

import pytest

from core.config import settings
from services.logging.ctx_logger import log_event, log_step


def test_log_event_appends_ndjson(tmp_path, monkeypatch):
    target = tmp_path / "events" / "events.ndjson"
    monkeypatch.setattr(settings, "events_ndjson_path", str(target))

    log_event("replenishment:recorded", correlation_id="cid1", user_id=3, product_id=9, quantity=5)

    (line,) = target.read_text(encoding="utf-8").splitlines()
    obj = json.loads(line)
    assert obj["step"] == "replenishment:recorded"
    assert obj["correlation_id"] == "cid1"
    assert obj["user_id"] == 3
    assert obj["quantity"] == 5


@pytest.mark.asyncio
async def test_log_step_records_start_end_and_error(caplog):
    @log_step("demo")
    async def ok(*, user_id, correlation_id=None):
        return user_id * 2

    @log_step("demo-fail")
    async def boom(*, user_id, correlation_id=None):
        raise RuntimeError("kaput")

    with caplog.at_level(logging.INFO, logger="gestio.events"):
        assert await ok(user_id=4, correlation_id="c-1") == 8
        with pytest.raises(RuntimeError):
            await boom(user_id=4)

    steps = [json.loads(r.getMessage())["step"] for r in caplog.records if r.name == "gestio.events"]
    assert steps == ["demo:start", "demo:end", "demo-fail:start", "demo-fail:error"]
    errors = [r for r in caplog.records if r.levelno == logging.ERROR]
    assert "kaput" in errors[0].getMessage()
