from __future__ import annotations

import json
import logging
import sys

from clinicflow.core.logging import JsonFormatter, request_id_ctx, tenant_id_ctx, user_id_ctx
from clinicflow.core.middleware import pick_request_id


def _record(msg="hello %s", args=("world",), exc_info=None, **extra):
    record = logging.LogRecord("clinicflow.test", logging.INFO, __file__, 1, msg, args, exc_info)
    record.__dict__.update(extra)
    return record


def test_formatter_includes_context_and_extra():
    tokens = [request_id_ctx.set("rid-1"), tenant_id_ctx.set("clinic-1"), user_id_ctx.set("user-1")]
    try:
        line = JsonFormatter().format(_record(patient_id="p-1", request_id="ignored"))
    finally:
        for var, token in zip((request_id_ctx, tenant_id_ctx, user_id_ctx), tokens):
            var.reset(token)

    payload = json.loads(line)
    assert payload["message"] == "hello world"
    assert payload["level"] == "INFO"
    assert payload["logger"] == "clinicflow.test"
    assert payload["timestamp"].endswith("Z")
    assert (payload["request_id"], payload["tenant_id"], payload["user_id"]) == ("rid-1", "clinic-1", "user-1")
    assert payload["patient_id"] == "p-1"


def test_formatter_reduces_exceptions():
    try:
        raise RuntimeError("boom")
    except RuntimeError:
        record = _record(exc_info=sys.exc_info())

    payload = json.loads(JsonFormatter().format(record))

    assert payload["exc"] == {"type": "RuntimeError", "detail": "boom"}
    assert "Traceback" not in json.dumps(payload)


def test_pick_request_id():
    assert pick_request_id("abc-123") == "abc-123"
    assert len(pick_request_id(None)) == 36
    assert len(pick_request_id("bad id with spaces")) == 36
    assert len(pick_request_id("x" * 200)) == 36
