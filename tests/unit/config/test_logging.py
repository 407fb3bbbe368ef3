"""JsonFormatter: one JSON object per record with context variables and extra fields."""

import json
import logging

from billing_pipeline.config.logging import JsonFormatter, configure_logging
from billing_pipeline.core.context import consumer_ctx, message_id_ctx, tenant_id_ctx


def _record(msg: str, **extra) -> logging.LogRecord:
    record = logging.LogRecord("billing_pipeline.test", logging.INFO, __file__, 1, msg, None, None)
    for key, value in extra.items():
        setattr(record, key, value)
    return record


def test_record_carries_context_and_extra():
    tokens = [
        tenant_id_ctx.set("tenant-a"),
        message_id_ctx.set("msg-1"),
        consumer_ctx.set("audit-log"),
    ]
    try:
        line = JsonFormatter().format(_record("message_processed", idempotency_key="audit-log:sub-001:msg-1"))
    finally:
        consumer_ctx.reset(tokens[2])
        message_id_ctx.reset(tokens[1])
        tenant_id_ctx.reset(tokens[0])

    data = json.loads(line)
    assert data["message"] == "message_processed"
    assert data["level"] == "INFO"
    assert data["tenant_id"] == "tenant-a"
    assert data["message_id"] == "msg-1"
    assert data["consumer"] == "audit-log"
    assert data["idempotency_key"] == "audit-log:sub-001:msg-1"
    assert "args" not in data and "levelno" not in data


def test_unserializable_extra_falls_back_to_str():
    data = json.loads(JsonFormatter().format(_record("x", when=object)))
    assert "object" in data["when"]


def test_configure_logging_is_idempotent():
    root = logging.getLogger()
    before = list(root.handlers)
    try:
        configure_logging("INFO")
        configure_logging("DEBUG")
        json_handlers = [h for h in root.handlers if isinstance(h.formatter, JsonFormatter)]
        assert len(json_handlers) == 1
        assert root.level == logging.DEBUG
    finally:
        for handler in list(root.handlers):
            if handler not in before:
                root.removeHandler(handler)
