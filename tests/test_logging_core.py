import logging
from types import SimpleNamespace

from fundee_backend.app.core.logging_core import (
    ContextFilter,
    RedactingFilter,
    clear_request_context,
    draw_context,
    set_request_context,
)


def _record(msg="hello", args=()):
    return logging.LogRecord("fundee.test", logging.INFO, __file__, 1, msg, args, None)


def test_context_filter_fills_dashes_without_context():
    clear_request_context()
    record = _record()
    assert ContextFilter(env="test", service="Fundee Cash").filter(record)
    assert (record.env, record.svc) == ("test", "Fundee Cash")
    assert (record.rid, record.idk, record.uid, record.did) == ("-", "-", "-", "-")


def test_draw_context_is_scoped():
    flt = ContextFilter(env="test", service="svc")
    set_request_context(request_id="r1", user_id=7)
    try:
        with draw_context(42):
            inside = _record()
            flt.filter(inside)
        outside = _record()
        flt.filter(outside)
    finally:
        clear_request_context()

    assert (inside.rid, inside.uid, inside.did) == ("r1", "7", "42")
    assert outside.did == "-"


def test_explicit_extra_wins_over_context():
    record = _record()
    record.did = "override"
    with draw_context(1):
        ContextFilter(env="test", service="svc").filter(record)
    assert record.did == "override"


def test_redacting_filter_masks_secrets_in_message_and_args():
    settings = SimpleNamespace(DATABASE_URL="postgresql://u:pw@db/x", NOTIFY_WEBHOOK_TOKEN="tok-123")
    record = _record("connect %s with %s", ("postgresql://u:pw@db/x", "tok-123"))
    record.msg = "dsn=postgresql://u:pw@db/x " + record.msg

    RedactingFilter(settings).filter(record)

    assert record.getMessage() == "dsn=**** connect **** with ****"


def test_redacting_filter_without_secrets_is_noop():
    record = _record("plain %s", (5,))
    RedactingFilter(SimpleNamespace(DATABASE_URL=None, NOTIFY_WEBHOOK_TOKEN="")).filter(record)
    assert record.getMessage() == "plain 5"
