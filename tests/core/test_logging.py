from __future__ import annotations

import logging

import pytest

from app.core.logging import (
    RequestContextFilter,
    _ContainerFormatter,
    _JsonFormatter,
    setup_logging,
    user_id_var,
)


@pytest.mark.parametrize(
    ("name", "expected"),
    [("debug", logging.DEBUG), ("warning", logging.WARNING), ("bogus", logging.INFO)],
)
def test_setup_logging_sets_root_level(name: str, expected: int) -> None:
    setup_logging(name)
    assert logging.getLogger().level == expected


def test_single_handler_carries_request_filter() -> None:
    setup_logging("info")
    setup_logging("info")

    handlers = logging.getLogger().handlers
    assert len(handlers) == 1
    assert any(isinstance(f, RequestContextFilter) for f in handlers[0].filters)
    assert isinstance(handlers[0].formatter, _ContainerFormatter)


def test_json_mode_switches_formatter() -> None:
    setup_logging("info", json_format=True)
    assert isinstance(logging.getLogger().handlers[0].formatter, _JsonFormatter)
    setup_logging("info")


@pytest.mark.parametrize("noisy", ["uvicorn", "httpx", "authlib", "sqlalchemy.engine"])
def test_third_party_loggers_stay_at_warning(noisy: str) -> None:
    setup_logging("debug")
    assert logging.getLogger(noisy).level == logging.WARNING

    setup_logging("error")
    assert logging.getLogger(noisy).level == logging.ERROR


def test_explicit_user_id_is_not_overwritten() -> None:
    token = user_id_var.set("from-context")
    try:
        record = logging.LogRecord(
            name="app.services.membership_service",
            level=logging.INFO,
            pathname="membership_service.py",
            lineno=1,
            msg="Member removed",
            args=(),
            exc_info=None,
        )
        record.user_id = "explicit"  # type: ignore[attr-defined]
        RequestContextFilter().filter(record)
    finally:
        user_id_var.reset(token)

    assert record.user_id == "explicit"  # type: ignore[attr-defined]
    assert record.request_id == "-"  # type: ignore[attr-defined]
