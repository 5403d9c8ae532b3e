"""Unit tests for the request logging context."""

import asyncio
import json
import logging

import pytest
from libs.common.logging import (
    JsonFormatter,
    clear_request_context,
    get_request_id,
    set_request_context,
)


def _record(message: str) -> logging.LogRecord:
    return logging.LogRecord("store", logging.INFO, __file__, 1, message, None, None)


@pytest.mark.unit
def test_request_context_lifecycle():
    clear_request_context()
    assert get_request_id() is None
    assert "request_id" not in json.loads(JsonFormatter().format(_record("idle")))

    request_id = set_request_context(path="/store/products", method="GET")
    line = json.loads(JsonFormatter().format(_record("served")))

    assert get_request_id() == request_id
    assert line["request_id"] == request_id
    assert line["path"] == "/store/products"

    clear_request_context()
    assert get_request_id() is None


@pytest.mark.asyncio
@pytest.mark.unit
async def test_request_context_is_isolated_per_task():
    clear_request_context()

    async def _bind(request_id: str) -> str:
        set_request_context(request_id=request_id)
        await asyncio.sleep(0)
        return get_request_id()

    assert await asyncio.gather(_bind("a"), _bind("b")) == ["a", "b"]
    assert get_request_id() is None
