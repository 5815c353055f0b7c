"""Tests for ezkonnect.observability.logging."""

from __future__ import annotations

import asyncio
import json
from collections.abc import Iterator

import pytest
import structlog

from ezkonnect.observability.logging import get_logger, request_context, setup_logging


@pytest.fixture(autouse=True)
def _reset_structlog() -> Iterator[None]:
    yield
    structlog.contextvars.clear_contextvars()
    structlog.reset_defaults()


def _lines(capsys: pytest.CaptureFixture[str]) -> list[dict[str, object]]:
    return [json.loads(line) for line in capsys.readouterr().err.splitlines() if line.strip()]


class TestSetupLogging:
    def test_json_lines_carry_component_and_service(self, capsys: pytest.CaptureFixture[str]) -> None:
        setup_logging("info")
        get_logger("api").info("state_listed", resources=2)

        (line,) = _lines(capsys)
        assert line["event"] == "state_listed"
        assert line["component"] == "api"
        assert line["service"] == "ezkonnect"
        assert line["level"] == "info"
        assert line["resources"] == 2

    def test_none_fields_are_dropped(self, capsys: pytest.CaptureFixture[str]) -> None:
        setup_logging("info")
        get_logger("annotate").info("workload_annotated", log_type=None, service_name="checkout")

        (line,) = _lines(capsys)
        assert "log_type" not in line
        assert line["service_name"] == "checkout"

    def test_level_filters_lower_levels(self, capsys: pytest.CaptureFixture[str]) -> None:
        setup_logging("warning")
        get_logger("watcher").info("watch_signal")

        assert _lines(capsys) == []


class TestRequestContext:
    def test_fields_bound_only_inside_block(self, capsys: pytest.CaptureFixture[str]) -> None:
        setup_logging("info")
        log = get_logger("api")

        with request_context(name="checkout", namespace="shop"):
            log.info("inside")
        log.info("outside")

        inside, outside = _lines(capsys)
        assert inside["name"] == "checkout"
        assert inside["namespace"] == "shop"
        assert "name" not in outside

    async def test_tasks_started_inside_inherit_fields(self, capsys: pytest.CaptureFixture[str]) -> None:
        setup_logging("info")
        log = get_logger("watcher.custom_resource")

        async def _watch() -> None:
            await asyncio.sleep(0)
            log.info("watch_signal")

        with request_context(name="checkout", controller_kind="deployment"):
            task = asyncio.create_task(_watch())
        await task

        (line,) = _lines(capsys)
        assert line["name"] == "checkout"
        assert line["controller_kind"] == "deployment"
