# ==============================================================================
#                  © 2025 Dedalus Labs, Inc. and affiliates
#                            Licensed under MIT
#                   github.com/dedalus-labs/climcp/LICENSE
# ==============================================================================

from __future__ import annotations

import logging
import sys

import anyio
from mcp.shared.exceptions import McpError
import pytest

from climcp import types
from climcp.server.notifications import BroadcastSink
from climcp.server.services.logging import LoggingService
from tests.helpers import NotificationRecorder


@pytest.fixture
def service_and_recorder():
    sink = BroadcastSink()
    recorder = NotificationRecorder()
    sink.attach(recorder)
    service = LoggingService(sink, logger_name="climcp.tests.logging")
    yield service, recorder
    service.close()


@pytest.mark.anyio
async def test_threshold_follows_set_level(service_and_recorder) -> None:
    service, recorder = service_and_recorder
    assert service.threshold is None

    await service.set_level("notice")
    assert service.threshold == logging.INFO

    await service.emit("debug", "dropped")
    await service.emit("alert", {"disk": "full"})
    assert [n.root.params.level for n in recorder.notifications] == ["alert"]


@pytest.mark.anyio
async def test_unknown_level_is_invalid_params(service_and_recorder) -> None:
    service, _ = service_and_recorder
    with pytest.raises(McpError) as excinfo:
        await service.set_level("verbose")
    assert excinfo.value.error.code == types.INVALID_PARAMS


@pytest.mark.anyio
async def test_log_records_are_forwarded_with_exceptions(service_and_recorder) -> None:
    service, recorder = service_and_recorder
    await service.set_level("debug")

    try:
        raise ValueError("bad flag")
    except ValueError:
        record = logging.getLogger("climcp.tests.logging.child").makeRecord(
            "climcp.tests.logging.child", logging.ERROR, __file__, 0, "run %s failed", ("deploy",), sys.exc_info()
        )
    await service.handle_log_record(record)

    params = recorder.notifications[0].root.params
    assert params.level == "error"
    assert params.logger == "climcp.tests.logging.child"
    assert params.data["message"] == "run deploy failed"
    assert "ValueError: bad flag" in params.data["exception"]


@pytest.mark.anyio
async def test_close_stops_forwarding(service_and_recorder) -> None:
    service, recorder = service_and_recorder
    await service.set_level("debug")
    service.close()
    logging.getLogger("climcp.tests.logging").warning("after close")
    assert recorder.notifications == []


async def _drain(service: LoggingService) -> None:
    with anyio.fail_after(2):
        while service.pending:
            await anyio.sleep(0.01)


@pytest.mark.anyio
async def test_forwarding_tasks_are_tracked_until_done(service_and_recorder) -> None:
    service, recorder = service_and_recorder
    await service.set_level("info")

    logging.getLogger("climcp.tests.logging").warning("disk at %d%%", 91)
    assert service.pending == 1
    await _drain(service)

    assert service.pending == 0
    assert recorder.notifications[0].root.params.data["message"] == "disk at 91%"


@pytest.mark.anyio
async def test_records_from_worker_threads_are_forwarded(service_and_recorder) -> None:
    service, recorder = service_and_recorder
    await service.set_level("info")

    await anyio.to_thread.run_sync(logging.getLogger("climcp.tests.logging").error, "from a thread")
    with anyio.fail_after(2):
        while not recorder.notifications:
            await anyio.sleep(0.01)

    assert recorder.notifications[0].root.params.data["message"] == "from a thread"


@pytest.mark.anyio
async def test_delivery_failures_are_logged(caplog: pytest.LogCaptureFixture) -> None:
    class FailingSink:
        async def send(self, notification: object) -> None:
            raise RuntimeError("client gone")

    service = LoggingService(FailingSink(), logger_name="climcp.tests.failing")
    await service.set_level("info")
    with caplog.at_level(logging.WARNING, logger="climcp.tests.failing"):
        logging.getLogger("climcp.tests.failing").warning("hello")
        await _drain(service)
    service.close()

    assert service.pending == 0
    assert any(
        record.getMessage() == "Could not forward log record" and record.exc_info for record in caplog.records
    )
