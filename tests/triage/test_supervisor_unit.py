"""Unit tests for TriageSupervisor background task handling."""

import asyncio

from structlog.testing import capture_logs

from src.triage.logs import current_correlation_id
from src.triage.state import TriageResult, TriageStage
from src.triage.supervisor import TriageSupervisor


def run_async(coro):
    return asyncio.run(coro)


def _events(logs, name):
    return [entry for entry in logs if entry["event"] == name]


def test_finished_task_is_logged_and_released():
    async def _go():
        supervisor = TriageSupervisor()

        async def work():
            return TriageResult(success=True, final_stage=TriageStage.COMPLETED)

        supervisor.submit(work, correlation_id="cid-ok", issue_number=42)
        assert supervisor.pending == 1
        await supervisor.drain()
        return supervisor

    with capture_logs() as logs:
        supervisor = run_async(_go())

    assert supervisor.pending == 0
    finished = _events(logs, "background_task_finished")
    assert len(finished) == 1
    assert finished[0]["correlation_id"] == "cid-ok"
    assert finished[0]["success"] is True


def test_failed_task_exception_is_observed():
    async def _go():
        supervisor = TriageSupervisor()

        async def work():
            raise RuntimeError("escaped")

        task = supervisor.submit(work, correlation_id="cid-bad", issue_number=7)
        await supervisor.drain()
        return task

    with capture_logs() as logs:
        task = run_async(_go())

    assert isinstance(task.exception(), RuntimeError)
    failed = _events(logs, "background_task_failed")
    assert failed[0]["error"] == "escaped"
    assert failed[0]["error_type"] == "RuntimeError"
    assert failed[0]["issue_number"] == 7


def test_work_runs_with_correlation_id_bound():
    seen = []

    async def _go():
        supervisor = TriageSupervisor()

        async def work():
            seen.append(current_correlation_id())

        supervisor.submit(work, correlation_id="cid-bound")
        await supervisor.drain()

    run_async(_go())

    assert seen == ["cid-bound"]


def test_drain_timeout_cancels_outstanding_tasks():
    async def _go():
        supervisor = TriageSupervisor()

        async def work():
            await asyncio.sleep(10)

        task = supervisor.submit(work, correlation_id="cid-slow")
        await supervisor.drain(timeout=0.01)
        return supervisor, task

    with capture_logs() as logs:
        supervisor, task = run_async(_go())

    assert task.cancelled()
    assert supervisor.pending == 0
    assert _events(logs, "background_task_cancelled")


def test_drain_with_nothing_pending():
    run_async(TriageSupervisor().drain())
