from __future__ import annotations

import asyncio

import pytest

from tweet_harvester.errors import QueueClosedError
from tweet_harvester.infra import SerialTaskQueue


def test_jobs_run_one_at_a_time_in_submission_order() -> None:
    events: list[str] = []

    def job(name: str, delay: float):
        async def _run() -> str:
            events.append(f"start:{name}")
            await asyncio.sleep(delay)
            events.append(f"end:{name}")
            return name

        return _run

    async def scenario() -> list[str]:
        queue = SerialTaskQueue("test")
        futures = [
            queue.submit(job("slow", 0.03)),
            queue.submit(job("fast", 0.0)),
            queue.submit(job("last", 0.01)),
        ]
        return await asyncio.gather(*futures)

    assert asyncio.run(scenario()) == ["slow", "fast", "last"]
    assert events == [
        "start:slow",
        "end:slow",
        "start:fast",
        "end:fast",
        "start:last",
        "end:last",
    ]


def test_failed_job_does_not_stop_the_queue() -> None:
    async def boom() -> None:
        raise ValueError("bad batch")

    async def ok() -> str:
        return "ok"

    async def scenario():
        queue = SerialTaskQueue("test")
        failing = queue.submit(boom)
        succeeding = queue.submit(ok)
        with pytest.raises(ValueError):
            await failing
        return await succeeding

    assert asyncio.run(scenario()) == "ok"


def test_queue_is_not_reentrant() -> None:
    async def scenario() -> None:
        queue = SerialTaskQueue("test")

        async def nested() -> None:
            queue.submit(lambda: asyncio.sleep(0))

        await queue.submit(nested)

    with pytest.raises(RuntimeError, match="not re-entrant"):
        asyncio.run(scenario())


def test_closed_queue_rejects_jobs_after_draining() -> None:
    finished: list[int] = []

    async def work(n: int) -> None:
        await asyncio.sleep(0)
        finished.append(n)

    async def scenario() -> None:
        queue = SerialTaskQueue("test")
        queue.submit(lambda: work(1))
        queue.submit(lambda: work(2))
        await queue.close()
        assert queue.closed is True
        with pytest.raises(QueueClosedError):
            queue.submit(lambda: work(3))

    asyncio.run(scenario())
    assert finished == [1, 2]


def test_length_reports_waiting_jobs() -> None:
    async def scenario() -> tuple[int, int, bool]:
        queue = SerialTaskQueue("test")
        gate = asyncio.Event()
        queue.submit(gate.wait)
        queue.submit(lambda: asyncio.sleep(0))
        await asyncio.sleep(0)
        waiting, processing = len(queue), queue.processing
        gate.set()
        await queue.join()
        return waiting, len(queue), processing

    assert asyncio.run(scenario()) == (1, 0, True)
