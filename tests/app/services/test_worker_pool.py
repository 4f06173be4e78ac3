"""Testes do SyncWorkerPool (fila limitada, coalescência e drenagem)."""

from __future__ import annotations

import asyncio

import pytest

from app.services.worker_pool import SyncWorkerPool


def test_size_must_be_positive() -> None:
    with pytest.raises(ValueError):
        SyncWorkerPool(size=0)


@pytest.mark.asyncio
async def test_jobs_run_and_pool_drains_on_stop() -> None:
    pool = SyncWorkerPool(size=2, max_queue=10)
    pool.start()
    done: list[str] = []

    async def job(name: str) -> None:
        await asyncio.sleep(0)
        done.append(name)

    assert pool.submit("a", lambda: job("a"))
    assert pool.submit("b", lambda: job("b"))
    await pool.stop()

    assert sorted(done) == ["a", "b"]
    assert pool.running is False


@pytest.mark.asyncio
async def test_full_queue_rejects_job() -> None:
    """Sem workers iniciados a fila enche e o excedente é recusado."""
    pool = SyncWorkerPool(size=1, max_queue=1)

    async def job() -> None:
        return None

    assert pool.submit("connection:1", job) is True
    assert pool.submit("connection:2", job) is False
    assert pool.queue_size == 1


@pytest.mark.asyncio
async def test_pending_key_is_coalesced() -> None:
    pool = SyncWorkerPool(size=1, max_queue=5)
    runs: list[int] = []

    async def job() -> None:
        runs.append(1)

    pool.submit("connection:1", job)
    pool.submit("connection:1", job)
    assert pool.queue_size == 1

    pool.start()
    await pool.join()
    await pool.stop()

    assert runs == [1]


@pytest.mark.asyncio
async def test_failing_job_does_not_kill_worker() -> None:
    pool = SyncWorkerPool(size=1, max_queue=5)
    pool.start()
    done: list[str] = []

    async def boom() -> None:
        raise RuntimeError("falhou")

    async def ok() -> None:
        done.append("ok")

    pool.submit("connection:1", boom)
    pool.submit("connection:2", ok)
    await pool.join()
    await pool.stop()

    assert done == ["ok"]
