"""Tests for the bounded inference WorkerPool."""

from __future__ import annotations

import threading

import pytest
from conftest import wait_until

from mgauss.worker_pool import WorkerPool


class TestWorkerPool:
    def test_try_submit_runs_task(self) -> None:
        pool = WorkerPool(max_workers=1, thread_name_prefix="test")
        try:
            future = pool.try_submit(lambda x: x * 2, 21)
            assert future is not None
            assert future.result(timeout=2.0) == 42
        finally:
            pool.shutdown()

    def test_saturated_pool_skips_instead_of_queueing(self) -> None:
        gate = threading.Event()
        pool = WorkerPool(max_workers=1, max_in_flight=1)
        try:
            first = pool.try_submit(gate.wait, 5.0)
            assert first is not None
            assert pool.try_submit(lambda: None) is None
            assert pool.stats()["skipped_tasks"] == 1
            gate.set()
            first.result(timeout=2.0)
        finally:
            gate.set()
            pool.shutdown()

    def test_slot_is_free_once_result_is_visible(self) -> None:
        pool = WorkerPool(max_workers=1, max_in_flight=1)
        try:
            for i in range(50):
                future = pool.try_submit(lambda v=i: v)
                assert future is not None
                assert future.result(timeout=2.0) == i
                assert pool.in_flight == 0
        finally:
            pool.shutdown()

    def test_failures_are_counted_not_raised_into_pool(self) -> None:
        pool = WorkerPool(max_workers=1)
        try:

            def _boom() -> None:
                raise ValueError("boom")

            future = pool.try_submit(_boom)
            with pytest.raises(ValueError):
                future.result(timeout=2.0)
            assert wait_until(lambda: pool.stats()["failed_tasks"] == 1)
            assert pool.in_flight == 0
        finally:
            pool.shutdown()

    def test_stats(self) -> None:
        pool = WorkerPool(max_workers=1, max_in_flight=2)
        try:
            pool.try_submit(lambda: None).result(timeout=2.0)
            stats = pool.stats()
            assert stats["max_workers"] == 1
            assert stats["max_in_flight"] == 2
            assert stats["total_tasks"] == 1
            assert stats["alive"] is True
        finally:
            pool.shutdown()
            assert pool.stats()["alive"] is False

    def test_shutdown_idempotent(self) -> None:
        pool = WorkerPool(max_workers=1)
        pool.shutdown()
        pool.shutdown()  # should not raise

    def test_submit_after_shutdown_raises(self) -> None:
        pool = WorkerPool(max_workers=1)
        pool.shutdown()
        with pytest.raises(RuntimeError):
            pool.try_submit(lambda: None)
