"""
请求协调层测试
  - 同一键并发调用只触发一次 producer，所有调用方结果一致
  - 失败原样广播给所有订阅者，且不被缓存 / 重试
  - 单个订阅者超时或取消不影响共享请求
  - 不同键互不阻塞
"""

import asyncio

import pytest

from searchinvest.layers.coordinator import RequestCoordinator
from searchinvest.layers.upstream import Failure, FailureKind, Success


class CountingProducer:
    def __init__(self, result, delay: float = 0.05):
        self.result = result
        self.delay = delay
        self.calls = 0

    async def __call__(self):
        self.calls += 1
        await asyncio.sleep(self.delay)
        return self.result


class TestRequestCoordinator:
    @pytest.mark.asyncio
    async def test_concurrent_callers_share_one_call(self):
        coordinator = RequestCoordinator()
        producer = CountingProducer(Success({"price": 1}))
        results = await asyncio.gather(
            *(coordinator.fetch_once("company:AAPL", producer) for _ in range(10))
        )
        assert producer.calls == 1
        assert all(r is results[0] for r in results)
        assert results[0].payload == {"price": 1}

    @pytest.mark.asyncio
    async def test_entry_removed_after_completion(self):
        coordinator = RequestCoordinator()
        producer = CountingProducer(Success(1))
        task = asyncio.ensure_future(coordinator.fetch_once("k", producer))
        await asyncio.sleep(0)
        assert coordinator.in_flight("k")
        assert coordinator.stats() == {"k": 1}
        await task
        assert not coordinator.in_flight("k")
        assert coordinator.stats() == {}

    @pytest.mark.asyncio
    async def test_sequential_calls_fetch_again(self):
        coordinator = RequestCoordinator()
        producer = CountingProducer(Success(1), delay=0)
        await coordinator.fetch_once("k", producer)
        await coordinator.fetch_once("k", producer)
        assert producer.calls == 2

    @pytest.mark.asyncio
    async def test_failure_delivered_to_all_without_retry(self):
        coordinator = RequestCoordinator()
        failure = Failure(FailureKind.RATE_LIMITED, "slow down")
        producer = CountingProducer(failure)
        results = await asyncio.gather(
            *(coordinator.fetch_once("k", producer) for _ in range(4))
        )
        assert producer.calls == 1
        assert all(r == failure for r in results)

        # 失败不被记住，下一次调用重新发起
        await coordinator.fetch_once("k", producer)
        assert producer.calls == 2

    @pytest.mark.asyncio
    async def test_producer_exception_becomes_unknown_failure(self):
        coordinator = RequestCoordinator()

        async def broken():
            await asyncio.sleep(0.01)
            raise RuntimeError("boom")

        results = await asyncio.gather(*(coordinator.fetch_once("k", broken) for _ in range(3)))
        assert all(isinstance(r, Failure) and r.kind is FailureKind.UNKNOWN for r in results)
        assert results[0] is results[1] is results[2]
        assert not coordinator.in_flight("k")

    @pytest.mark.asyncio
    async def test_waiter_timeout_does_not_cancel_producer(self):
        coordinator = RequestCoordinator()
        producer = CountingProducer(Success("done"), delay=0.2)

        patient = asyncio.ensure_future(coordinator.fetch_once("k", producer))
        await asyncio.sleep(0)
        impatient = await coordinator.fetch_once("k", producer, timeout=0.02)

        assert isinstance(impatient, Failure)
        assert impatient.kind is FailureKind.TRANSIENT
        assert (await patient) == Success("done")
        assert producer.calls == 1

    @pytest.mark.asyncio
    async def test_cancelled_subscriber_does_not_affect_others(self):
        coordinator = RequestCoordinator()
        producer = CountingProducer(Success("done"), delay=0.1)

        first = asyncio.ensure_future(coordinator.fetch_once("k", producer))
        second = asyncio.ensure_future(coordinator.fetch_once("k", producer))
        await asyncio.sleep(0.01)
        first.cancel()

        assert (await second) == Success("done")
        with pytest.raises(asyncio.CancelledError):
            await first
        assert producer.calls == 1

    @pytest.mark.asyncio
    async def test_producer_completes_after_all_waiters_leave(self):
        coordinator = RequestCoordinator()
        finished = asyncio.Event()

        async def producer():
            await asyncio.sleep(0.05)
            finished.set()
            return Success(1)

        result = await coordinator.fetch_once("k", producer, timeout=0.01)
        assert isinstance(result, Failure)
        await asyncio.wait_for(finished.wait(), 1)

    @pytest.mark.asyncio
    async def test_different_keys_do_not_block(self):
        coordinator = RequestCoordinator()
        slow = CountingProducer(Success("slow"), delay=0.3)
        fast = CountingProducer(Success("fast"), delay=0)

        slow_task = asyncio.ensure_future(coordinator.fetch_once("slow", slow))
        await asyncio.sleep(0)
        result = await asyncio.wait_for(coordinator.fetch_once("fast", fast), 0.1)
        assert result == Success("fast")
        assert not slow_task.done()
        await slow_task
