"""
请求协调层
保证同一缓存键在任意时刻至多只有一个上游调用在执行（single-flight）。

首个调用方创建 in-flight 记录并启动生产者任务，后来者直接订阅同一任务，
所有订阅者拿到完全相同的结果（包括失败）。协调层本身从不重试、从不缓存失败。

生产者在独立任务中运行，调用方通过 asyncio.shield 等待：
单个调用方超时或被取消只会让它自己退出订阅，不影响共享的上游调用。
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Awaitable, Callable, Dict, Optional

from searchinvest.layers.upstream import Failure, FailureKind, UpstreamResult

logger = logging.getLogger(__name__)

Producer = Callable[[], Awaitable[UpstreamResult]]


@dataclass
class InFlightRequest:
    key: str
    task: "asyncio.Task[UpstreamResult]"
    subscribers: int = 0


class RequestCoordinator:
    """按缓存键合并并发请求"""

    def __init__(self, wait_timeout: Optional[float] = None):
        self._wait_timeout = wait_timeout
        self._in_flight: Dict[str, InFlightRequest] = {}

    def in_flight(self, key: str) -> bool:
        return key in self._in_flight

    def stats(self) -> Dict[str, int]:
        """当前 in-flight 键及其订阅者数量"""
        return {key: req.subscribers for key, req in self._in_flight.items()}

    async def fetch_once(
        self,
        key: str,
        producer: Producer,
        timeout: Optional[float] = None,
    ) -> UpstreamResult:
        """
        获取 key 对应的结果；同一 key 的并发调用只触发一次 producer()

        Args:
            key: 缓存键
            producer: 无参协程函数，返回 Success / Failure
            timeout: 本调用方最长等待秒数，None 时使用构造参数

        Returns:
            producer 的结果；等待超时时返回 Failure(Transient)
        """
        # 查找与登记之间没有 await，事件循环内天然互斥
        request = self._in_flight.get(key)
        if request is None:
            task = asyncio.ensure_future(self._run(key, producer))
            request = InFlightRequest(key=key, task=task)
            self._in_flight[key] = request
            logger.debug(f"发起上游请求: {key}")
        else:
            logger.debug(f"合并到进行中的请求: {key}（已有 {request.subscribers} 个订阅者）")

        request.subscribers += 1
        wait = self._wait_timeout if timeout is None else timeout
        try:
            if wait is None:
                return await asyncio.shield(request.task)
            return await asyncio.wait_for(asyncio.shield(request.task), wait)
        except asyncio.TimeoutError:
            logger.warning(f"等待 in-flight 请求超时（{wait}s），调用方退出订阅: {key}")
            return Failure(FailureKind.TRANSIENT, f"等待上游结果超时: {key}")
        finally:
            request.subscribers -= 1

    async def _run(self, key: str, producer: Producer) -> UpstreamResult:
        try:
            return await producer()
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            logger.error(f"生产者抛出未预期异常（按 Unknown 处理）: {key}: {exc}", exc_info=True)
            return Failure(FailureKind.UNKNOWN, f"{type(exc).__name__}: {exc}")
        finally:
            # 先移除记录再唤醒订阅者，之后到达的调用方会发起新请求
            current = self._in_flight.get(key)
            if current is not None and current.task is asyncio.current_task():
                del self._in_flight[key]
            logger.debug(f"上游请求结束: {key}")
