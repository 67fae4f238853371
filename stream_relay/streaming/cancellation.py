"""取消协调。

每次中继持有一个 CancellationToken：上游请求、每次读取、每次向输出通道
推送都经由 guard() 执行。令牌触发后：

- 正在进行的挂起操作会被取消，guard() 抛出 RelayCancelled；
- 之后任何 guard() 调用都会立即抛出 RelayCancelled，不再读取上游，也不再推送分段。

cancel() 是幂等的，多次调用与一次调用效果相同。
"""

import asyncio
from typing import Awaitable, Optional, TypeVar

from stream_relay.domain.exceptions import RelayCancelled
from stream_relay.infrastructure.logging.logger import logger

T = TypeVar("T")


class CancellationToken:
    def __init__(self) -> None:
        self._fired = asyncio.Event()
        self._reason: Optional[str] = None
        self._timer: Optional[asyncio.TimerHandle] = None

    @property
    def cancelled(self) -> bool:
        return self._fired.is_set()

    @property
    def reason(self) -> Optional[str]:
        return self._reason

    def cancel(self, reason: str = "cancelled") -> bool:
        """触发取消。返回本次调用是否真正触发了信号。"""

        if self._fired.is_set():
            return False
        self._reason = reason
        self._fired.set()
        self.disarm_timeout()
        logger.info("Relay cancellation fired", extra={"extra": {"reason": reason}})
        return True

    def raise_if_cancelled(self) -> None:
        if self._fired.is_set():
            raise RelayCancelled(self._reason or "cancelled")

    async def wait(self) -> None:
        await self._fired.wait()

    def arm_timeout(self, seconds: Optional[float]) -> None:
        """到时后以 "timeout" 为原因触发同一个取消信号。"""

        if seconds is None or self.cancelled:
            return
        self.disarm_timeout()
        loop = asyncio.get_running_loop()
        self._timer = loop.call_later(seconds, self.cancel, "timeout")

    def disarm_timeout(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

    async def guard(self, awaitable: Awaitable[T]) -> T:
        """执行一个挂起点；令牌先触发时取消该操作并抛出 RelayCancelled。

        已触发的令牌不会再启动任何操作。操作与取消同时完成时，
        已完成的结果照常返回（当前单元允许做完），由下一个挂起点观察到取消。
        """

        if self._fired.is_set():
            if asyncio.iscoroutine(awaitable):
                awaitable.close()
            raise RelayCancelled(self._reason or "cancelled")
        work = asyncio.ensure_future(awaitable)
        stop = asyncio.ensure_future(self._fired.wait())
        try:
            await asyncio.wait({work, stop}, return_when=asyncio.FIRST_COMPLETED)
        finally:
            stop.cancel()
            if not work.done():
                work.cancel()
                await asyncio.gather(work, return_exceptions=True)
        if work.cancelled() or (self.cancelled and work.exception() is not None):
            raise RelayCancelled(self._reason or "cancelled")
        return work.result()
