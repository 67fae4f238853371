"""流式中继编排器。

一次中继（RelayInvocation）的生命周期：

    IDLE → VALIDATING → AWAITING_UPSTREAM → STREAMING → DRAINING → TERMINAL

生产者任务负责请求上游、读取字节流、分段，并把 SegmentEvent 放入有界通道；
传输层通过 `async for` 从通道取出事件。所有失败都在这里被捕获并转换为
一条诊断事件（取消除外，取消只是让事件序列结束），每次中继恰好记录一个
RelayOutcome。
"""

import asyncio
import logging
from typing import Any, AsyncIterator, Iterable, List, Optional
from uuid import uuid4

import httpx

from stream_relay.config.settings import settings
from stream_relay.domain.exceptions import (
    BusinessError,
    ConfigurationError,
    RelayCancelled,
    UpstreamRejection,
    UpstreamStreamFailure,
    ValidationError,
)
from stream_relay.domain.models import (
    ChatMessage,
    ChatRequest,
    RelayOutcome,
    RelayState,
    SegmentEvent,
)
from stream_relay.infrastructure.logging.logger import logger
from stream_relay.providers import create_provider
from stream_relay.providers.base import StreamingProvider
from stream_relay.streaming.cancellation import CancellationToken
from stream_relay.streaming.framing import SSEContentExtractor
from stream_relay.streaming.reader import UpstreamStreamReader
from stream_relay.streaming.segmenter import Segmenter

# 通道结束标记
_END = object()


class RelayInvocation:
    """单次中继的句柄：可异步迭代的 SegmentEvent 序列，只能迭代一次。

    也可作为异步上下文管理器使用，退出时若仍在进行则触发取消并等待生产者结束。
    """

    def __init__(
        self,
        orchestrator: "RelayOrchestrator",
        messages: Iterable[Any],
        system_directive: Optional[Any],
        token: CancellationToken,
        channel_size: int,
    ):
        self.relay_id = f"rl-{uuid4().hex}"
        self.token = token
        self.messages = messages
        self.system_directive = system_directive
        self.state = RelayState.IDLE
        self.outcome: Optional[RelayOutcome] = None
        self.error_message: Optional[str] = None
        self._orchestrator = orchestrator
        self._channel: asyncio.Queue = asyncio.Queue(maxsize=channel_size)
        self._producer: Optional[asyncio.Task] = None
        self._consumed = False
        self._drained = False

    def _producer_running(self) -> bool:
        # 收到结束标记后生产者只剩收尾，不再需要取消
        return not self._drained and self._producer is not None and not self._producer.done()

    def start(self) -> "RelayInvocation":
        if self._producer is None:
            self._producer = asyncio.create_task(self._orchestrator._produce(self))
        return self

    async def cancel(self, reason: str = "client_cancel") -> None:
        """客户端断开/取消订阅。可重复调用。"""

        self.token.cancel(reason)
        await self.join()

    async def join(self) -> None:
        if self._producer is not None:
            await asyncio.wait({self._producer})

    def __aiter__(self) -> AsyncIterator[SegmentEvent]:
        return self.events()

    async def events(self) -> AsyncIterator[SegmentEvent]:
        if self._consumed:
            raise RuntimeError("RelayInvocation can only be iterated once")
        self._consumed = True
        self.start()
        try:
            while True:
                try:
                    item = await self.token.guard(self._channel.get())
                except RelayCancelled:
                    return
                if item is _END:
                    self._drained = True
                    return
                if self.token.cancelled:
                    return
                yield item
        finally:
            if self._producer_running():
                self.token.cancel("consumer_closed")
            await self.join()

    async def __aenter__(self) -> "RelayInvocation":
        return self.start()

    async def __aexit__(self, *exc) -> bool:
        if self._producer_running():
            await self.cancel("context_exit")
        else:
            await self.join()
        return False

    # ---- 生产者侧 ----

    def _transition(self, state: RelayState) -> None:
        self.state = state
        logger.info(
            "Relay state changed",
            extra={"extra": {"relay_id": self.relay_id, "state": state.value}},
        )

    def _finish(self, outcome: RelayOutcome) -> None:
        if self.outcome is not None:
            raise RuntimeError(f"relay {self.relay_id} already finished with {self.outcome}")
        self.outcome = outcome
        self._transition(RelayState.TERMINAL)
        level = logging.INFO if outcome in (RelayOutcome.COMPLETED, RelayOutcome.CANCELLED) else logging.WARNING
        logger.log(
            level,
            "Relay finished",
            extra={"extra": {
                "relay_id": self.relay_id,
                "outcome": outcome.value,
                "error": self.error_message,
                "cancel_reason": self.token.reason,
            }},
        )

    async def _push(self, event: SegmentEvent) -> None:
        await self.token.guard(self._channel.put(event))

    async def _close_channel(self) -> None:
        if self.token.cancelled:
            return
        try:
            await self.token.guard(self._channel.put(_END))
        except RelayCancelled:
            # 消费者已离开，通道无需再关闭
            return


class RelayOrchestrator:
    """驱动 Provider → Reader → Segmenter → 输出通道 的整条流水线。"""

    def __init__(self, provider: Optional[StreamingProvider] = None, cfg=settings):
        self._settings = cfg
        self._provider = provider or create_provider()

    @property
    def provider(self) -> StreamingProvider:
        return self._provider

    def start(
        self,
        messages: Iterable[Any],
        system_directive: Optional[Any] = None,
        token: Optional[CancellationToken] = None,
    ) -> RelayInvocation:
        """创建并启动一次中继，必须在事件循环中调用。"""

        if system_directive is None and self._settings.system_prompt:
            system_directive = ChatMessage(role="system", content=self._settings.system_prompt)
        invocation = RelayInvocation(
            self,
            messages,
            system_directive,
            token or CancellationToken(),
            channel_size=self._settings.channel_size,
        )
        return invocation.start()

    async def _produce(self, inv: RelayInvocation) -> None:
        token = inv.token
        token.arm_timeout(self._settings.relay_timeout)
        outcome = RelayOutcome.CANCELLED
        try:
            outcome = await self._run(inv)
        except RelayCancelled:
            outcome = RelayOutcome.CANCELLED
        except ValidationError as exc:
            outcome = await self._fail(inv, RelayOutcome.REJECTED, exc, f"错误：{exc.message}")
        except ConfigurationError as exc:
            outcome = await self._fail(inv, RelayOutcome.REJECTED, exc, f"配置错误：{exc.message}")
        except UpstreamRejection as exc:
            text = f"API错误: {exc.http_status} - {exc.message}"
            outcome = await self._fail(inv, RelayOutcome.UPSTREAM_ERROR, exc, text)
        except asyncio.CancelledError:
            token.cancel("task_cancelled")
            outcome = RelayOutcome.CANCELLED
            raise
        except Exception as exc:
            logger.exception(
                "Relay stream failed",
                extra={"extra": {"relay_id": inv.relay_id, "error": str(exc)}},
            )
            message = exc.message if isinstance(exc, BusinessError) else str(exc)
            text = f"服务错误: {message or '未知错误'}"
            outcome = await self._fail(inv, RelayOutcome.UPSTREAM_ERROR, exc, text)
        finally:
            token.disarm_timeout()
            inv._finish(outcome)
            await inv._close_channel()

    async def _run(self, inv: RelayInvocation) -> RelayOutcome:
        token = inv.token

        inv._transition(RelayState.VALIDATING)
        request = ChatRequest.from_input(inv.messages, inv.system_directive)
        self._provider.ensure_configured()
        token.raise_if_cancelled()

        inv._transition(RelayState.AWAITING_UPSTREAM)
        async with self._provider.http_client() as client:
            try:
                response = await token.guard(self._provider.open_stream(client, request))
            except httpx.HTTPError as exc:
                raise UpstreamStreamFailure(
                    code="UPSTREAM_CONNECT_FAILED", message=str(exc) or type(exc).__name__
                ) from exc
            reader = UpstreamStreamReader(response, token)

            if not response.is_success:
                try:
                    message = await token.guard(self._provider.describe_rejection(response))
                finally:
                    await reader.release()
                raise UpstreamRejection(
                    code="UPSTREAM_REJECTED",
                    message=message,
                    http_status=response.status_code,
                )

            inv._transition(RelayState.STREAMING)
            segmenter = Segmenter()
            extractor = SSEContentExtractor() if self._settings.upstream_framing == "sse" else None

            async def on_fragment(text: str) -> None:
                if extractor is not None:
                    text = extractor.push(text)
                for segment in segmenter.push(text):
                    await inv._push(SegmentEvent(message=segment))

            try:
                await reader.run(on_fragment)
            except httpx.HTTPError as exc:
                raise UpstreamStreamFailure(
                    code="UPSTREAM_STREAM_FAILED", message=str(exc) or type(exc).__name__
                ) from exc

            inv._transition(RelayState.DRAINING)
            tail: List[str] = []
            if extractor is not None:
                tail.extend(segmenter.push(extractor.flush()))
            rest = segmenter.flush()
            if rest:
                tail.append(rest)
            for segment in tail:
                await inv._push(SegmentEvent(message=segment))
        return RelayOutcome.COMPLETED

    async def _fail(
        self,
        inv: RelayInvocation,
        outcome: RelayOutcome,
        exc: Exception,
        text: str,
    ) -> RelayOutcome:
        """推送一条诊断事件；若此时已被取消则不推送，终态记为 CANCELLED。"""

        inv.error_message = text
        logger.warning(
            "Relay diagnostic",
            extra={"extra": {
                "relay_id": inv.relay_id,
                "code": getattr(exc, "code", type(exc).__name__),
                "status": getattr(exc, "http_status", None),
            }},
        )
        try:
            await inv._push(SegmentEvent(message=text, diagnostic=True))
        except RelayCancelled:
            return RelayOutcome.CANCELLED
        return outcome
