import asyncio
from typing import Callable, Iterable, List, Optional, Union

import httpx
import pytest

from stream_relay.providers.deepseek_client import DeepSeekClient
from stream_relay.streaming.relay import RelayOrchestrator


class SettingsStub:
    deepseek_api_key = "sk-test-0123456789"
    deepseek_base_url = "https://api.deepseek.com/v1"
    default_model = "deepseek-chat"
    temperature = 0.7
    max_tokens = 2000
    system_prompt = "你是一个有用的AI助手"
    http_timeout = 1.0
    relay_timeout = None
    channel_size = 1
    upstream_framing = "raw"
    status_message = "DeepSeek 流式中继服务运行中"
    cors_allow_origins = ["*"]
    cors_allow_methods = ["GET", "POST", "OPTIONS"]
    cors_allow_headers = ["Content-Type", "Authorization", "Accept"]


class ChunkStream(httpx.AsyncByteStream):
    """可观察的上游响应体：记录读取次数与关闭次数，可在末尾抛错或挂起。"""

    def __init__(
        self,
        chunks: Iterable[Union[str, bytes]],
        hang: bool = False,
        error: Optional[Exception] = None,
    ):
        self.chunks = [c.encode("utf-8") if isinstance(c, str) else c for c in chunks]
        self.hang = hang
        self.error = error
        self.reads = 0
        self.closed = 0

    async def __aiter__(self):
        for chunk in self.chunks:
            self.reads += 1
            yield chunk
        if self.error is not None:
            raise self.error
        if self.hang:
            await asyncio.Event().wait()

    async def aclose(self) -> None:
        self.closed += 1


class Upstream:
    """httpx.MockTransport 的处理器，记录收到的请求。"""

    def __init__(self, respond: Callable[[httpx.Request], httpx.Response]):
        self._respond = respond
        self.requests: List[httpx.Request] = []

    async def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        return self._respond(request)


def streaming_upstream(stream: ChunkStream, status_code: int = 200) -> Upstream:
    return Upstream(lambda request: httpx.Response(status_code, stream=stream))


def build_orchestrator(upstream: Upstream, cfg=None) -> RelayOrchestrator:
    cfg = cfg or SettingsStub()
    provider = DeepSeekClient(cfg, transport=httpx.MockTransport(upstream))
    return RelayOrchestrator(provider=provider, cfg=cfg)


async def collect(invocation) -> List[str]:
    return [event.message async for event in invocation]


@pytest.fixture
def settings_stub() -> SettingsStub:
    return SettingsStub()
