"""Provider 抽象接口。

RelayOrchestrator 不直接依赖具体厂商的 HTTP 细节，而是依赖此协议：

- 每个厂商实现一个 StreamingProvider（如 DeepSeekClient）。
- 负责：校验凭据、把 ChatRequest 转成上游请求，并以流模式发出，
  返回尚未读取响应体的 httpx.Response。

响应体如何读取、分段、取消，由 streaming 包统一处理。
"""

from typing import List, Protocol

import httpx

from stream_relay.domain.models import ChatRequest


class StreamingProvider(Protocol):
    """流式 Provider 客户端协议。"""

    name: str

    def ensure_configured(self) -> None:
        """凭据缺失时抛出 ConfigurationError。"""

        ...

    def http_client(self) -> httpx.AsyncClient:
        ...

    async def open_stream(self, client: httpx.AsyncClient, req: ChatRequest) -> httpx.Response:
        ...

    async def describe_rejection(self, resp: httpx.Response) -> str:
        """从非 2xx 响应中尽力提取错误信息。"""

        ...

    def list_models(self) -> List[str]:
        ...
