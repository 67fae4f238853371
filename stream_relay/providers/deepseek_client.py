"""DeepSeek Provider 适配器。

使用 OpenAI 风格的 chat/completions 端点：
- URL: {base_url}/chat/completions
- 认证: Authorization: Bearer <api_key>

请求体只依赖公共字段：model/messages/temperature/max_tokens/stream。
"""

import json
from typing import Any, Dict, List, Optional

import httpx

from stream_relay.config.settings import settings
from stream_relay.domain.exceptions import ConfigurationError
from stream_relay.domain.models import ChatRequest
from stream_relay.providers.registry import DEEPSEEK_CONFIG, ModelConfig


class DeepSeekClient:
    """DeepSeek 流式 Provider 客户端实现。"""

    name = "deepseek"

    def __init__(self, cfg=settings, transport: Optional[httpx.AsyncBaseTransport] = None):
        self._settings = cfg
        self._transport = transport

    def ensure_configured(self) -> None:
        if not getattr(self._settings, "deepseek_api_key", None):
            raise ConfigurationError(
                code="MISSING_API_KEY",
                message="DEEPSEEK_API_KEY 未设置",
                http_status=500,
            )

    def http_client(self) -> httpx.AsyncClient:
        # 读取不设超时：长回复可能在两个 token 之间停顿很久，总时长由 relay_timeout 控制
        timeout = httpx.Timeout(self._settings.http_timeout, read=None)
        return httpx.AsyncClient(timeout=timeout, trust_env=False, transport=self._transport)

    async def open_stream(self, client: httpx.AsyncClient, req: ChatRequest) -> httpx.Response:
        """以流模式发出请求，返回未读取响应体的 Response，调用方负责 aclose。"""

        self.ensure_configured()
        request = client.build_request(
            "POST",
            f"{self._base_url()}/chat/completions",
            json=self.build_payload(req, stream=True),
            headers={
                "Authorization": f"Bearer {self._settings.deepseek_api_key}",
                "Content-Type": "application/json",
                "Accept": "application/json",
            },
        )
        return await client.send(request, stream=True)

    def list_models(self) -> List[str]:
        return DEEPSEEK_CONFIG.model_names()

    # ---- 辅助方法 ----

    def build_payload(self, req: ChatRequest, stream: bool) -> Dict[str, Any]:
        model_cfg = self._model_config()
        return {
            "model": model_cfg.provider_model,
            "messages": req.payload_messages(),
            "temperature": self._setting("temperature", model_cfg.default_temperature),
            "max_tokens": self._setting("max_tokens", model_cfg.max_tokens),
            "stream": stream,
        }

    def _setting(self, key: str, default: Any) -> Any:
        value = getattr(self._settings, key, None)
        return default if value is None else value

    def _model_config(self) -> ModelConfig:
        name = getattr(self._settings, "default_model", None) or "deepseek-chat"
        try:
            return DEEPSEEK_CONFIG.models[name]
        except KeyError:
            raise ConfigurationError(code="UNKNOWN_MODEL", message=f"未登记的模型: {name}", http_status=500)

    def _base_url(self) -> str:
        base = getattr(self._settings, "deepseek_base_url", None) or DEEPSEEK_CONFIG.base_url
        return base.rstrip("/")

    @staticmethod
    async def describe_rejection(resp: httpx.Response) -> str:
        """尽力从错误响应体中取出 error.message，失败时退回状态短语。"""

        try:
            body = await resp.aread()
            data = json.loads(body)
        except (httpx.HTTPError, ValueError):
            data = {}
        message = None
        if isinstance(data, dict):
            error = data.get("error")
            if isinstance(error, dict):
                message = error.get("message")
        return message or resp.reason_phrase or "未知错误"
