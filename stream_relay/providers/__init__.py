"""LLM Provider 集成层。

该包下的模块负责：
- 定义流式 Provider 抽象接口 (base)。
- 维护 Provider 与模型配置 (registry)。
- 提供具体厂商实现 (deepseek_client)。
"""

from typing import Optional

import httpx

from stream_relay.config.settings import settings
from stream_relay.providers.base import StreamingProvider
from stream_relay.providers.deepseek_client import DeepSeekClient
from stream_relay.providers.registry import get_provider_config


def create_provider(
    name: Optional[str] = None,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> StreamingProvider:
    """根据名称创建 Provider 实例；未知名称抛出 KeyError。"""

    cfg = get_provider_config(name or "deepseek")
    if cfg.name == "deepseek":
        return DeepSeekClient(settings, transport=transport)
    raise KeyError(f"Provider {cfg.name!r} has no streaming client")
