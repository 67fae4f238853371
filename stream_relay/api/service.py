"""对外 API 服务模块。

提供简化的函数接口供传输层（HTTP/SSE、WebSocket 等）调用。
"""

from typing import Any, Dict, List, Optional

from stream_relay.config.settings import settings
from stream_relay.infrastructure.logging.logger import logger
from stream_relay.providers import create_provider
from stream_relay.streaming.cancellation import CancellationToken
from stream_relay.streaming.relay import RelayInvocation, RelayOrchestrator


_orchestrator: Optional[RelayOrchestrator] = None


def get_default_orchestrator() -> RelayOrchestrator:
    """获取默认的 RelayOrchestrator 实例（单例）。"""
    global _orchestrator
    if _orchestrator is None:
        _orchestrator = RelayOrchestrator(provider=create_provider(), cfg=settings)
    return _orchestrator


def start_chat_stream(
    messages: List[Dict[str, Any]],
    system_directive: Optional[Dict[str, Any]] = None,
    token: Optional[CancellationToken] = None,
    orchestrator: Optional[RelayOrchestrator] = None,
) -> RelayInvocation:
    """启动一次流式中继。

    Args:
        messages: [{role, content}] 列表
        system_directive: 可选的系统提示（{role, content}），缺省使用配置中的 system_prompt
        token: 可选的外部取消令牌
        orchestrator: 可选的编排器，缺省使用单例

    Returns:
        可异步迭代的 RelayInvocation，事件为 SegmentEvent
    """
    relay = orchestrator or get_default_orchestrator()
    invocation = relay.start(messages, system_directive=system_directive, token=token)
    logger.info("Chat stream started", extra={"extra": {
        "relay_id": invocation.relay_id,
        "message_count": len(messages),
    }})
    return invocation
