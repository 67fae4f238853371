"""Stream Relay 顶层包。

该包把聊天请求转发给远端 LLM chat-completions 端点，
并把模型的增量输出按自然断点切分为分段，以流的形式返回给调用方。
包括配置加载、领域模型、Provider 适配、流式中继核心与传输层。
"""

from stream_relay.streaming import CancellationToken, RelayOrchestrator

__all__ = ["CancellationToken", "RelayOrchestrator"]
