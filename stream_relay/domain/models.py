"""中继使用的统一数据模型。

- ChatMessage: 一条对话消息（system/user/assistant）。
- ChatRequest: 经过校验、发往上游的完整请求，构造后不可变。
- SegmentEvent: 推送给传输层的一个分段事件，诊断信息也使用同一结构。
- RelayState / RelayOutcome: 单次中继的状态机与终态分类。
"""

from dataclasses import dataclass
from enum import Enum
from typing import Any, Iterable, Literal, Mapping, Optional, Tuple

from stream_relay.domain.exceptions import ValidationError


# LLM 消息角色类型（与 OpenAI / DeepSeek 的 role 字段对应）
Role = Literal["system", "user", "assistant"]

EMPTY_MESSAGE_TEXT = "消息内容不能为空"


@dataclass(frozen=True)
class ChatMessage:
    role: Role
    content: str

    def to_payload(self) -> dict:
        return {"role": self.role, "content": self.content}


@dataclass(frozen=True)
class ChatRequest:
    """一次中继调用的输入。

    messages 至少包含一条去除空白后非空的消息；system_directive
    会在组装上游请求体时放在最前面。
    """

    messages: Tuple[ChatMessage, ...]
    system_directive: Optional[ChatMessage] = None

    @classmethod
    def from_input(
        cls,
        messages: Iterable[Any],
        system_directive: Optional[Any] = None,
    ) -> "ChatRequest":
        """校验原始输入并构造 ChatRequest。

        messages 的元素可以是 ChatMessage，也可以是带 role/content 的映射。
        没有任何一条有效内容时抛出 ValidationError。
        """

        built = tuple(_coerce_message(m) for m in messages or ())
        if not any(m.content.strip() for m in built):
            raise ValidationError(code="EMPTY_MESSAGE", message=EMPTY_MESSAGE_TEXT)
        system = _coerce_message(system_directive, default_role="system") if system_directive else None
        return cls(messages=built, system_directive=system)

    def payload_messages(self) -> list:
        msgs = [m.to_payload() for m in self.messages]
        if self.system_directive is not None:
            msgs.insert(0, self.system_directive.to_payload())
        return msgs


def _coerce_message(raw: Any, default_role: str = "user") -> ChatMessage:
    if isinstance(raw, ChatMessage):
        return raw
    if isinstance(raw, str):
        return ChatMessage(role=default_role, content=raw)
    if isinstance(raw, Mapping):
        content = raw.get("content")
        return ChatMessage(
            role=raw.get("role") or default_role,
            content=content if isinstance(content, str) else "",
        )
    raise ValidationError(code="INVALID_MESSAGE", message=f"无法识别的消息格式: {type(raw).__name__}")


@dataclass(frozen=True)
class SegmentEvent:
    """推送给传输层的事件：正常分段与诊断信息共用 {message} 结构。"""

    message: str
    diagnostic: bool = False

    def to_dict(self) -> dict:
        return {"message": self.message}


class RelayState(str, Enum):
    IDLE = "idle"
    VALIDATING = "validating"
    AWAITING_UPSTREAM = "awaiting_upstream"
    STREAMING = "streaming"
    DRAINING = "draining"
    TERMINAL = "terminal"


class RelayOutcome(str, Enum):
    """单次中继的终态。每次调用恰好一个。

    - COMPLETED: 上游正常结束，剩余文本已冲刷。
    - UPSTREAM_ERROR: 上游拒绝或流中途失败。
    - CANCELLED: 取消信号先于自然结束触发，不产生诊断事件。
    - REJECTED: 本地校验/配置失败，从未访问上游。
    """

    COMPLETED = "completed"
    UPSTREAM_ERROR = "upstream_error"
    CANCELLED = "cancelled"
    REJECTED = "rejected"
