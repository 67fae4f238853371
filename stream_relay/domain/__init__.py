"""领域层模型与协议。

包含：
- models: ChatMessage / ChatRequest / SegmentEvent 以及中继状态与终态枚举。
- exceptions: 业务异常类型与取消判别异常 RelayCancelled。
"""
