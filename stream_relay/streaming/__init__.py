"""流式中继核心：分段器、上游读取器、取消协调与编排器。"""

from stream_relay.streaming.cancellation import CancellationToken
from stream_relay.streaming.relay import RelayInvocation, RelayOrchestrator
from stream_relay.streaming.segmenter import Segmenter, feed

__all__ = ["CancellationToken", "RelayInvocation", "RelayOrchestrator", "Segmenter", "feed"]
