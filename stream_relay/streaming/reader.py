"""上游字节流读取器。

逐块拉取上游响应体，使用增量 UTF-8 解码器把字节转换为文本
（跨块被截断的多字节字符会保留在解码器内部，等下一块补齐），
再交给 on_fragment 回调。无论正常结束、异常还是取消，
上游响应都在 finally 中释放且只释放一次。
"""

import codecs
from typing import AsyncIterator, Awaitable, Callable, Optional, Protocol

from stream_relay.streaming.cancellation import CancellationToken

FragmentSink = Callable[[str], Awaitable[None]]


class ByteStream(Protocol):
    """Reader 依赖的最小响应接口，httpx.Response 天然满足。"""

    def aiter_bytes(self) -> AsyncIterator[bytes]:
        ...

    async def aclose(self) -> None:
        ...


async def _next_chunk(chunks: AsyncIterator[bytes]) -> Optional[bytes]:
    try:
        return await chunks.__anext__()
    except StopAsyncIteration:
        return None


class UpstreamStreamReader:
    def __init__(self, source: ByteStream, token: CancellationToken, encoding: str = "utf-8"):
        self._source = source
        self._token = token
        self._decoder = codecs.getincrementaldecoder(encoding)(errors="replace")
        self._released = False
        self.bytes_read = 0

    @property
    def released(self) -> bool:
        return self._released

    async def run(self, on_fragment: FragmentSink) -> None:
        """读取直到上游 EOF；取消时抛出 RelayCancelled。"""

        try:
            chunks = self._source.aiter_bytes()
            while True:
                chunk = await self._token.guard(_next_chunk(chunks))
                if chunk is None:
                    break
                self.bytes_read += len(chunk)
                text = self._decoder.decode(chunk)
                if text:
                    await on_fragment(text)
            tail = self._decoder.decode(b"", final=True)
            if tail:
                await on_fragment(tail)
        finally:
            await self.release()

    async def release(self) -> None:
        if self._released:
            return
        self._released = True
        await self._source.aclose()
