import asyncio

import pytest

from stream_relay.domain.exceptions import RelayCancelled
from stream_relay.streaming.cancellation import CancellationToken
from stream_relay.streaming.reader import UpstreamStreamReader


class FakeResponse:
    def __init__(self, chunks, error=None, hang=False):
        self._chunks = list(chunks)
        self._error = error
        self._hang = hang
        self.close_calls = 0

    async def aiter_bytes(self):
        for chunk in self._chunks:
            yield chunk
        if self._error is not None:
            raise self._error
        if self._hang:
            await asyncio.Event().wait()

    async def aclose(self):
        self.close_calls += 1


@pytest.mark.asyncio
async def test_multibyte_sequence_split_across_chunks():
    data = "你好。world".encode("utf-8")
    # 把 “好” 的三个字节拆到两块里
    resp = FakeResponse([data[:4], data[4:7], data[7:]])
    fragments = []

    async def sink(text):
        fragments.append(text)

    reader = UpstreamStreamReader(resp, CancellationToken())
    await reader.run(sink)

    assert "".join(fragments) == "你好。world"
    assert all("\ufffd" not in f for f in fragments)
    assert reader.bytes_read == len(data)
    assert resp.close_calls == 1


@pytest.mark.asyncio
async def test_release_runs_once_when_loop_raises():
    resp = FakeResponse([b"abc"], error=RuntimeError("boom"))
    reader = UpstreamStreamReader(resp, CancellationToken())

    async def sink(text):
        pass

    with pytest.raises(RuntimeError):
        await reader.run(sink)
    await reader.release()
    assert resp.close_calls == 1
    assert reader.released


@pytest.mark.asyncio
async def test_cancel_while_waiting_for_bytes():
    resp = FakeResponse([b"first"], hang=True)
    token = CancellationToken()
    seen = []

    async def sink(text):
        seen.append(text)
        token.cancel("test")

    reader = UpstreamStreamReader(resp, token)
    with pytest.raises(RelayCancelled):
        await asyncio.wait_for(reader.run(sink), timeout=1.0)
    assert seen == ["first"]
    assert resp.close_calls == 1


@pytest.mark.asyncio
async def test_truncated_sequence_at_eof_is_replaced():
    resp = FakeResponse(["ok".encode() + "好".encode("utf-8")[:2]])
    fragments = []

    async def sink(text):
        fragments.append(text)

    await UpstreamStreamReader(resp, CancellationToken()).run(sink)
    assert fragments == ["ok", "\ufffd"]
