import asyncio

import pytest

from stream_relay.domain.exceptions import RelayCancelled
from stream_relay.streaming.cancellation import CancellationToken


@pytest.mark.asyncio
async def test_cancel_is_idempotent():
    token = CancellationToken()
    assert token.cancel("first") is True
    assert token.cancel("second") is False
    assert token.cancelled
    assert token.reason == "first"


@pytest.mark.asyncio
async def test_guard_returns_result_when_not_cancelled():
    token = CancellationToken()

    async def work():
        return 42

    assert await token.guard(work()) == 42


@pytest.mark.asyncio
async def test_guard_interrupts_pending_operation():
    token = CancellationToken()
    interrupted = asyncio.Event()

    async def blocked():
        try:
            await asyncio.Event().wait()
        except asyncio.CancelledError:
            interrupted.set()
            raise

    asyncio.get_running_loop().call_later(0.01, token.cancel, "stop")
    with pytest.raises(RelayCancelled) as info:
        await token.guard(blocked())
    assert info.value.reason == "stop"
    assert interrupted.is_set()


@pytest.mark.asyncio
async def test_guard_after_cancel_never_starts_work():
    token = CancellationToken()
    token.cancel()
    started = []

    async def work():
        started.append(True)

    with pytest.raises(RelayCancelled):
        await token.guard(work())
    assert started == []


@pytest.mark.asyncio
async def test_guard_propagates_real_failures():
    token = CancellationToken()

    async def broken():
        raise ValueError("bad")

    with pytest.raises(ValueError):
        await token.guard(broken())


@pytest.mark.asyncio
async def test_timeout_fires_the_same_signal():
    token = CancellationToken()
    token.arm_timeout(0.01)
    await asyncio.wait_for(token.wait(), timeout=1.0)
    assert token.reason == "timeout"


@pytest.mark.asyncio
async def test_disarmed_timeout_does_not_fire():
    token = CancellationToken()
    token.arm_timeout(0.01)
    token.disarm_timeout()
    await asyncio.sleep(0.03)
    assert not token.cancelled
