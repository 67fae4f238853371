import json

import httpx
from fastapi.testclient import TestClient

from conftest import ChunkStream, SettingsStub, Upstream, build_orchestrator, streaming_upstream
from stream_relay.api.app import create_app


def make_client(upstream):
    cfg = SettingsStub()
    return TestClient(create_app(cfg=cfg, orchestrator=build_orchestrator(upstream, cfg)))


def sse_messages(body: str):
    return [
        json.loads(line[len("data: "):])["message"]
        for line in body.splitlines()
        if line.startswith("data: ")
    ]


def test_status_and_models():
    client = make_client(streaming_upstream(ChunkStream([])))
    assert client.get("/status").json() == {"status": "DeepSeek 流式中继服务运行中"}
    assert client.get("/models").json() == {
        "models": ["deepseek-chat", "deepseek-coder", "deepseek-math"]
    }


def test_chat_stream_emits_sse_segments():
    client = make_client(streaming_upstream(ChunkStream(["你好。", "Hello. Wor", "ld"])))
    resp = client.post("/chat/stream", json={"message": "hi"})
    assert resp.status_code == 200
    assert resp.headers["content-type"].startswith("text/event-stream")
    assert sse_messages(resp.text) == ["你好。", "Hello. ", "World"]


def test_chat_stream_accepts_message_list():
    upstream = streaming_upstream(ChunkStream(["ok"]))
    client = make_client(upstream)
    resp = client.post(
        "/chat/stream",
        json={
            "messages": [{"role": "user", "content": "a"}, {"role": "assistant", "content": "b"}],
            "system_directive": {"role": "system", "content": "s"},
        },
    )
    assert sse_messages(resp.text) == ["ok"]
    body = json.loads(upstream.requests[0].content)
    assert [m["content"] for m in body["messages"]] == ["s", "a", "b"]


def test_blank_message_is_a_single_diagnostic_event():
    upstream = streaming_upstream(ChunkStream(["never"]))
    resp = make_client(upstream).post("/chat/stream", json={"message": "   "})
    assert sse_messages(resp.text) == ["错误：消息内容不能为空"]
    assert upstream.requests == []


def test_upstream_rejection_is_streamed_as_diagnostic():
    upstream = Upstream(lambda request: httpx.Response(401, json={"error": {"message": "bad key"}}))
    resp = make_client(upstream).post("/chat/stream", json={"message": "hi"})
    assert sse_messages(resp.text) == ["API错误: 401 - bad key"]


def test_cors_preflight_uses_configured_headers():
    client = make_client(streaming_upstream(ChunkStream([])))
    resp = client.options(
        "/chat/stream",
        headers={
            "Origin": "https://example.com",
            "Access-Control-Request-Method": "POST",
            "Access-Control-Request-Headers": "Content-Type",
        },
    )
    assert resp.status_code == 200
    assert resp.headers["access-control-allow-origin"] == "*"
    assert "POST" in resp.headers["access-control-allow-methods"]
