"""HTTP 传输层（FastAPI）。

- GET  /status       服务状态文本
- GET  /models       可用模型列表
- POST /chat/stream  以 SSE 返回分段事件：每个事件为 `data: {"message": ...}`

CORS 头部由配置注入 CORSMiddleware，而不是模块级全局对象。
"""

import json
from typing import AsyncIterator, List, Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import StreamingResponse
from pydantic import BaseModel, Field

from stream_relay.api import service
from stream_relay.config.settings import settings
from stream_relay.streaming.relay import RelayInvocation, RelayOrchestrator


class MessageIn(BaseModel):
    role: str = "user"
    content: str = ""


class ChatInput(BaseModel):
    """聊天输入：兼容单条 message 与完整 messages 列表。"""

    message: Optional[str] = None
    messages: List[MessageIn] = Field(default_factory=list)
    system_directive: Optional[MessageIn] = None

    def message_dicts(self) -> List[dict]:
        msgs = [m.model_dump() for m in self.messages]
        if self.message is not None:
            msgs.append({"role": "user", "content": self.message})
        return msgs


SSE_HEADERS = {
    "Cache-Control": "no-cache",
    "Connection": "keep-alive",
    "X-Accel-Buffering": "no",
}


async def _sse_events(invocation: RelayInvocation) -> AsyncIterator[str]:
    async with invocation:
        async for event in invocation:
            yield f"data: {json.dumps(event.to_dict(), ensure_ascii=False)}\n\n"


def create_app(cfg=settings, orchestrator: Optional[RelayOrchestrator] = None) -> FastAPI:
    app = FastAPI(title="Stream Relay")
    app.add_middleware(
        CORSMiddleware,
        allow_origins=cfg.cors_allow_origins,
        allow_methods=cfg.cors_allow_methods,
        allow_headers=cfg.cors_allow_headers,
    )

    def relay() -> RelayOrchestrator:
        return orchestrator or service.get_default_orchestrator()

    @app.get("/status")
    async def status() -> dict:
        return {"status": cfg.status_message}

    @app.get("/models")
    async def models() -> dict:
        return {"models": relay().provider.list_models()}

    @app.post("/chat/stream")
    async def chat_stream(body: ChatInput) -> StreamingResponse:
        system = body.system_directive.model_dump() if body.system_directive else None
        invocation = service.start_chat_stream(
            body.message_dicts(),
            system_directive=system,
            orchestrator=relay(),
        )
        return StreamingResponse(
            _sse_events(invocation),
            media_type="text/event-stream",
            headers=SSE_HEADERS,
        )

    return app
