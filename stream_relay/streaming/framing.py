"""可选的上游 SSE 帧解析。

upstream_framing = "sse" 时位于解码器与分段器之间：按行缓冲文本，
解析 `data:` 行中的 JSON，取出 choices[*].delta.content。
空行、注释行、[DONE] 以及无法解析的行都被忽略。
"""

import json
from typing import List


class SSEContentExtractor:
    def __init__(self) -> None:
        self._pending = ""

    def push(self, text: str) -> str:
        """喂入解码后的文本，返回其中完整行携带的内容增量。"""

        self._pending += text
        *lines, self._pending = self._pending.split("\n")
        return "".join(self._extract(line) for line in lines)

    def flush(self) -> str:
        line, self._pending = self._pending, ""
        return self._extract(line)

    @staticmethod
    def _extract(line: str) -> str:
        line = line.strip()
        if not line.startswith("data:"):
            return ""
        data_str = line[5:].strip()
        if not data_str or data_str == "[DONE]":
            return ""
        try:
            payload = json.loads(data_str)
        except json.JSONDecodeError:
            return ""
        if not isinstance(payload, dict):
            return ""
        parts: List[str] = []
        for choice in payload.get("choices") or []:
            delta = choice.get("delta") or {}
            content = delta.get("content")
            if isinstance(content, str):
                parts.append(content)
        return "".join(parts)
