"""增量分段器。

把模型输出的文本片段按自然断点切分为完整分段：

- 中文断点：句号、问号、感叹号或换行，断点只占 1 个字符。
- 英文断点：句末标点后跟一个空白字符，或单独的换行；分隔符一并计入分段。

两种断点同时存在时取位置更靠前的；位置相同时中文规则优先。
没有断点的尾部文本作为 remainder 保留，直到下一个片段到来或流结束。
"""

import re
from typing import List, Optional, Tuple

CJK_BREAK = re.compile(r"[。？！\n]")
LATIN_BREAK = re.compile(r"[.?!]\s|\n")


def find_break(buffer: str) -> Optional[Tuple[int, int]]:
    """返回最早的断点 (位置, 长度)，没有则返回 None。"""

    cjk = CJK_BREAK.search(buffer)
    latin = LATIN_BREAK.search(buffer)
    if cjk is None and latin is None:
        return None
    if latin is None or (cjk is not None and cjk.start() <= latin.start()):
        return cjk.start(), 1
    return latin.start(), len(latin.group(0))


def feed(remainder: str, fragment: str) -> Tuple[List[str], str]:
    """把 fragment 接到 remainder 之后，切出所有完整分段。

    纯函数：返回 (按顺序排列的分段, 新的 remainder)。
    """

    buffer = remainder + fragment
    segments: List[str] = []
    while True:
        found = find_break(buffer)
        if found is None:
            break
        pos, size = found
        end = pos + size
        segments.append(buffer[:end])
        buffer = buffer[end:]
    return segments, buffer


class Segmenter:
    """持有单次中继 remainder 的分段器，每次中继新建一个。"""

    def __init__(self) -> None:
        self.remainder = ""

    def push(self, fragment: str) -> List[str]:
        segments, self.remainder = feed(self.remainder, fragment)
        return segments

    def flush(self) -> Optional[str]:
        """流结束时取出剩余文本（可能不含任何断点）。"""

        tail, self.remainder = self.remainder, ""
        return tail or None
