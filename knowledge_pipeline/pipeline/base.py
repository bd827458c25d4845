"""
流水线组件接口

提取器: bytes -> ExtractedText；切分器: str -> list[ChunkPiece]。两者都不做 I/O，
以 Protocol 描述，由 registry 按名称注册。
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Protocol


@dataclass
class ChunkPiece:
    """
    文本片段数据结构

    切分器的输出单元，index 为在条目内的顺序（从 0 开始）。
    """
    text: str       # 片段文本
    index: int      # 片段序号
    metadata: dict  # {"char_count": ..., "token_estimate": ...}


@dataclass
class ExtractedText:
    """
    文本提取结果

    title 只有能从源中解析出标题时才有值（如 HTML 的 <title>）。
    """
    text: str
    title: str | None = None
    metadata: dict = field(default_factory=dict)


class BaseOperator(Protocol):
    """组件基础协议"""
    name: str  # 组件名称，如 "paragraph_overlap", "pdf"
    kind: str  # 组件类型，如 "chunker", "extractor"


class BaseChunkerOperator(BaseOperator, Protocol):
    """
    切分器协议

    相同输入必须产生相同输出，首次入库和重处理共用同一实现。
    """
    kind: str = "chunker"

    def chunk(self, text: str) -> list[ChunkPiece]:
        """
        将文本切分为有序片段

        Args:
            text: 已提取的纯文本

        Returns:
            list[ChunkPiece]: 切分后的片段列表，空白输入返回空列表
        """
        ...


class BaseExtractorOperator(BaseOperator, Protocol):
    """
    文本提取器协议

    将原始字节转换为可向量化的纯文本，失败时抛出 ExtractionError，从不静默吞掉错误。
    """
    kind: str = "extractor"
    min_chars: int

    def extract(self, data: bytes) -> ExtractedText:
        ...
