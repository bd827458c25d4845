"""
文本切分器模块

- ParagraphOverlapChunker : 按段落累积，词级重叠，超长段落按句子切分
"""

from knowledge_pipeline.pipeline.chunkers.paragraph import ParagraphOverlapChunker  # noqa: F401

__all__ = [
    "ParagraphOverlapChunker",
]
