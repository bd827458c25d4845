"""
纯文本 / Markdown 提取器

原样返回内容，仅做保守的空白规范化（统一换行、合并 3 个以上换行、去首尾空白）。
"""

from knowledge_pipeline.pipeline.base import BaseExtractorOperator, ExtractedText
from knowledge_pipeline.pipeline.chunkers.paragraph import normalize_text
from knowledge_pipeline.pipeline.registry import register_operator


def decode_bytes(data: bytes) -> str:
    """按 UTF-8 解码，去掉 BOM，非法字节替换为 U+FFFD"""
    return data.decode("utf-8", errors="replace").lstrip("\ufeff")


@register_operator("extractor", "text")
class TextExtractor(BaseExtractorOperator):
    """纯文本提取器（也用于未知类型的兜底解码）"""
    name = "text"
    kind = "extractor"
    min_chars = 0

    def extract(self, data: bytes) -> ExtractedText:
        return ExtractedText(text=normalize_text(decode_bytes(data)))


@register_operator("extractor", "markdown")
class MarkdownExtractor(TextExtractor):
    """Markdown 提取器：保留标记，检索时标题层级本身就是有用的上下文"""
    name = "markdown"
