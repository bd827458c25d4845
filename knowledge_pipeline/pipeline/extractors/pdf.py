"""
PDF 文本提取器

优先使用 pypdf 解析页面文本；解析失败或几乎没有文本时，
退化为启发式扫描：
1. 内容流（stream ... endstream）中 Tj 操作符前的字符串字面量
2. /Contents (...) 字符串
3. 以上都没有时，扫描 20 个字符以上的可打印 ASCII 片段

无论用哪种方式，结果少于 100 个字符都视为扫描版/纯图片 PDF。
"""

import io
import logging
import re

from pypdf import PdfReader

from knowledge_pipeline.exceptions import ExtractionError
from knowledge_pipeline.pipeline.base import BaseExtractorOperator, ExtractedText
from knowledge_pipeline.pipeline.chunkers.paragraph import normalize_text
from knowledge_pipeline.pipeline.registry import register_operator

logger = logging.getLogger(__name__)

_STREAM = re.compile(rb"stream[\r\n]+(.*?)[\r\n]+endstream", re.DOTALL)
_SHOW_TEXT = re.compile(rb"\(([^)]+)\)\s*Tj")
_CONTENTS = re.compile(rb"/Contents\s*\(([^)]+)\)")
_PRINTABLE_RUN = re.compile(rb"[A-Za-z0-9\s.,!?;:'\"()\-]{20,}")
_WHITESPACE = re.compile(r"\s+")

SCANNED_PDF_MESSAGE = (
    "PDF appears to be a scanned image or has no selectable text. "
    "Convert it to a text-based PDF or upload TXT/DOCX instead."
)


def _parse_with_pypdf(data: bytes) -> str:
    reader = PdfReader(io.BytesIO(data))
    pages = [page.extract_text() or "" for page in reader.pages]
    return normalize_text("\n\n".join(p for p in pages if p.strip()))


def _scan_operators(data: bytes) -> str:
    """启发式扫描原始字节中的文本绘制操作符"""
    parts: list[bytes] = []
    for stream in _STREAM.findall(data):
        parts.extend(_SHOW_TEXT.findall(stream))
    parts.extend(_CONTENTS.findall(data))
    if not parts:
        parts = _PRINTABLE_RUN.findall(data)
    text = b" ".join(parts).decode("latin-1")
    return _WHITESPACE.sub(" ", text).strip()


@register_operator("extractor", "pdf")
class PdfExtractor(BaseExtractorOperator):
    """PDF 提取器"""
    name = "pdf"
    kind = "extractor"
    min_chars = 100

    def extract(self, data: bytes) -> ExtractedText:
        text = ""
        method = "pypdf"
        try:
            text = _parse_with_pypdf(data)
        except Exception as e:
            # pypdf 对损坏/非标准文件会抛出多种异常，统一退化为启发式扫描
            logger.warning(f"pypdf 解析失败，改用启发式扫描: {e}")

        if len(text) < self.min_chars:
            scanned = _scan_operators(data)
            if len(scanned) > len(text):
                text, method = scanned, "heuristic"

        if len(text) < self.min_chars:
            raise ExtractionError(SCANNED_PDF_MESSAGE)
        return ExtractedText(text=text, metadata={"extraction_method": method})
