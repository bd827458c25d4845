"""
DOCX 文本提取器

优先使用 python-docx 读取段落和表格单元格；失败时退化为启发式扫描：
1. 从压缩包中读取 word/document.xml，匹配 <w:t> 文本节点
2. 没有文本节点时，扫描 10 个字符以上的可打印片段

结果少于 50 个字符视为提取失败。
"""

import io
import logging
import re
import zipfile

import docx

from knowledge_pipeline.exceptions import ExtractionError
from knowledge_pipeline.pipeline.base import BaseExtractorOperator, ExtractedText
from knowledge_pipeline.pipeline.chunkers.paragraph import normalize_text
from knowledge_pipeline.pipeline.registry import register_operator

logger = logging.getLogger(__name__)

_TEXT_NODE = re.compile(r"<w:t[^>]*>([^<]+)</w:t>")
_PRINTABLE_RUN = re.compile(r"[A-Za-z0-9\s.,!?;:'\"()\-]{10,}")
_WHITESPACE = re.compile(r"\s+")

DOCX_EMPTY_MESSAGE = (
    "Could not extract text from the DOCX file. "
    "Save it as TXT or paste the content manually."
)


def _parse_with_python_docx(data: bytes) -> str:
    document = docx.Document(io.BytesIO(data))
    blocks = [p.text for p in document.paragraphs if p.text.strip()]
    for table in document.tables:
        for row in table.rows:
            cells = [cell.text.strip() for cell in row.cells if cell.text.strip()]
            if cells:
                blocks.append(" | ".join(cells))
    return normalize_text("\n\n".join(blocks))


def _scan_document_xml(data: bytes) -> str:
    """启发式扫描：优先读取 document.xml，压缩包损坏时直接扫描原始字节"""
    try:
        with zipfile.ZipFile(io.BytesIO(data)) as archive:
            xml = archive.read("word/document.xml").decode("utf-8", errors="replace")
    except (zipfile.BadZipFile, KeyError):
        xml = data.decode("utf-8", errors="replace")

    parts = _TEXT_NODE.findall(xml)
    if not parts:
        parts = _PRINTABLE_RUN.findall(xml)
    return _WHITESPACE.sub(" ", " ".join(parts)).strip()


@register_operator("extractor", "docx")
class DocxExtractor(BaseExtractorOperator):
    """DOCX 提取器"""
    name = "docx"
    kind = "extractor"
    min_chars = 50

    def extract(self, data: bytes) -> ExtractedText:
        text = ""
        method = "python-docx"
        try:
            text = _parse_with_python_docx(data)
        except Exception as e:
            logger.warning(f"python-docx 解析失败，改用启发式扫描: {e}")

        if len(text) < self.min_chars:
            scanned = _scan_document_xml(data)
            if len(scanned) > len(text):
                text, method = scanned, "heuristic"

        if len(text) < self.min_chars:
            raise ExtractionError(DOCX_EMPTY_MESSAGE)
        return ExtractedText(text=text, metadata={"extraction_method": method})
