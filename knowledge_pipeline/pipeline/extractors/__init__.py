"""
文本提取器模块

- TextExtractor     : 纯文本（也作为未知类型的兜底）
- MarkdownExtractor : Markdown
- PdfExtractor      : PDF（pypdf + 启发式回退，最少 100 字符）
- DocxExtractor     : DOCX（python-docx + 启发式回退，最少 50 字符）
- HtmlExtractor     : HTML（BeautifulSoup + lxml，最少 200 字符）
"""

from knowledge_pipeline.pipeline.extractors.html import HtmlExtractor  # noqa: F401
from knowledge_pipeline.pipeline.extractors.pdf import PdfExtractor  # noqa: F401
from knowledge_pipeline.pipeline.extractors.text import MarkdownExtractor, TextExtractor  # noqa: F401
from knowledge_pipeline.pipeline.extractors.word import DocxExtractor  # noqa: F401


def select_extractor(filename: str, mime_type: str | None) -> tuple[str, str]:
    """
    根据 MIME 类型和扩展名选择提取器

    Returns:
        (提取器名称, 条目 source 标记)
    """
    mime = (mime_type or "").lower().split(";")[0].strip()
    name = (filename or "").lower()

    if mime == "text/plain" or name.endswith(".txt"):
        return "text", "import_txt"
    if mime == "text/markdown" or name.endswith((".md", ".markdown")):
        return "markdown", "import_md"
    if mime == "application/pdf" or name.endswith(".pdf"):
        return "pdf", "import_pdf"
    if "wordprocessingml" in mime or name.endswith(".docx"):
        return "docx", "import_docx"
    return "text", "import_txt"


__all__ = [
    "DocxExtractor",
    "HtmlExtractor",
    "MarkdownExtractor",
    "PdfExtractor",
    "TextExtractor",
    "select_extractor",
]
