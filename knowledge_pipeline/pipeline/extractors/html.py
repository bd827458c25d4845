"""
HTML 文本提取器（URL 导入）

1. 解析 DOM，先读取标题（<title> → 第一个 <h1>）
2. 删除非内容元素（脚本、样式、导航、页眉页脚、表单、Cookie 提示、广告等）
3. 优先使用语义主内容容器（main / article / .content ...），
   取第一个文本超过 200 字符的容器，否则使用整个 body
4. 规范化空白，结果少于 200 字符视为内容不足
"""

import re

from bs4 import BeautifulSoup

from knowledge_pipeline.exceptions import ExtractionError
from knowledge_pipeline.pipeline.base import BaseExtractorOperator, ExtractedText
from knowledge_pipeline.pipeline.registry import register_operator

NOISE_TAGS = [
    "script", "style", "nav", "footer", "header", "aside",
    "iframe", "noscript", "svg", "form",
]
NOISE_SELECTORS = ".cookie-banner, .popup, .modal, #cookie-notice, .advertisement, .ad"
MAIN_CONTENT_SELECTORS = ["main", "article", ".content", ".post-content", "#content", ".entry-content"]

_SPACES = re.compile(r"[ \t\f\v\u00a0]+")

INSUFFICIENT_CONTENT_MESSAGE = "Page has insufficient content to import (minimum {min_chars} characters)."


def clean_text(text: str) -> str:
    """每行合并空白，丢弃空行，块之间用空行分隔"""
    lines = (_SPACES.sub(" ", line).strip() for line in text.splitlines())
    return "\n\n".join(line for line in lines if line)


def _extract_title(soup: BeautifulSoup) -> str | None:
    if soup.title and soup.title.get_text(strip=True):
        return soup.title.get_text(strip=True)
    h1 = soup.find("h1")
    if h1 and h1.get_text(strip=True):
        return h1.get_text(" ", strip=True)
    return None


@register_operator("extractor", "html")
class HtmlExtractor(BaseExtractorOperator):
    """HTML 提取器，标题无法解析时由调用方回退到域名"""
    name = "html"
    kind = "extractor"
    min_chars = 200
    main_content_min_chars = 200

    def extract(self, data: bytes | str) -> ExtractedText:
        soup = BeautifulSoup(data, "lxml")
        title = _extract_title(soup)

        for element in soup(NOISE_TAGS):
            element.decompose()
        for element in soup.select(NOISE_SELECTORS):
            if not element.decomposed:
                element.decompose()

        text = ""
        container = "body"
        for selector in MAIN_CONTENT_SELECTORS:
            element = soup.select_one(selector)
            if element is None:
                continue
            candidate = clean_text(element.get_text("\n"))
            if len(candidate) > self.main_content_min_chars:
                text, container = candidate, selector
                break

        if not text:
            root = soup.body or soup
            text = clean_text(root.get_text("\n"))

        if len(text) < self.min_chars:
            raise ExtractionError(INSUFFICIENT_CONTENT_MESSAGE.format(min_chars=self.min_chars))
        return ExtractedText(text=text, title=title, metadata={"content_container": container})
