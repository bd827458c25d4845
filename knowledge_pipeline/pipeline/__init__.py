"""
Pipeline 可插拔组件模块

- extractors/ : 文本提取器（纯文本、Markdown、PDF、DOCX、HTML）
- chunkers/   : 文本切分器（段落重叠切分）
- registry.py : 组件注册表，支持按名称动态获取组件

使用示例：
    from knowledge_pipeline.pipeline import operator_registry

    chunker = operator_registry.require("chunker", "paragraph_overlap")(max_chars=1500)
    pieces = chunker.chunk("长文本...")

    extractor = operator_registry.require("extractor", "pdf")()
    extracted = extractor.extract(pdf_bytes)
"""

from knowledge_pipeline.pipeline import chunkers, extractors  # noqa: F401
from knowledge_pipeline.pipeline.registry import operator_registry

__all__ = ["operator_registry"]
