"""
段落重叠切分器

按空行分段，贪心地把段落累积到缓冲区，超过上限时输出片段，
并用上一片段末尾的若干单词作为下一片段的开头（词级重叠，而非字节级重叠）。

超长段落退化为按句子切分（句末 .!? 后跟空白）；单个句子仍超长时按上限硬切。
"""

import math
import re

from knowledge_pipeline.pipeline.base import BaseChunkerOperator, ChunkPiece
from knowledge_pipeline.pipeline.registry import register_operator

_PARAGRAPH_SPLIT = re.compile(r"\n\n+")
_EXCESS_NEWLINES = re.compile(r"\n{3,}")
_SENTENCE_SPLIT = re.compile(r"(?<=[.!?])\s+")
_WHITESPACE = re.compile(r"\s+")

# 平均每个单词约 5 个字符，overlap_chars / 5 即重叠单词数
CHARS_PER_WORD = 5


def normalize_text(text: str) -> str:
    """统一换行符，合并 3 个以上连续换行，去掉首尾空白"""
    text = text.replace("\r\n", "\n").replace("\r", "\n")
    return _EXCESS_NEWLINES.sub("\n\n", text).strip()


def estimate_tokens(text: str) -> int:
    """粗略估算 token 数（约 4 字符 / token）"""
    return math.ceil(len(text) / 4)


@register_operator("chunker", "paragraph_overlap")
class ParagraphOverlapChunker(BaseChunkerOperator):
    """
    段落重叠切分器

    切分策略：
    1. 输入不超过 max_chars 时整体作为一个片段
    2. 段落累积到缓冲区，放不下时输出缓冲区
    3. 新缓冲区 = 上一片段末尾 overlap_chars/5 个单词 + 触发输出的段落
    4. 单段超长时按句子累积，新缓冲区同样带重叠单词；单句超长时按 max_chars 硬切
    """
    name = "paragraph_overlap"
    kind = "chunker"

    def __init__(self, max_chars: int = 1500, overlap_chars: int = 200):
        """
        Args:
            max_chars: 单个片段的最大字符数
            overlap_chars: 相邻片段的近似重叠字符数
        """
        if max_chars <= 0:
            raise ValueError("max_chars 必须大于 0")
        if overlap_chars < 0:
            raise ValueError("overlap_chars 不能为负数")
        self.max_chars = max_chars
        self.overlap_chars = overlap_chars
        self.overlap_words = overlap_chars // CHARS_PER_WORD

    def chunk(self, text: str) -> list[ChunkPiece]:
        normalized = normalize_text(text)
        if not normalized:
            return []
        if len(normalized) <= self.max_chars:
            return [self._piece(normalized, 0)]

        texts: list[str] = []
        current = ""
        for raw_paragraph in _PARAGRAPH_SPLIT.split(normalized):
            paragraph = raw_paragraph.strip()
            if not paragraph:
                continue

            if not current:
                if len(paragraph) <= self.max_chars:
                    current = paragraph
                else:
                    current = self._split_sentences(paragraph, texts)
                continue

            if len(current) + len(paragraph) + 2 <= self.max_chars:
                current = f"{current}\n\n{paragraph}"
                continue

            # 缓冲区放不下：输出并以重叠单词开启新缓冲区
            texts.append(current)
            if len(paragraph) > self.max_chars:
                current = self._split_sentences(paragraph, texts, previous=current)
                continue
            current = self._seeded(current, paragraph, "\n\n")

        if current.strip():
            texts.append(current.strip())

        return [self._piece(content, index) for index, content in enumerate(texts)]

    def _split_sentences(self, paragraph: str, texts: list[str], previous: str = "") -> str:
        """
        超长段落按句子累积

        已满的片段直接追加到 texts，返回尚未输出的缓冲区。
        每个新缓冲区同样以上一片段末尾的重叠单词开头；previous 为进入本段前刚输出的片段。
        """
        current = ""
        for raw_sentence in _SENTENCE_SPLIT.split(paragraph):
            sentence = raw_sentence.strip()
            if not sentence:
                continue
            if current and len(current) + len(sentence) + 1 <= self.max_chars:
                current = f"{current} {sentence}"
                continue

            if current:
                texts.append(current)
                previous = current
                current = ""
            if len(sentence) <= self.max_chars:
                current = self._seeded(previous, sentence, " ")
                continue
            # 单句超长：按上限硬切，不带重叠，前面的片段恰好等于 max_chars
            for start in range(0, len(sentence), self.max_chars):
                piece = sentence[start:start + self.max_chars]
                if start + self.max_chars >= len(sentence):
                    current = piece
                else:
                    texts.append(piece)
        return current

    def _seeded(self, previous: str, text: str, separator: str) -> str:
        """以 previous 末尾的重叠单词开头拼接 text，总长不超过 max_chars"""
        seed = self._overlap_seed(previous, budget=self.max_chars - len(text) - len(separator))
        return f"{seed}{separator}{text}" if seed else text

    def _overlap_seed(self, previous: str, budget: int) -> str:
        """取上一片段末尾的重叠单词，长度不超过 budget"""
        if self.overlap_words <= 0 or budget <= 0:
            return ""
        words = _WHITESPACE.split(previous.strip())[-self.overlap_words:]
        seed = " ".join(words)
        while words and len(seed) > budget:
            words = words[1:]
            seed = " ".join(words)
        return seed

    @staticmethod
    def _piece(content: str, index: int) -> ChunkPiece:
        return ChunkPiece(
            text=content,
            index=index,
            metadata={
                "char_count": len(content),
                "token_estimate": estimate_tokens(content),
            },
        )
