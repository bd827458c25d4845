"""
段落重叠切分器测试

测试 knowledge_pipeline/pipeline/chunkers/paragraph.py：
- 单片段 / 空输入
- 3200 字符文本切为 3 个片段并带词级重叠
- 片段长度上限与硬切
- 单段按句子切分时同样带词级重叠
- 随机输入：去掉重叠后拼回原文，且每个片段不超过上限
- 确定性
"""

import random

import pytest

from knowledge_pipeline.pipeline import operator_registry
from knowledge_pipeline.pipeline.chunkers.paragraph import (
    ParagraphOverlapChunker,
    estimate_tokens,
    normalize_text,
)


def make_paragraphs(count: int, words_per_paragraph: int) -> str:
    """每个单词 9 个字符（w + 8 位序号），全文单词不重复"""
    counter = 0
    paragraphs = []
    for _ in range(count):
        words = []
        for _ in range(words_per_paragraph):
            words.append(f"w{counter:08d}")
            counter += 1
        paragraphs.append(" ".join(words))
    return "\n\n".join(paragraphs)


def make_sentences(count: int, words_per_sentence: int) -> str:
    """单个段落，每句若干个不重复的 9 字符单词并以句号结尾"""
    counter = 0
    sentences = []
    for _ in range(count):
        words = []
        for _ in range(words_per_sentence):
            words.append(f"s{counter:08d}")
            counter += 1
        sentences.append(" ".join(words) + ".")
    return " ".join(sentences)


def random_document(rng: random.Random) -> str:
    """随机段落数、句子数和句长，所有单词不重复，单句不超过 120 字符"""
    counter = 0
    paragraphs = []
    for _ in range(rng.randint(1, 8)):
        sentences = []
        for _ in range(rng.randint(1, 30)):
            words = []
            for _ in range(rng.randint(1, 12)):
                words.append(f"r{counter:08d}")
                counter += 1
            sentences.append(" ".join(words) + ".")
        paragraphs.append(" ".join(sentences))
    return "\n\n".join(paragraphs)


def strip_overlap(previous: list[str], current: list[str], max_words: int) -> list[str]:
    """去掉 current 开头与 previous 末尾重合的单词（单词不重复时重合部分唯一）"""
    for size in range(min(max_words, len(previous), len(current)), 0, -1):
        if previous[-size:] == current[:size]:
            return current[size:]
    return current


class TestNormalizeText:

    def test_collapses_excess_newlines(self):
        assert normalize_text("a\r\n\r\n\r\n\r\nb") == "a\n\nb"

    def test_strips(self):
        assert normalize_text("  \n texto \n ") == "texto"


class TestParagraphOverlapChunker:

    @pytest.fixture
    def chunker(self):
        return ParagraphOverlapChunker(max_chars=1500, overlap_chars=200)

    def test_registered(self):
        assert operator_registry.get("chunker", "paragraph_overlap") is ParagraphOverlapChunker

    def test_empty_input(self, chunker):
        assert chunker.chunk("") == []
        assert chunker.chunk("   \n\n  ") == []

    def test_short_input_single_chunk(self, chunker):
        pieces = chunker.chunk("Horário de atendimento: segunda a sexta, 9h às 18h.")
        assert len(pieces) == 1
        assert pieces[0].index == 0
        assert pieces[0].metadata["char_count"] == len(pieces[0].text)
        assert pieces[0].metadata["token_estimate"] == estimate_tokens(pieces[0].text)

    def test_3200_chars_gives_three_overlapping_chunks(self, chunker):
        """约 3200 字符、三段：恰好 3 个片段，后一片段以前一片段末尾的 40 个单词开头"""
        text = make_paragraphs(3, 107)
        assert 3150 <= len(text) <= 3250

        pieces = chunker.chunk(text)

        assert len(pieces) == 3
        assert [p.index for p in pieces] == [0, 1, 2]
        for piece in pieces:
            assert len(piece.text) <= 1500
        for previous, current in zip(pieces, pieces[1:]):
            overlap = " ".join(previous.text.split()[-40:])
            assert current.text.startswith(overlap)

    def test_non_overlap_regions_reconstruct_input(self, chunker):
        text = make_paragraphs(5, 60)
        pieces = chunker.chunk(text)

        words = pieces[0].text.split()
        for previous, current in zip(pieces, pieces[1:]):
            seed = " ".join(previous.text.split()[-40:])
            words.extend(current.text[len(seed):].split())
        assert words == text.split()

    def test_single_paragraph_sentences_overlap(self, chunker):
        """单段约 3200 字符：按句子切分的片段同样以前一片段末尾的 40 个单词开头"""
        text = make_sentences(53, 6)
        assert "\n" not in text
        assert 3150 <= len(text) <= 3250

        pieces = chunker.chunk(text)

        assert len(pieces) == 3
        for piece in pieces:
            assert len(piece.text) <= 1500
        for previous, current in zip(pieces, pieces[1:]):
            overlap = " ".join(previous.text.split()[-40:])
            assert current.text.startswith(overlap + " ")

    def test_sentence_path_seeded_from_previous_paragraph(self, chunker):
        """短段落之后紧跟超长段落：句子切分的第一个片段以短段落末尾单词开头"""
        intro = make_paragraphs(1, 100)
        text = f"{intro}\n\n{make_sentences(40, 6)}"

        pieces = chunker.chunk(text)

        assert pieces[0].text == intro
        assert pieces[1].text.startswith(" ".join(intro.split()[-40:]) + " s00000000")

    def test_randomized_reconstruction_and_size(self):
        rng = random.Random(20240611)
        for _ in range(60):
            max_chars = rng.choice([300, 800, 1500])
            overlap_chars = rng.choice([0, 100, 200])
            chunker = ParagraphOverlapChunker(max_chars=max_chars, overlap_chars=overlap_chars)
            text = random_document(rng)

            pieces = chunker.chunk(text)

            assert [p.index for p in pieces] == list(range(len(pieces)))
            assert all(len(p.text) <= max_chars for p in pieces)
            words = pieces[0].text.split()
            for previous, current in zip(pieces, pieces[1:]):
                words.extend(strip_overlap(previous.text.split(), current.text.split(), chunker.overlap_words))
            assert words == normalize_text(text).split()

    def test_long_paragraph_splits_by_sentence(self, chunker):
        sentence = "Nós oferecemos suporte completo para todos os clientes. "
        text = sentence * 60
        pieces = chunker.chunk(text)

        assert len(pieces) > 1
        for piece in pieces:
            assert len(piece.text) <= 1500
            assert piece.text.endswith(".")

    def test_single_long_sentence_hard_split(self):
        chunker = ParagraphOverlapChunker(max_chars=100, overlap_chars=0)
        text = "x" * 250
        pieces = chunker.chunk(text)

        assert [len(p.text) for p in pieces] == [100, 100, 50]

    def test_deterministic(self, chunker):
        text = make_paragraphs(6, 80)
        first = [(p.index, p.text) for p in chunker.chunk(text)]
        second = [(p.index, p.text) for p in chunker.chunk(text)]
        assert first == second

    def test_invalid_arguments(self):
        with pytest.raises(ValueError):
            ParagraphOverlapChunker(max_chars=0)
        with pytest.raises(ValueError):
            ParagraphOverlapChunker(overlap_chars=-1)
