"""
切分与向量化处理服务测试

测试 knowledge_pipeline/services/processing.py：
- create_text_item 成功发布、元数据、片段数
- 向量服务不可用：首次入库降级为零向量（needs_reindex 保持 true），重处理直接失败
- 空内容 → error
- reprocess_items 只处理有 original_content 的条目，结果确定
- reindex_dirty_items / run_reindex_sweep / mark_interrupted_items
- 向量服务返回非 JSON 或处理中出现未预期异常时条目不会停留在 processing
"""

from unittest.mock import AsyncMock, patch

import httpx
import pytest
from sqlalchemy import select

from knowledge_pipeline.infra import embeddings
from knowledge_pipeline.models import KnowledgeChunk, KnowledgeItem
from knowledge_pipeline.services.knowledge_store import count_chunks, create_item, update_item
from knowledge_pipeline.services.processing import (
    INTERRUPTED_MESSAGE,
    NO_CONTENT_MESSAGE,
    create_text_item,
    mark_interrupted_items,
    process_existing_item,
    reindex_dirty_items,
    reprocess_items,
    run_reindex_sweep,
)

ORG_ID = "org-0001"

LONG_TEXT = "\n\n".join(
    " ".join(f"palavra{p}x{w}" for w in range(90)) for p in range(4)
)


async def _chunks(session, item_id):
    result = await session.execute(
        select(KnowledgeChunk).where(KnowledgeChunk.item_id == item_id).order_by(KnowledgeChunk.chunk_index)
    )
    return list(result.scalars().all())


class TestCreateTextItem:

    @pytest.mark.asyncio
    async def test_publishes_with_metadata(self, session, test_settings):
        item, result = await create_text_item(
            session, organization_id=ORG_ID, title="Formas de pagamento", content=LONG_TEXT,
        )

        assert result.success is True
        assert item.status == "published"
        assert item.needs_reindex is False
        assert item.last_indexed_at is not None
        assert result.chunk_count > 1
        metadata = item.extra_metadata
        assert metadata["original_content"] == LONG_TEXT
        assert metadata["chunk_count"] == result.chunk_count
        assert metadata["char_count"] == len(LONG_TEXT)
        assert metadata["embedding_dim"] == test_settings.embedding_dim
        assert metadata["embedding_fallback"] is False

        chunks = await _chunks(session, item.id)
        assert [c.chunk_index for c in chunks] == list(range(result.chunk_count))
        assert all(len(c.embedding) == test_settings.embedding_dim for c in chunks)

    @pytest.mark.asyncio
    async def test_fallback_embeddings_keep_needs_reindex(self, session, test_settings):
        test_settings.embedding_provider = "voyage"
        test_settings.voyage_api_key = None

        item, result = await create_text_item(
            session, organization_id=ORG_ID, title="Sem vetor", content="Conteúdo curto.",
        )

        assert result.success is True
        assert result.used_fallback_embeddings is True
        assert item.status == "published"
        assert item.needs_reindex is True
        chunks = await _chunks(session, item.id)
        assert chunks[0].embedding == [0.0] * test_settings.embedding_dim

    @pytest.mark.asyncio
    async def test_whitespace_content_errors(self, session):
        item, result = await create_text_item(
            session, organization_id=ORG_ID, title="Vazio", content="   \n\n  ",
        )

        assert result.success is False
        assert item.status == "error"
        assert item.error_message == NO_CONTENT_MESSAGE
        assert await count_chunks(session, item.id) == 0


class TestProcessExistingItem:

    @pytest.mark.asyncio
    async def test_missing_item(self, session):
        with pytest.raises(LookupError):
            await process_existing_item(session, "nao-existe", "texto")

    @pytest.mark.asyncio
    async def test_processes_and_snapshots(self, session):
        item = await create_item(session, organization_id=ORG_ID, title="Webhook", source="manual")

        result = await process_existing_item(session, item.id, "Conteúdo enviado pelo webhook.")

        assert result.success is True
        assert item.extra_metadata["original_content"] == "Conteúdo enviado pelo webhook."
        assert await count_chunks(session, item.id) == 1


class TestReprocess:

    @pytest.mark.asyncio
    async def test_requires_selector(self, session):
        with pytest.raises(ValueError):
            await reprocess_items(session)

    @pytest.mark.asyncio
    async def test_idempotent_and_skips_without_snapshot(self, session):
        item, first = await create_text_item(session, organization_id=ORG_ID, title="Guia", content=LONG_TEXT)
        bare = await create_item(session, organization_id=ORG_ID, title="Sem snapshot", content="x", source="manual")
        before = [c.content for c in await _chunks(session, item.id)]

        summary = await reprocess_items(session, organization_id=ORG_ID)

        assert summary.processed == 1
        assert summary.successful == 1
        assert summary.total_chunks == first.chunk_count
        assert [r.item_id for r in summary.results] == [item.id]
        assert bare.id not in [r.item_id for r in summary.results]
        assert [c.content for c in await _chunks(session, item.id)] == before
        assert "reprocessed_at" in item.extra_metadata

    @pytest.mark.asyncio
    async def test_provider_error_is_fatal(self, session, test_settings):
        item, _ = await create_text_item(session, organization_id=ORG_ID, title="Guia", content="Texto.")
        test_settings.embedding_provider = "voyage"
        test_settings.voyage_api_key = None

        summary = await reprocess_items(session, item_id=item.id)

        assert summary.failed == 1
        assert item.status == "error"
        assert "VOYAGE_API_KEY" in item.error_message


class TestReindex:

    @pytest.mark.asyncio
    async def test_reindexes_dirty_items(self, session):
        item, _ = await create_text_item(session, organization_id=ORG_ID, title="Preço", content="R$ 100.")
        await update_item(session, item, content="R$ 120 por mês.")
        await session.commit()
        assert item.needs_reindex is True

        results = await reindex_dirty_items(session, ORG_ID)

        assert [r.item_id for r in results] == [item.id]
        assert item.needs_reindex is False
        chunks = await _chunks(session, item.id)
        assert chunks[0].content == "R$ 120 por mês."

    @pytest.mark.asyncio
    async def test_background_sweep_uses_own_session(self, session, session_factory):
        item, _ = await create_text_item(session, organization_id=ORG_ID, title="Prazo", content="5 dias.")
        await update_item(session, item, content="7 dias úteis.")
        await session.commit()

        await run_reindex_sweep(ORG_ID, session_factory=session_factory)

        await session.refresh(item)
        assert item.needs_reindex is False


class TestMarkInterrupted:

    @pytest.mark.asyncio
    async def test_processing_items_become_error(self, session):
        stuck = await create_item(session, organization_id=ORG_ID, title="Preso", source="manual")

        count = await mark_interrupted_items(session)

        assert count == 1
        refreshed = await session.get(KnowledgeItem, stuck.id, populate_existing=True)
        assert refreshed.status == "error"
        assert refreshed.error_message == INTERRUPTED_MESSAGE


@pytest.fixture
def html_gateway():
    """Voyage 地址返回 200 + HTML 网关页面（非 JSON）"""
    calls: list = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(request.url.path)
        return httpx.Response(200, text="<html>gateway</html>", headers={"content-type": "text/html"})

    transport = httpx.MockTransport(handler)
    real_client = httpx.AsyncClient
    with patch.object(
        embeddings.httpx, "AsyncClient", side_effect=lambda **kwargs: real_client(transport=transport, **kwargs)
    ):
        yield calls


class TestNeverStuckInProcessing:

    @pytest.mark.asyncio
    async def test_malformed_provider_response_falls_back_on_first_ingest(
        self, session, test_settings, html_gateway,
    ):
        test_settings.embedding_provider = "voyage"
        test_settings.voyage_api_key = "test-key"

        item, result = await create_text_item(
            session, organization_id=ORG_ID, title="Gateway", content="Conteúdo curto.",
        )

        assert html_gateway
        assert result.success is True
        assert result.used_fallback_embeddings is True
        assert item.status == "published"
        assert item.needs_reindex is True

    @pytest.mark.asyncio
    async def test_malformed_provider_response_fails_reprocess(self, session, test_settings, html_gateway):
        item, _ = await create_text_item(session, organization_id=ORG_ID, title="Guia", content="Texto.")
        test_settings.embedding_provider = "voyage"
        test_settings.voyage_api_key = "test-key"

        summary = await reprocess_items(session, item_id=item.id)

        assert summary.failed == 1
        assert item.status == "error"
        assert "malformed response" in item.error_message

    @pytest.mark.asyncio
    async def test_unexpected_exception_marks_error(self, session):
        with patch(
            "knowledge_pipeline.services.processing.replace_chunks",
            new=AsyncMock(side_effect=RuntimeError("boom")),
        ):
            item, result = await create_text_item(
                session, organization_id=ORG_ID, title="Falha", content="Texto qualquer.",
            )

        assert result.success is False
        assert result.status == "error"
        refreshed = await session.get(KnowledgeItem, item.id, populate_existing=True)
        assert refreshed.status == "error"
        assert "RuntimeError" in refreshed.error_message
        assert await count_chunks(session, item.id) == 0

    @pytest.mark.asyncio
    async def test_reindex_continues_after_unexpected_exception(self, session):
        first, _ = await create_text_item(session, organization_id=ORG_ID, title="A", content="Um.")
        second, _ = await create_text_item(session, organization_id=ORG_ID, title="B", content="Dois.")
        for item, content in ((first, "Um atualizado."), (second, "Dois atualizado.")):
            await update_item(session, item, content=content)
        await session.commit()

        original_embed = embeddings.deterministic_hash_embed

        def flaky(text, dim=1024):
            if text.startswith("A\n\n"):
                raise RuntimeError("boom")
            return original_embed(text, dim=dim)

        with patch.object(embeddings, "deterministic_hash_embed", side_effect=flaky):
            results = await reindex_dirty_items(session, ORG_ID)

        by_id = {r.item_id: r for r in results}
        assert by_id[first.id].success is False
        assert by_id[second.id].success is True
        assert first.status == "error"
        assert second.status == "published"
