"""
知识条目存储测试

- create_item 物化 resolved_content / content_hash
- 继承全局条目的拼接与级联
- replace_chunks 整体替换
- list_dirty_items 过滤
"""

import pytest

from knowledge_pipeline.exceptions import IngestionError
from knowledge_pipeline.pipeline.base import ChunkPiece
from knowledge_pipeline.services.knowledge_store import (
    content_hash,
    count_chunks,
    create_item,
    list_dirty_items,
    mark_published,
    replace_chunks,
    soft_delete_item,
    update_item,
)

ORG_ID = "org-0001"


async def _item(session, title="Item", content="conteúdo", **kwargs):
    return await create_item(session, organization_id=ORG_ID, title=title, content=content, source="manual", **kwargs)


class TestMaterialization:

    @pytest.mark.asyncio
    async def test_create_materializes(self, session):
        item = await _item(session, content="Aceitamos Pix e cartão.")

        assert item.resolved_content == "Aceitamos Pix e cartão."
        assert item.content_hash == content_hash("Aceitamos Pix e cartão.")
        assert item.version == 1
        assert item.needs_reindex is True
        assert item.status == "processing"

    @pytest.mark.asyncio
    async def test_update_bumps_version(self, session):
        item = await _item(session)
        await mark_published(session, item, {})
        assert item.needs_reindex is False

        changed = await update_item(session, item, content="novo conteúdo")
        await session.commit()

        assert changed is True
        assert item.version == 2
        assert item.needs_reindex is True

    @pytest.mark.asyncio
    async def test_title_only_change_keeps_hash(self, session):
        item = await _item(session)
        await mark_published(session, item, {})

        changed = await update_item(session, item, title="Outro título")

        assert changed is False
        assert item.version == 1
        assert item.needs_reindex is False

    @pytest.mark.asyncio
    async def test_inherits_global_and_cascades(self, session):
        parent = await _item(session, title="Global", content="Regra global.")
        child = await _item(
            session,
            title="Produto",
            content="Regra do produto.",
            scope="product",
            global_item_id=parent.id,
            inherits_global=True,
        )
        assert child.resolved_content == "Regra global.\n\nRegra do produto."

        await mark_published(session, child, {})
        await update_item(session, parent, content="Regra global nova.")
        await session.commit()

        assert child.resolved_content == "Regra global nova.\n\nRegra do produto."
        assert child.version == 2
        assert child.needs_reindex is True

    @pytest.mark.asyncio
    async def test_soft_deleted_parent_drops_inherited_text(self, session):
        parent = await _item(session, title="Global", content="Regra global.")
        child = await _item(session, content="Só do produto.", global_item_id=parent.id, inherits_global=True)

        await soft_delete_item(session, parent)
        await session.commit()

        assert parent.is_active is False
        assert child.resolved_content == "Só do produto."

    @pytest.mark.asyncio
    async def test_single_source(self, session):
        with pytest.raises(IngestionError):
            await _item(session, source_url="https://a.com", source_file_path="org/1-a.txt")


class TestChunks:

    @pytest.mark.asyncio
    async def test_replace_chunks_is_wholesale(self, session):
        item = await _item(session)
        first = [ChunkPiece(text=f"p{i}", index=i, metadata={}) for i in range(3)]
        await replace_chunks(session, item, first, [[0.0, 1.0]] * 3)
        assert await count_chunks(session, item.id) == 3

        second = [ChunkPiece(text="único", index=0, metadata={})]
        await replace_chunks(session, item, second, [[1.0, 0.0]])
        assert await count_chunks(session, item.id) == 1

    @pytest.mark.asyncio
    async def test_count_mismatch_rejected(self, session):
        item = await _item(session)
        with pytest.raises(IngestionError):
            await replace_chunks(session, item, [ChunkPiece(text="a", index=0, metadata={})], [])

    @pytest.mark.asyncio
    async def test_list_dirty_items(self, session):
        dirty = await _item(session, title="Sujo")
        clean = await _item(session, title="Limpo")
        await mark_published(session, clean, {})
        deleted = await _item(session, title="Apagado")
        await soft_delete_item(session, deleted)
        await session.commit()
        other_org = await create_item(session, organization_id="org-2", title="Outro", content="x", source="manual")

        ids = [i.id for i in await list_dirty_items(session, ORG_ID)]

        assert ids == [dirty.id]
        assert other_org.id not in ids
