"""
导入编排测试

文件导入：
- 纯文本导入 → published，原文件写入存储
- 扫描版 PDF → 条目 error、零片段、原文件仍在存储中
- 文本过短 → error
URL 导入（httpx.MockTransport）：
- 正文提取、标题、domain/scraped_at 元数据
- 非 2xx / 内容不足 → 不创建条目
"""

import pytest
import httpx
from sqlalchemy import func, select

from knowledge_pipeline.exceptions import ExtractionError, UrlFetchError
from knowledge_pipeline.infra.storage import LocalObjectStorage
from knowledge_pipeline.models import KnowledgeItem
from knowledge_pipeline.pipeline.extractors.pdf import SCANNED_PDF_MESSAGE
from knowledge_pipeline.services.importers import INSUFFICIENT_TEXT_MESSAGE, import_file, import_url
from knowledge_pipeline.services.knowledge_store import count_chunks

ORG_ID = "org-0001"

ARTICLE = " ".join(["Oferecemos planos mensais e anuais com suporte dedicado para empresas."] * 6)
PAGE = f"""
<html><head><title>Planos | Exemplo</title></head>
<body><nav>Menu</nav><article><h1>Planos</h1><p>{ARTICLE}</p></article><footer>Rodapé</footer></body></html>
"""


def page_transport(status_code: int = 200, html: str = PAGE, seen: list | None = None):
    def handler(request: httpx.Request) -> httpx.Response:
        if seen is not None:
            seen.append(request)
        return httpx.Response(status_code, text=html, headers={"Content-Type": "text/html"})

    return httpx.MockTransport(handler)


async def _item_count(session) -> int:
    return (await session.execute(select(func.count(KnowledgeItem.id)))).scalar_one()


class TestImportFile:

    @pytest.mark.asyncio
    async def test_text_file(self, session, tmp_path):
        storage = LocalObjectStorage(root=str(tmp_path))
        data = ("Horário de atendimento: segunda a sexta, das 9h às 18h. " * 3).encode("utf-8")

        result = await import_file(
            session,
            organization_id=ORG_ID,
            filename="horarios.txt",
            data=data,
            mime_type="text/plain",
            type="general",
            storage=storage,
        )

        item = result.item
        assert result.process.success is True
        assert item.title == "horarios"
        assert item.source == "import_txt"
        assert item.status == "published"
        assert item.source_file_path.startswith(f"{ORG_ID}/")
        assert item.extra_metadata["file_name"] == "horarios.txt"
        assert item.extra_metadata["original_content"] == data.decode("utf-8").strip()
        assert await storage.download(item.source_file_path) == data

    @pytest.mark.asyncio
    async def test_scanned_pdf_marks_error(self, session, tmp_path):
        storage = LocalObjectStorage(root=str(tmp_path))
        data = b"%PDF-1.4\n" + bytes(range(128, 256)) * 8 + b"\n%%EOF"

        with pytest.raises(ExtractionError) as exc_info:
            await import_file(
                session,
                organization_id=ORG_ID,
                filename="contrato.pdf",
                data=data,
                mime_type="application/pdf",
                type="policy",
                storage=storage,
            )

        item_id = exc_info.value.item_id
        item = await session.get(KnowledgeItem, item_id)
        assert item.status == "error"
        assert item.error_message == SCANNED_PDF_MESSAGE
        assert item.source == "import_pdf"
        assert await count_chunks(session, item_id) == 0
        assert await storage.download(item.source_file_path) == data

    @pytest.mark.asyncio
    async def test_too_short(self, session, tmp_path):
        with pytest.raises(ExtractionError) as exc_info:
            await import_file(
                session,
                organization_id=ORG_ID,
                filename="nota.md",
                data=b"# Curto",
                mime_type=None,
                type="general",
                storage=LocalObjectStorage(root=str(tmp_path)),
            )

        item = await session.get(KnowledgeItem, exc_info.value.item_id)
        assert item.error_message == INSUFFICIENT_TEXT_MESSAGE


class TestImportUrl:

    @pytest.mark.asyncio
    async def test_imports_page(self, session, test_settings):
        seen: list = []
        async with httpx.AsyncClient(transport=page_transport(seen=seen)) as client:
            result = await import_url(
                session, organization_id=ORG_ID, url="https://exemplo.com.br/planos", type="product", client=client,
            )

        item = result.item
        assert seen[0].headers["User-Agent"] == test_settings.url_fetch_user_agent
        assert result.process.success is True
        assert item.title == "Planos | Exemplo"
        assert item.source == "import_url"
        assert item.source_url == "https://exemplo.com.br/planos"
        assert item.extra_metadata["domain"] == "exemplo.com.br"
        assert item.extra_metadata["content_container"] == "article"
        assert "scraped_at" in item.extra_metadata
        assert "Menu" not in item.content
        assert ARTICLE in item.content

    @pytest.mark.asyncio
    async def test_explicit_title(self, session):
        async with httpx.AsyncClient(transport=page_transport()) as client:
            result = await import_url(
                session, organization_id=ORG_ID, url="https://exemplo.com.br", type="general",
                title="Nossos planos", client=client,
            )
        assert result.item.title == "Nossos planos"

    @pytest.mark.asyncio
    async def test_invalid_url(self, session):
        with pytest.raises(ValueError):
            await import_url(session, organization_id=ORG_ID, url="ftp://exemplo.com", type="general")

    @pytest.mark.asyncio
    async def test_http_error_creates_nothing(self, session):
        async with httpx.AsyncClient(transport=page_transport(status_code=404)) as client:
            with pytest.raises(UrlFetchError, match="404"):
                await import_url(session, organization_id=ORG_ID, url="https://exemplo.com/x", type="general", client=client)
        assert await _item_count(session) == 0

    @pytest.mark.asyncio
    async def test_insufficient_content_creates_nothing(self, session):
        html = "<html><body><p>Página quase vazia</p></body></html>"
        async with httpx.AsyncClient(transport=page_transport(html=html)) as client:
            with pytest.raises(ExtractionError):
                await import_url(session, organization_id=ORG_ID, url="https://exemplo.com", type="general", client=client)
        assert await _item_count(session) == 0
