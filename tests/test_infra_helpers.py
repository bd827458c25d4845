"""
基础设施辅助模块测试

- fetch_with_retry：只在 429 时退避重试
- ItemLockManager：进程内锁按条目串行化
- LocalObjectStorage / build_storage_path
- validate_url / url_hostname
"""

import asyncio
from unittest.mock import AsyncMock, patch

import httpx
import pytest

from knowledge_pipeline.exceptions import StorageError
from knowledge_pipeline.infra.http_retry import fetch_with_retry
from knowledge_pipeline.infra.item_lock import ItemLockManager
from knowledge_pipeline.infra.storage import LocalObjectStorage, build_storage_path
from knowledge_pipeline.infra.url_utils import url_hostname, validate_url


def counting_transport(statuses: list[int], calls: list):
    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(request)
        return httpx.Response(statuses[min(len(calls) - 1, len(statuses) - 1)])

    return httpx.MockTransport(handler)


class TestFetchWithRetry:

    @pytest.mark.asyncio
    async def test_retries_on_429_with_backoff(self):
        calls: list = []
        sleep = AsyncMock()
        with patch("knowledge_pipeline.infra.http_retry.asyncio.sleep", sleep):
            async with httpx.AsyncClient(transport=counting_transport([429, 429, 200], calls)) as client:
                response = await fetch_with_retry(client, "GET", "https://example.com", max_attempts=5, base_delay=1.0)

        assert response.status_code == 200
        assert len(calls) == 3
        assert [c.args[0] for c in sleep.await_args_list] == [1.0, 2.0]

    @pytest.mark.asyncio
    async def test_other_status_not_retried(self):
        calls: list = []
        async with httpx.AsyncClient(transport=counting_transport([500], calls)) as client:
            response = await fetch_with_retry(client, "GET", "https://example.com", max_attempts=5, base_delay=0)

        assert response.status_code == 500
        assert len(calls) == 1

    @pytest.mark.asyncio
    async def test_gives_up_after_max_attempts(self):
        calls: list = []
        async with httpx.AsyncClient(transport=counting_transport([429], calls)) as client:
            response = await fetch_with_retry(client, "GET", "https://example.com", max_attempts=3, base_delay=0)

        assert response.status_code == 429
        assert len(calls) == 3


class TestItemLockManager:

    @pytest.mark.asyncio
    async def test_local_lock_serializes_same_item(self):
        manager = ItemLockManager(redis_url="")
        assert manager.distributed is False
        events: list[str] = []

        async def worker(name: str):
            async with manager.lock("item-1"):
                events.append(f"{name}-start")
                await asyncio.sleep(0.01)
                events.append(f"{name}-end")

        await asyncio.gather(worker("a"), worker("b"))

        assert events in (
            ["a-start", "a-end", "b-start", "b-end"],
            ["b-start", "b-end", "a-start", "a-end"],
        )

    @pytest.mark.asyncio
    async def test_different_items_do_not_block(self):
        manager = ItemLockManager(redis_url="")
        async with manager.lock("item-1"):
            await asyncio.wait_for(self._acquire(manager, "item-2"), timeout=1)

    @staticmethod
    async def _acquire(manager: ItemLockManager, item_id: str):
        async with manager.lock(item_id):
            return True


class TestLocalObjectStorage:

    def test_build_storage_path(self):
        path = build_storage_path("org-1", "Relatório final (v2).pdf", timestamp_ms=1700000000000)
        assert path == "org-1/1700000000000-Relat_rio_final__v2_.pdf"

    @pytest.mark.asyncio
    async def test_upload_and_download(self, tmp_path):
        storage = LocalObjectStorage(root=str(tmp_path), bucket="uploads")
        path = await storage.upload("org-1/1-a.txt", b"conteudo")

        assert path == "org-1/1-a.txt"
        assert (tmp_path / "uploads" / "org-1" / "1-a.txt").read_bytes() == b"conteudo"
        assert await storage.download(path) == b"conteudo"

    @pytest.mark.asyncio
    async def test_rejects_path_traversal(self, tmp_path):
        storage = LocalObjectStorage(root=str(tmp_path), bucket="uploads")
        with pytest.raises(StorageError):
            await storage.upload("../escape.txt", b"x")

    @pytest.mark.asyncio
    async def test_missing_file(self, tmp_path):
        storage = LocalObjectStorage(root=str(tmp_path), bucket="uploads")
        with pytest.raises(StorageError):
            await storage.download("org-1/missing.txt")


class TestUrlUtils:

    def test_valid(self):
        assert validate_url("  https://exemplo.com.br/sobre  ") == "https://exemplo.com.br/sobre"
        assert url_hostname("https://exemplo.com.br/sobre") == "exemplo.com.br"

    @pytest.mark.parametrize("url", [None, "", "ftp://exemplo.com", "exemplo.com", "http://"])
    def test_invalid(self, url):
        with pytest.raises(ValueError):
            validate_url(url)
