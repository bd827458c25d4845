"""
对象存储（上传原始文件）

文件在任何处理之前先写入存储，提取失败时源文件仍可追溯和重新提取。
路径格式：{organization_id}/{毫秒时间戳}-{清洗后的文件名}

当前实现为本地文件系统：{storage_root}/{storage_bucket}/{path}
"""

import logging
import re
import time
from pathlib import Path

from starlette.concurrency import run_in_threadpool

from knowledge_pipeline.config import get_settings
from knowledge_pipeline.exceptions import StorageError

logger = logging.getLogger(__name__)

_UNSAFE_CHARS = re.compile(r"[^a-zA-Z0-9.-]")


def build_storage_path(organization_id: str, filename: str, timestamp_ms: int | None = None) -> str:
    """生成按组织隔离的存储路径，文件名中除字母数字、点和连字符外的字符替换为下划线"""
    if timestamp_ms is None:
        timestamp_ms = int(time.time() * 1000)
    safe_name = _UNSAFE_CHARS.sub("_", filename or "upload")
    return f"{organization_id}/{timestamp_ms}-{safe_name}"


class LocalObjectStorage:
    """本地文件系统对象存储"""

    def __init__(self, root: str | None = None, bucket: str | None = None):
        settings = get_settings()
        self.base_dir = Path(root or settings.storage_root) / (bucket or settings.storage_bucket)

    def _resolve(self, path: str) -> Path:
        target = (self.base_dir / path).resolve()
        if not target.is_relative_to(self.base_dir.resolve()):
            raise StorageError(f"Invalid storage path: {path}")
        return target

    def _write(self, target: Path, data: bytes) -> None:
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_bytes(data)

    async def upload(self, path: str, data: bytes) -> str:
        """写入文件，返回存储路径"""
        target = self._resolve(path)
        try:
            await run_in_threadpool(self._write, target, data)
        except OSError as e:
            raise StorageError(f"Failed to store file {path}: {e}") from e
        logger.info(f"文件已存储: {path} ({len(data)} bytes)")
        return path

    async def download(self, path: str) -> bytes:
        target = self._resolve(path)
        try:
            return await run_in_threadpool(target.read_bytes)
        except OSError as e:
            raise StorageError(f"Failed to read file {path}: {e}") from e


def get_storage() -> LocalObjectStorage:
    return LocalObjectStorage()
