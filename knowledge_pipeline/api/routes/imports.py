"""
导入接口

- POST /v1/knowledge/import/file  multipart 文件上传
- POST /v1/knowledge/import/url   网页导入
"""

import logging

from fastapi import APIRouter, Depends, File, Form, UploadFile, status
from sqlalchemy.ext.asyncio import AsyncSession

from knowledge_pipeline.api.deps import get_actor_id, get_db_session
from knowledge_pipeline.api.errors import http_error
from knowledge_pipeline.config import get_settings
from knowledge_pipeline.exceptions import ExtractionError, StorageError, UrlFetchError
from knowledge_pipeline.schemas.knowledge import ImportResponse, ImportUrlRequest
from knowledge_pipeline.services.importers import import_file, import_url

logger = logging.getLogger(__name__)

router = APIRouter()


def _extraction_error(e: ExtractionError):
    exc = http_error(status.HTTP_422_UNPROCESSABLE_ENTITY, "EXTRACTION_FAILED", str(e))
    if e.item_id:
        exc.detail["item_id"] = e.item_id
    return exc


@router.post("/v1/knowledge/import/file", response_model=ImportResponse)
async def import_file_endpoint(
    file: UploadFile = File(...),
    organization_id: str = Form(..., alias="organizationId"),
    type: str = Form("general"),
    title: str | None = Form(None),
    agent_id: str | None = Form(None, alias="agentId"),
    db: AsyncSession = Depends(get_db_session),
    actor_id: str | None = Depends(get_actor_id),
):
    """
    上传文件并导入

    原始文件先写入存储；提取失败时条目已存在且为 error，返回 422 并带 item_id。
    """
    settings = get_settings()
    data = await file.read()
    if not data:
        raise http_error(status.HTTP_400_BAD_REQUEST, "VALIDATION_ERROR", "File is empty")
    if len(data) > settings.max_upload_bytes:
        raise http_error(
            status.HTTP_413_REQUEST_ENTITY_TOO_LARGE,
            "FILE_TOO_LARGE",
            f"File exceeds {settings.max_upload_bytes} bytes",
        )

    try:
        result = await import_file(
            db,
            organization_id=organization_id,
            filename=file.filename or "upload",
            data=data,
            mime_type=file.content_type,
            type=type,
            title=title,
            agent_id=agent_id,
            created_by=actor_id,
        )
    except ExtractionError as e:
        raise _extraction_error(e)
    except StorageError as e:
        logger.error(f"文件写入存储失败: {e}")
        raise http_error(status.HTTP_500_INTERNAL_SERVER_ERROR, "STORAGE_ERROR", str(e))

    return ImportResponse(**result.to_dict())


@router.post("/v1/knowledge/import/url", response_model=ImportResponse)
async def import_url_endpoint(
    payload: ImportUrlRequest,
    db: AsyncSession = Depends(get_db_session),
    actor_id: str | None = Depends(get_actor_id),
):
    try:
        result = await import_url(
            db,
            organization_id=payload.organization_id,
            url=payload.url,
            type=payload.type,
            title=payload.title,
            agent_id=payload.agent_id,
            created_by=actor_id,
        )
    except ValueError as e:
        raise http_error(status.HTTP_422_UNPROCESSABLE_ENTITY, "INVALID_URL", str(e))
    except UrlFetchError as e:
        raise http_error(status.HTTP_502_BAD_GATEWAY, "URL_FETCH_FAILED", str(e))
    except ExtractionError as e:
        raise _extraction_error(e)

    return ImportResponse(**result.to_dict())
