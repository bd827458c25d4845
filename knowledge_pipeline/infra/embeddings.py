"""
文本向量化模块 (Embeddings)

将片段文本批量转换为固定维度的向量。

支持的 Embedding 提供者：
- Voyage AI (voyage-3，1024 维，默认)
- OpenAI 兼容 API (text-embedding-3-small 等)
- Ollama (本地模型：bge-m3 等)
- hash (确定性伪向量，仅用于开发测试)

错误分类：
- EmbeddingProviderUnavailable: 服务不可达、返回错误状态或缺少凭证。
  首次入库路径可以降级为零向量（embed_with_fallback），重处理路径必须失败。
- EmbeddingDimensionError: 返回的向量数量或维度不符，任何路径下都是致命错误。

使用示例：
    from knowledge_pipeline.infra.embeddings import embed_documents

    vecs = await embed_documents(["标题\\n\\n片段1", "标题\\n\\n片段2"])
"""

import hashlib
import logging
import math
from functools import lru_cache
from typing import Any

import httpx
import openai
from openai import AsyncOpenAI

from knowledge_pipeline.config import get_settings
from knowledge_pipeline.exceptions import (
    EmbeddingDimensionError,
    EmbeddingError,
    EmbeddingProviderUnavailable,
)

logger = logging.getLogger(__name__)


@lru_cache(maxsize=8)
def _get_openai_compatible_client(api_key: str | None, base_url: str | None, timeout: float) -> AsyncOpenAI:
    """获取 OpenAI 兼容客户端"""
    return AsyncOpenAI(api_key=api_key, base_url=base_url, timeout=timeout)


async def _voyage_embeddings_batch(
    texts: list[str],
    config: dict[str, Any],
    input_type: str,
    client: httpx.AsyncClient,
) -> list[list[float]]:
    """Voyage AI：一次请求一个批次，按 index 还原输入顺序"""
    response = await client.post(
        f"{config['base_url'].rstrip('/')}/embeddings",
        headers={"Authorization": f"Bearer {config['api_key']}"},
        json={"input": texts, "model": config["model"], "input_type": input_type},
    )
    response.raise_for_status()
    data = response.json().get("data") or []
    if data and all("index" in d for d in data):
        data = sorted(data, key=lambda d: d["index"])
    return [d["embedding"] for d in data]


async def _openai_compatible_embeddings_batch(texts: list[str], config: dict[str, Any]) -> list[list[float]]:
    client = _get_openai_compatible_client(config.get("api_key"), config.get("base_url"), config["timeout"])
    response = await client.embeddings.create(model=config["model"], input=texts)
    sorted_data = sorted(response.data, key=lambda x: x.index)
    return [d.embedding for d in sorted_data]


async def _ollama_embeddings_batch(
    texts: list[str],
    config: dict[str, Any],
    client: httpx.AsyncClient,
) -> list[list[float]]:
    """Ollama 不支持批量接口，逐条调用"""
    url = f"{config['base_url'].rstrip('/')}/api/embeddings"
    results = []
    for text in texts:
        response = await client.post(url, json={"model": config["model"], "prompt": text})
        response.raise_for_status()
        results.append(response.json()["embedding"])
    return results


def deterministic_hash_embed(text: str, dim: int = 1024) -> list[float]:
    """
    确定性哈希 Embedding（无需 API，用于开发测试）

    使用 MD5 保证跨进程结果一致。无语义信息。
    """
    vec = [0.0] * dim
    for token in text.split():
        h = int(hashlib.md5(token.encode()).hexdigest(), 16)
        vec[h % dim] += 1.0

    norm = math.sqrt(sum(v * v for v in vec)) or 1.0
    return [v / norm for v in vec]


def validate_vectors(vectors: list[list[float]], expected_count: int, dim: int) -> None:
    """
    校验向量数量和维度

    数量不符说明批次顺序已不可信；维度不符说明模型配置错误。两种情况都拒绝写入。
    """
    if len(vectors) != expected_count:
        raise EmbeddingDimensionError(
            f"Embedding count mismatch: got {len(vectors)} vectors for {expected_count} inputs"
        )
    for vec in vectors:
        if len(vec) != dim:
            raise EmbeddingDimensionError(f"Embedding dimension mismatch: got {len(vec)}, expected {dim}")


async def embed_documents(
    texts: list[str],
    input_type: str = "document",
    client: httpx.AsyncClient | None = None,
) -> list[list[float]]:
    """
    批量获取文本向量，输出顺序与输入一一对应

    Args:
        texts: 文本列表（入库时为 "标题\\n\\n片段"）
        input_type: 向量用途提示，入库时为 "document"
        client: 可选的共享 HTTP 客户端，未提供时按配置的超时创建

    Raises:
        EmbeddingProviderUnavailable: 服务不可达或未配置
        EmbeddingDimensionError: 数量或维度不符
    """
    if not texts:
        return []

    settings = get_settings()
    config = settings.get_embedding_config()
    provider = config["provider"]
    dim = config["dim"]
    batch_size = config["batch_size"]

    if provider in ("voyage", "openai") and not config.get("api_key"):
        raise EmbeddingProviderUnavailable(f"{provider.upper()}_API_KEY 未配置，无法生成 Embedding")

    owns_client = client is None
    if owns_client and provider in ("voyage", "ollama"):
        client = httpx.AsyncClient(timeout=config["timeout"])

    vectors: list[list[float]] = []
    try:
        for start in range(0, len(texts), batch_size):
            batch = texts[start:start + batch_size]
            if provider == "voyage":
                batch_vectors = await _voyage_embeddings_batch(batch, config, input_type, client)
            elif provider == "openai":
                batch_vectors = await _openai_compatible_embeddings_batch(batch, config)
            elif provider == "ollama":
                batch_vectors = await _ollama_embeddings_batch(batch, config, client)
            elif provider == "hash":
                batch_vectors = [deterministic_hash_embed(t, dim=dim) for t in batch]
            else:
                raise EmbeddingProviderUnavailable(f"未知 Embedding 提供者: {provider}")
            validate_vectors(batch_vectors, len(batch), dim)
            vectors.extend(batch_vectors)
    except (httpx.HTTPError, openai.APIError) as e:
        logger.error(f"Embedding 请求失败 ({provider}): {e}")
        raise EmbeddingProviderUnavailable(f"Embedding provider error ({provider}): {e}") from e
    except (ValueError, KeyError, TypeError) as e:
        # 200 响应但内容不是预期的 JSON 结构
        logger.error(f"Embedding 响应无法解析 ({provider}): {e!r}")
        raise EmbeddingProviderUnavailable(f"Embedding provider returned malformed response ({provider}): {e!r}") from e
    finally:
        if owns_client and client is not None:
            await client.aclose()

    logger.debug(f"生成 {len(vectors)} 个向量 ({provider}/{config['model']})")
    return vectors


async def embed_with_fallback(
    texts: list[str],
    allow_fallback: bool,
    client: httpx.AsyncClient | None = None,
) -> tuple[list[list[float]], bool]:
    """
    获取向量，首次入库时允许降级为零向量

    Returns:
        (向量列表, 是否使用了零向量降级)

    Raises:
        EmbeddingDimensionError: 始终抛出，不做降级
        EmbeddingProviderUnavailable: allow_fallback=False 时抛出
    """
    try:
        return await embed_documents(texts, client=client), False
    except EmbeddingDimensionError:
        raise
    except EmbeddingError as e:
        if not allow_fallback:
            raise
        dim = get_settings().embedding_dim
        logger.warning(
            f"⚠️ Embedding 服务不可用，使用零向量降级（条目仅可关键词检索，需后续重新向量化）: {e}",
            extra={"chunk_count": len(texts), "embedding_dim": dim},
        )
        return [[0.0] * dim for _ in texts], True
