"""
LLM 客户端模块

用于编辑请求解析、向导对话、内容合成、反馈分类。

支持的提供商：
- OpenAI 及兼容网关（openai SDK）
- Ollama（本地模型，/api/chat）

所有调用方都期望模型返回 JSON 对象：
- strip_code_fence 去掉 ```json ... ``` 包裹
- chat_json 解析失败时追加一次"只返回 JSON"的纠正提示重试，
  第二次仍失败抛出 LLMResponseFormatError，由调用方决定降级内容

使用示例：
    from knowledge_pipeline.infra.llm import chat_json

    data = await chat_json(
        [{"role": "system", "content": "..."}, {"role": "user", "content": "..."}],
        required_fields=("title", "content"),
    )
"""

import json
import logging
import re
from collections.abc import Sequence
from functools import lru_cache
from typing import Any

import httpx
import openai
from openai import AsyncOpenAI

from knowledge_pipeline.config import get_settings
from knowledge_pipeline.exceptions import (
    LLMError,
    LLMPaymentRequiredError,
    LLMRateLimitError,
    LLMResponseFormatError,
)

logger = logging.getLogger(__name__)

JSON_RETRY_MESSAGE = (
    "Sua resposta anterior não era JSON válido. Retorne APENAS o JSON, "
    "sem markdown, sem texto adicional. Comece com { e termine com }."
)

_CODE_FENCE = re.compile(r"^```(?:json|JSON)?\s*\n?(.*?)\n?```$", re.DOTALL)


@lru_cache(maxsize=8)
def _get_openai_compatible_client(api_key: str | None, base_url: str | None, timeout: float) -> AsyncOpenAI:
    return AsyncOpenAI(api_key=api_key, base_url=base_url, timeout=timeout)


def _raise_for_provider_status(status_code: int, detail: str) -> None:
    if status_code == 429:
        raise LLMRateLimitError(f"LLM rate limit exceeded: {detail}")
    if status_code == 402:
        raise LLMPaymentRequiredError(f"LLM credits exhausted: {detail}")
    raise LLMError(f"LLM provider returned {status_code}: {detail}")


async def _openai_compatible_chat(
    messages: list[dict[str, str]],
    config: dict[str, Any],
    temperature: float,
    max_tokens: int,
    json_mode: bool,
) -> str:
    client = _get_openai_compatible_client(config.get("api_key"), config.get("base_url"), config["timeout"])
    params: dict[str, Any] = {
        "model": config["model"],
        "messages": messages,
        "temperature": temperature,
        "max_tokens": max_tokens,
    }
    if json_mode:
        params["response_format"] = {"type": "json_object"}

    try:
        response = await client.chat.completions.create(**params)
    except openai.APIStatusError as e:
        _raise_for_provider_status(e.status_code, str(e))
    except openai.APIError as e:
        raise LLMError(f"LLM request failed: {e}") from e
    return response.choices[0].message.content or ""


async def _ollama_chat(
    messages: list[dict[str, str]],
    config: dict[str, Any],
    temperature: float,
    max_tokens: int,
    json_mode: bool,
) -> str:
    payload: dict[str, Any] = {
        "model": config["model"],
        "messages": messages,
        "stream": False,
        "options": {"temperature": temperature, "num_predict": max_tokens},
    }
    if json_mode:
        payload["format"] = "json"

    try:
        async with httpx.AsyncClient(timeout=config["timeout"]) as client:
            response = await client.post(f"{config['base_url'].rstrip('/')}/api/chat", json=payload)
    except httpx.HTTPError as e:
        raise LLMError(f"LLM request failed: {e}") from e
    if response.status_code >= 400:
        _raise_for_provider_status(response.status_code, response.text[:200])
    return response.json()["message"]["content"]


async def chat_completion(
    messages: list[dict[str, str]],
    temperature: float | None = None,
    max_tokens: int | None = None,
    json_mode: bool = False,
) -> str:
    """
    调用 LLM 进行对话补全

    Args:
        messages: 完整消息列表（system + user/assistant 轮次）
        temperature: 温度参数，默认读取配置
        max_tokens: 最大生成 token 数
        json_mode: 要求模型输出 JSON 对象

    Raises:
        LLMRateLimitError: 429
        LLMPaymentRequiredError: 402
        LLMError: 未配置、不可达或其他错误
    """
    settings = get_settings()
    config = settings.get_llm_config()
    provider = config["provider"]

    if temperature is None:
        temperature = settings.llm_temperature
    if max_tokens is None:
        max_tokens = settings.llm_max_tokens

    if provider == "ollama":
        return await _ollama_chat(messages, config, temperature, max_tokens, json_mode)
    if not config.get("api_key"):
        raise LLMError(f"{provider.upper()}_API_KEY 未配置")
    return await _openai_compatible_chat(messages, config, temperature, max_tokens, json_mode)


def strip_code_fence(text: str) -> str:
    """去掉 Markdown 代码块包裹"""
    text = (text or "").strip()
    match = _CODE_FENCE.match(text)
    if match:
        return match.group(1).strip()
    return text


def parse_json_object(text: str) -> dict[str, Any]:
    """
    解析模型输出为 JSON 对象

    先整体解析，失败时截取第一个 { 到最后一个 } 之间的内容再试。
    """
    cleaned = strip_code_fence(text)
    try:
        data = json.loads(cleaned)
    except json.JSONDecodeError:
        start, end = cleaned.find("{"), cleaned.rfind("}")
        if start == -1 or end <= start:
            raise LLMResponseFormatError("LLM response is not valid JSON")
        try:
            data = json.loads(cleaned[start:end + 1])
        except json.JSONDecodeError as e:
            raise LLMResponseFormatError(f"LLM response is not valid JSON: {e}") from e
    if not isinstance(data, dict):
        raise LLMResponseFormatError("LLM response is not a JSON object")
    return data


def _check_required(data: dict[str, Any], required_fields: Sequence[str]) -> None:
    missing = [f for f in required_fields if not data.get(f)]
    if missing:
        raise LLMResponseFormatError(f"LLM response missing fields: {', '.join(missing)}")


async def chat_json(
    messages: list[dict[str, str]],
    required_fields: Sequence[str] = (),
    retry_message: str = JSON_RETRY_MESSAGE,
    temperature: float | None = None,
    max_tokens: int | None = None,
    json_mode: bool = False,
) -> dict[str, Any]:
    """
    调用 LLM 并解析 JSON 对象，解析失败重试一次

    Raises:
        LLMResponseFormatError: 两次都无法解析或缺少必需字段
        LLMError: 调用本身失败（不重试）
    """
    raw = await chat_completion(messages, temperature=temperature, max_tokens=max_tokens, json_mode=json_mode)
    try:
        data = parse_json_object(raw)
        _check_required(data, required_fields)
        return data
    except LLMResponseFormatError as e:
        logger.warning(f"LLM 返回格式错误，重试一次: {e}")

    retry_messages = [
        *messages,
        {"role": "assistant", "content": raw},
        {"role": "user", "content": retry_message},
    ]
    raw = await chat_completion(
        retry_messages, temperature=temperature, max_tokens=max_tokens, json_mode=json_mode
    )
    data = parse_json_object(raw)
    _check_required(data, required_fields)
    return data
