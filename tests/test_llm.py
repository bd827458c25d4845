"""
LLM 客户端测试

- strip_code_fence / parse_json_object
- chat_json 解析失败重试一次，第二次仍失败抛出 LLMResponseFormatError
- 提供商状态码映射（429 / 402 / 其他）
"""

from unittest.mock import AsyncMock, patch

import pytest

from knowledge_pipeline.exceptions import (
    LLMError,
    LLMPaymentRequiredError,
    LLMRateLimitError,
    LLMResponseFormatError,
)
from knowledge_pipeline.infra.llm import (
    JSON_RETRY_MESSAGE,
    _raise_for_provider_status,
    chat_completion,
    chat_json,
    parse_json_object,
    strip_code_fence,
)


class TestParsing:

    def test_strip_code_fence(self):
        assert strip_code_fence('```json\n{"a": 1}\n```') == '{"a": 1}'
        assert strip_code_fence('```\n{"a": 1}\n```') == '{"a": 1}'
        assert strip_code_fence('  {"a": 1}  ') == '{"a": 1}'

    def test_parse_embedded_object(self):
        assert parse_json_object('Claro! Aqui está: {"title": "X"} Obrigado.') == {"title": "X"}

    def test_parse_rejects_non_object(self):
        with pytest.raises(LLMResponseFormatError):
            parse_json_object("[1, 2, 3]")

    def test_parse_rejects_garbage(self):
        with pytest.raises(LLMResponseFormatError):
            parse_json_object("sem json aqui")


class TestChatJson:

    @pytest.mark.asyncio
    async def test_first_attempt_ok(self):
        mock = AsyncMock(return_value='```json\n{"title": "T", "content": "C"}\n```')
        with patch("knowledge_pipeline.infra.llm.chat_completion", mock):
            data = await chat_json([{"role": "user", "content": "x"}], required_fields=("title", "content"))

        assert data == {"title": "T", "content": "C"}
        assert mock.await_count == 1

    @pytest.mark.asyncio
    async def test_retry_appends_correction(self):
        mock = AsyncMock(side_effect=["isto não é json", '{"title": "T", "content": "C"}'])
        messages = [{"role": "user", "content": "gerar"}]
        with patch("knowledge_pipeline.infra.llm.chat_completion", mock):
            data = await chat_json(messages, required_fields=("title",))

        assert data["title"] == "T"
        retry_messages = mock.await_args_list[1].args[0]
        assert retry_messages[-2] == {"role": "assistant", "content": "isto não é json"}
        assert retry_messages[-1] == {"role": "user", "content": JSON_RETRY_MESSAGE}

    @pytest.mark.asyncio
    async def test_missing_required_field_triggers_retry(self):
        mock = AsyncMock(side_effect=['{"title": "T"}', '{"title": "T"}'])
        with patch("knowledge_pipeline.infra.llm.chat_completion", mock):
            with pytest.raises(LLMResponseFormatError, match="content"):
                await chat_json([{"role": "user", "content": "x"}], required_fields=("title", "content"))
        assert mock.await_count == 2

    @pytest.mark.asyncio
    async def test_provider_error_not_retried(self):
        mock = AsyncMock(side_effect=LLMRateLimitError("429"))
        with patch("knowledge_pipeline.infra.llm.chat_completion", mock):
            with pytest.raises(LLMRateLimitError):
                await chat_json([{"role": "user", "content": "x"}])
        assert mock.await_count == 1


class TestProviderErrors:

    def test_status_mapping(self):
        with pytest.raises(LLMRateLimitError):
            _raise_for_provider_status(429, "slow down")
        with pytest.raises(LLMPaymentRequiredError):
            _raise_for_provider_status(402, "no credits")
        with pytest.raises(LLMError) as exc_info:
            _raise_for_provider_status(500, "boom")
        assert not isinstance(exc_info.value, (LLMRateLimitError, LLMPaymentRequiredError))

    @pytest.mark.asyncio
    async def test_missing_api_key(self, test_settings):
        test_settings.llm_provider = "openai"
        test_settings.openai_api_key = None
        with pytest.raises(LLMError, match="API_KEY"):
            await chat_completion([{"role": "user", "content": "x"}])
