"""
向导与内容增强测试

- run_wizard_turn: 正常解析、两次解析失败后的兜底回复、按知识类型切换提示词
- synthesize_document: 跳过空值与 "não informado"、无字段时报错
- generate_category_content: 标题覆盖为分类名、原文兜底
- 增强问题模板与 enhance_content
"""

from unittest.mock import AsyncMock, patch

import pytest

from knowledge_pipeline.exceptions import LLMResponseFormatError
from knowledge_pipeline.schemas.wizard import ChatMessage, FaqPair
from knowledge_pipeline.services.enhance import (
    QUESTION_TEMPLATES,
    build_enhance_prompt,
    enhance_content,
    get_enhancement_questions,
)
from knowledge_pipeline.services.wizard import (
    FALLBACK_TURN,
    build_context_prompt,
    build_synthesis_prompt,
    build_wizard_system_prompt,
    category_title,
    generate_category_content,
    run_wizard_turn,
    synthesize_document,
)


class TestWizardTurn:

    @pytest.mark.asyncio
    async def test_parses_turn(self):
        reply = {
            "message": "Ótimo! E qual é o preço?",
            "stage": "slots",
            "nextQuestion": "Qual é o preço?",
            "slotUpdates": {"offer": "Consultoria tributária", "price": 1500},
            "missingSlots": ["price"],
        }
        llm = AsyncMock(return_value=reply)
        with patch("knowledge_pipeline.services.wizard.chat_json", llm):
            turn = await run_wizard_turn(
                user_message="Fazemos consultoria tributária",
                recent_messages=[ChatMessage(role="assistant", content="O que você oferece?")],
                current_slots={},
            )

        assert turn.stage == "slots"
        assert turn.slot_updates == {"offer": "Consultoria tributária", "price": "1500"}
        assert turn.model_dump(by_alias=True)["nextQuestion"] == "Qual é o preço?"
        assert llm.await_args.kwargs["required_fields"] == ("message", "stage")

    @pytest.mark.asyncio
    async def test_wrongly_typed_optional_fields_are_dropped(self):
        """slotUpdates 为数组、missingSlots 为字符串：保留回复内容，字段按缺省处理"""
        reply = {
            "message": "ok",
            "stage": "slots",
            "slotUpdates": ["offer"],
            "missingSlots": "price",
            "suggestedQuestions": None,
            "faqAnswered": "sim",
        }
        with patch("knowledge_pipeline.services.wizard.chat_json", AsyncMock(return_value=reply)):
            turn = await run_wizard_turn(user_message="oi", recent_messages=[], current_slots={})

        assert turn.message == "ok"
        assert turn.slot_updates == {}
        assert turn.missing_slots == []
        assert turn.suggested_questions == []
        assert turn.faq_answered is None

    @pytest.mark.asyncio
    async def test_unparseable_reply_uses_fallback(self):
        llm = AsyncMock(side_effect=LLMResponseFormatError("not json"))
        with patch("knowledge_pipeline.services.wizard.chat_json", llm):
            turn = await run_wizard_turn(user_message="oi", recent_messages=[], current_slots={})

        assert turn.message == FALLBACK_TURN["message"]
        assert turn.stage == "slots"

    @pytest.mark.asyncio
    async def test_invalid_stage_uses_fallback(self):
        llm = AsyncMock(return_value={"message": "ok", "stage": "celebration"})
        with patch("knowledge_pipeline.services.wizard.chat_json", llm):
            turn = await run_wizard_turn(user_message="oi", recent_messages=[], current_slots={})

        assert turn.next_question == FALLBACK_TURN["nextQuestion"]

    def test_prompt_per_wizard_type(self):
        general = build_wizard_system_prompt("general")
        faq = build_wizard_system_prompt("faq")
        policy = build_wizard_system_prompt("policy")

        assert "- target_customer" in general
        assert "5+ FAQs" in faq
        assert "- policy_name" in policy
        assert "2+ FAQs" in policy
        # 未知类型回退为 general
        assert build_wizard_system_prompt("desconhecido") == general

    def test_context_prompt(self):
        prompt = build_context_prompt(
            {"offer": "Consultoria"},
            [ChatMessage(role="user", content="oi"), ChatMessage(role="assistant", content="Olá!")],
            "quanto custa?",
        )

        assert '"offer": "Consultoria"' in prompt
        assert "Usuário: oi\nAssistente: Olá!" in prompt
        assert prompt.endswith("Última mensagem do usuário: quanto custa?")


class TestSynthesize:

    def test_prompt_skips_missing_values(self):
        prompt = build_synthesis_prompt(
            {"offer": "Consultoria", "price": "Não informado", "timeline": "  ", "extra_note": "Atende online"},
            [FaqPair(question="Tem garantia?", answer="Sim, 7 dias.")],
        )

        assert "O que oferece: Consultoria" in prompt
        assert "Investimento" not in prompt
        assert "Prazo" not in prompt
        assert "extra_note: Atende online" in prompt
        assert "P: Tem garantia?\nR: Sim, 7 dias." in prompt

    @pytest.mark.asyncio
    async def test_empty_slots_rejected(self):
        with pytest.raises(ValueError):
            await synthesize_document({}, [])

    @pytest.mark.asyncio
    async def test_returns_title_and_content(self):
        llm = AsyncMock(return_value={"title": " Consultoria ", "content": "## Visão Geral\n..."})
        with patch("knowledge_pipeline.services.wizard.chat_json", llm):
            document = await synthesize_document({"offer": "Consultoria"}, [], "product")

        assert document == {"title": "Consultoria", "content": "## Visão Geral\n..."}
        assert "## Garantia" in llm.await_args.args[0][0]["content"]
        assert llm.await_args.kwargs["required_fields"] == ("title", "content")


class TestGenerateCategoryContent:

    def test_category_title(self):
        assert category_title("pricing_plans", "global", None) == "Preços e Planos"
        assert category_title("pricing_plans", "product", "Plano Pro") == "Preços e Planos - Plano Pro"
        assert category_title("custom", "global", None) == "custom"

    @pytest.mark.asyncio
    async def test_title_overridden(self):
        raw = '{"title": "Outro título", "content": "Planos a partir de R$ 99.", "keyPoints": ["R$ 99"]}'
        with patch("knowledge_pipeline.services.wizard.chat_completion", AsyncMock(return_value=raw)):
            data = await generate_category_content(
                category="pricing_plans", scope="product", product_name="Plano Pro",
                collected_info={"preço": "R$ 99"},
            )

        assert data == {
            "title": "Preços e Planos - Plano Pro",
            "content": "Planos a partir de R$ 99.",
            "keyPoints": ["R$ 99"],
        }

    @pytest.mark.asyncio
    async def test_unparseable_output_kept_as_content(self):
        raw = "Aqui está o documento sem JSON."
        with patch("knowledge_pipeline.services.wizard.chat_completion", AsyncMock(return_value=raw)):
            data = await generate_category_content(category="faq")

        assert data["title"] == "Perguntas Frequentes"
        assert data["content"] == raw
        assert data["keyPoints"] == []


class TestEnhance:

    def test_questions_for_known_type(self):
        data = get_enhancement_questions("policy")
        assert data["itemType"] == "policy"
        assert data["typeLabel"] == "Política"
        assert data["questions"] == QUESTION_TEMPLATES["policy"]

    def test_unknown_type_uses_general(self):
        assert get_enhancement_questions("manual")["itemType"] == "general"
        assert get_enhancement_questions(None)["questions"] == QUESTION_TEMPLATES["general"]

    def test_prompt_marks_missing_answers(self):
        prompt = build_enhance_prompt("faq", "Prazo", "Entregamos rápido.", ["Qual o prazo?", ""])

        assert "Tipo: Pergunta Frequente" in prompt
        assert "Conteúdo atual:\nEntregamos rápido." in prompt
        assert prompt.count("Não informado") == 3

    @pytest.mark.asyncio
    async def test_enhance_content(self):
        llm = AsyncMock(return_value={"title": "Prazo de entrega", "content": "Entregamos em até 7 dias úteis."})
        with patch("knowledge_pipeline.services.enhance.chat_json", llm):
            data = await enhance_content(
                item_type="faq", title="Prazo", current_content="Entregamos rápido.", answers=["7 dias"],
            )

        assert data == {"title": "Prazo de entrega", "content": "Entregamos em até 7 dias úteis."}
        assert llm.await_args.kwargs["max_tokens"] == 2048
