"""
反馈分类服务

把操作员对某条智能体回复的纠正分为四类，并生成对应的修改建议（patch）：
- KB_FACT: 知识库事实错误或缺失 → kb_update
- AGENT_RULE: 语气/行为/流程问题 → agent_rule_update
- MISSING_INFO: 需要向导补充收集 → wizard_question
- FLOW_TOOL: 需要调用工具或走特定流程 → flow_tool_update

结果只是建议，不修改任何数据。模型输出无法解析时降级为 AGENT_RULE。
"""

import logging

from pydantic import ValidationError

from knowledge_pipeline.exceptions import LLMResponseFormatError
from knowledge_pipeline.infra.llm import chat_completion, parse_json_object
from knowledge_pipeline.schemas.feedback import AgentRulePatch, FeedbackClassification, FeedbackPatch

logger = logging.getLogger(__name__)

DEFAULT_CONFIDENCE = 0.8
FALLBACK_CONFIDENCE = 0.5
FALLBACK_REASON = (
    "Não foi possível classificar automaticamente. Tratando como regra de comportamento."
)

CLASSIFIER_SYSTEM_PROMPT = """Você é um classificador de feedback para agentes de IA de atendimento.

Analise o feedback do usuário sobre uma resposta do agente e classifique em UMA das categorias:

1. KB_FACT - O agente errou um FATO (preço, prazo, política, informação de produto) ou a informação não existe na base de conhecimento.
2. AGENT_RULE - O problema é de COMPORTAMENTO: tom, abordagem, ordem das perguntas, insistência, forma de conduzir a conversa.
3. MISSING_INFO - Falta uma informação que deveria ser coletada da empresa (o wizard deveria perguntar isso).
4. FLOW_TOOL - O agente deveria ter usado uma ferramenta ou seguido um fluxo específico (agendar, transferir, consultar sistema).

RESPONDA APENAS COM JSON VÁLIDO:
{
  "classification": "KB_FACT|AGENT_RULE|MISSING_INFO|FLOW_TOOL",
  "reason": "explicação curta",
  "confidence": 0.0-1.0,
  "patch": {
    "kb_update": { "title": "...", "content": "...", "type": "faq|policy|product|general", "tags": [] },
    "agent_rule_update": { "rule": "...", "example_good_response": "..." },
    "wizard_question": { "question": "...", "slot": "..." },
    "flow_tool_update": { "rule": "...", "trigger": "..." }
  }
}

Inclua no patch APENAS o campo correspondente à classificação."""


def build_classifier_message(
    *,
    customer_message: str | None,
    agent_answer: str,
    user_feedback: str,
    rag_context: str | None = None,
    agent_rules_summary: str | None = None,
) -> str:
    rag_line = f"- RAG_CONTEXT usado: {rag_context[:500]}..." if rag_context else "- RAG_CONTEXT: Nenhum"
    rules_line = f"- Regras do agente atuais: {agent_rules_summary}" if agent_rules_summary else ""
    return (
        "CONTEXTO:\n"
        f'- Mensagem do cliente: "{customer_message or "N/A"}"\n'
        f'- Resposta do agente: "{agent_answer}"\n'
        f'- Feedback do usuário (resposta ideal): "{user_feedback}"\n'
        f"{rag_line}\n"
        f"{rules_line}\n\n"
        "Classifique este feedback e gere o patch apropriado."
    )


def fallback_classification(agent_answer: str, user_feedback: str) -> FeedbackClassification:
    return FeedbackClassification(
        classification="AGENT_RULE",
        reason=FALLBACK_REASON,
        confidence=FALLBACK_CONFIDENCE,
        patch=FeedbackPatch(
            agent_rule_update=AgentRulePatch(
                rule=f'Quando o cliente receber uma resposta similar a "{agent_answer[:50]}..."',
                example_good_response=user_feedback,
            )
        ),
    )


def _coerce_confidence(value) -> float:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return DEFAULT_CONFIDENCE
    return min(max(float(value), 0.0), 1.0)


async def classify_feedback(
    *,
    customer_message: str | None,
    agent_answer: str,
    user_feedback: str,
    rag_context: str | None = None,
    agent_rules_summary: str | None = None,
) -> FeedbackClassification:
    """
    对反馈进行分类

    Raises:
        LLMRateLimitError / LLMPaymentRequiredError / LLMError: 调用失败
    """
    raw = await chat_completion(
        [
            {"role": "system", "content": CLASSIFIER_SYSTEM_PROMPT},
            {
                "role": "user",
                "content": build_classifier_message(
                    customer_message=customer_message,
                    agent_answer=agent_answer,
                    user_feedback=user_feedback,
                    rag_context=rag_context,
                    agent_rules_summary=agent_rules_summary,
                ),
            },
        ],
        temperature=0.3,
        max_tokens=1000,
    )

    try:
        data = parse_json_object(raw)
        result = FeedbackClassification(
            classification=data.get("classification"),
            reason=str(data.get("reason") or ""),
            confidence=_coerce_confidence(data.get("confidence")),
            patch=FeedbackPatch.model_validate(data.get("patch") or {}),
        )
    except (LLMResponseFormatError, ValidationError) as e:
        # 包括 FORMATTING 等不支持的分类
        logger.warning(f"反馈分类结果无法使用，降级为 AGENT_RULE: {e}")
        return fallback_classification(agent_answer, user_feedback)

    logger.info(f"反馈分类: {result.classification} (confidence={result.confidence})")
    return result
