"""
向导对话与内容合成服务

- run_wizard_turn: 一轮对话，按知识类型（general / faq / policy / product）使用不同的
  系统提示词和最少字段规则，输出 message/stage/nextQuestion/slotUpdates/...
  JSON 解析失败重试一次，仍失败返回安全的兜底回复，不中断对话
- synthesize_document: 把已收集的字段和 FAQ 合成为一篇带标题的 Markdown 文档
- generate_category_content: 按分类生成结构化文档，标题固定为分类名（产品作用域加产品名）

限流 (429) 和额度不足 (402) 直接向上抛出，由 API 层映射为对应状态码。
"""

import json
import logging
from dataclasses import dataclass, field

from knowledge_pipeline.exceptions import LLMResponseFormatError
from knowledge_pipeline.infra.llm import chat_completion, chat_json, parse_json_object
from knowledge_pipeline.schemas.wizard import ChatMessage, FaqPair, WizardTurnResponse

logger = logging.getLogger(__name__)

NOT_INFORMED = "não informado"

SYNTHESIS_RETRY_MESSAGE = (
    "IMPORTANTE: Retorne APENAS JSON válido, começando com { e terminando com }. "
    "Sem markdown code blocks."
)

FALLBACK_TURN = {
    "message": "Desculpe, tive um problema técnico. Pode repetir sua última resposta?",
    "stage": "slots",
    "nextQuestion": "Pode repetir sua última resposta?",
    "slotUpdates": {},
    "missingSlots": [],
    "suggestedQuestions": [],
}

SLOT_LABELS: dict[str, str] = {
    "offer": "O que oferece",
    "target_customer": "Público-alvo",
    "includes": "O que inclui",
    "excludes": "O que não inclui",
    "price": "Investimento",
    "timeline": "Prazo",
    "required_inputs": "Requisitos/documentos",
    "next_step": "Próximo passo",
    "policies": "Políticas (reembolso/cancelamento)",
    "policy_name": "Nome da política",
    "rules": "Regras principais",
    "exceptions": "Exceções",
    "applies_when": "Quando se aplica",
    "product_name": "Nome do produto/serviço",
    "benefits": "Benefícios e diferenciais",
    "payment_methods": "Formas de pagamento",
    "guarantee": "Garantia",
    "delivery": "Entrega/prestação",
}

CATEGORY_LABELS: dict[str, str] = {
    "general": "Sobre a Empresa",
    "contact_hours": "Horários e Contato",
    "payment": "Formas de Pagamento",
    "policies": "Políticas",
    "scope": "Escopo de Atuação",
    "compliance": "Regras de Compliance",
    "language_guide": "Guia de Linguagem",
    "glossary": "Glossário de Termos",
    "product_service": "Descrição do Produto/Serviço",
    "pricing_plans": "Preços e Planos",
    "process": "Processo e Etapas",
    "requirements": "Requisitos",
    "objections": "Objeções Comuns",
    "qualification": "Critérios de Qualificação",
    "faq": "Perguntas Frequentes",
    "social_proof": "Casos de Sucesso",
}


@dataclass
class WizardProfile:
    """每种知识类型的字段和阶段推进规则"""
    slots: list[str]
    transition_rules: str
    document_structure: str
    faq_to_complete: int = 3
    slot_notes: dict[str, str] = field(default_factory=dict)


WIZARD_PROFILES: dict[str, WizardProfile] = {
    "general": WizardProfile(
        slots=[
            "offer", "target_customer", "includes", "excludes", "price",
            "timeline", "required_inputs", "next_step", "policies",
        ],
        transition_rules="- Só vá para faq_generation quando TODOS os slots mínimos estiverem preenchidos.",
        document_structure=(
            "- ## Visão Geral\n- ## Público-Alvo\n- ## O que Inclui\n- ## O que Não Inclui\n"
            "- ## Investimento\n- ## Prazo\n- ## Requisitos\n- ## Como Começar\n- ## Políticas\n"
            "- ## Perguntas Frequentes (se houver FAQs)"
        ),
    ),
    "faq": WizardProfile(
        slots=[],
        transition_rules=(
            "- Não há slots obrigatórios: comece direto em faq_generation.\n"
            "- Mude para complete somente após 5+ FAQs respondidas."
        ),
        document_structure="- Uma seção ### por pergunta, com a resposta completa logo abaixo",
        faq_to_complete=5,
    ),
    "policy": WizardProfile(
        slots=["policy_name", "rules", "exceptions", "applies_when"],
        transition_rules=(
            "- Só vá para faq_generation quando policy_name e rules estiverem preenchidos.\n"
            "- exceptions e applies_when podem ficar como lacuna se o usuário não souber."
        ),
        document_structure="- ## Resumo\n- ## Regras\n- ## Exceções\n- ## Quando se Aplica\n- ## Perguntas Frequentes",
        faq_to_complete=2,
    ),
    "product": WizardProfile(
        slots=[
            "product_name", "offer", "target_customer", "benefits", "price",
            "payment_methods", "guarantee", "delivery", "next_step",
        ],
        transition_rules=(
            "- Só vá para faq_generation quando product_name, offer, price e next_step estiverem preenchidos."
        ),
        document_structure=(
            "- ## Visão Geral\n- ## Para Quem É\n- ## Benefícios\n- ## Investimento e Pagamento\n"
            "- ## Garantia\n- ## Entrega\n- ## Como Começar\n- ## Perguntas Frequentes"
        ),
    ),
}

WIZARD_SYSTEM_PROMPT = """Você é um Wizard conversacional para coletar informações e gerar uma Base de Conhecimento.

Você NÃO é consultor e NÃO deve afirmar fatos externos sobre mercado, leis ou regras. Você só coleta e organiza o que o usuário informa.

REGRAS INEGOCIÁVEIS
- Faça APENAS 1 pergunta por vez.
- Seja conversacional e curto (máx 2 linhas).
- Se a resposta for vaga ("depende", "varia"), peça concretização (faixa, exemplo real, regra).
- Se o usuário disser "não sei", registre como lacuna e siga adiante.
- Não invente preço, prazos, documentos, políticas, garantias.
- Seu papel é COLETAR, não INTERPRETAR.

PROCESSO (stages)
1) discovery (1–2 perguntas): entender o que oferece, canal e objetivo.
2) slots (perguntas até preencher os campos mínimos).
3) faq_generation: sugerir 5–10 perguntas que clientes fazem e pedir quais responder.
4) complete: quando os campos mínimos e as FAQs estiverem respondidos.

FORMATO DE RESPOSTA (SEMPRE JSON VÁLIDO, sem markdown e sem texto fora do JSON)
{{
  "message": "mensagem curta",
  "stage": "discovery|slots|faq_generation|complete",
  "nextQuestion": "uma única pergunta ou null",
  "slotUpdates": {{ "campo": "valor" }},
  "missingSlots": ["campo1","campo2"],
  "suggestedQuestions": ["..."],
  "faqAnswered": {{ "question": "pergunta original", "answer": "resposta do usuário" }} ou null
}}

CAMPOS MÍNIMOS (slots)
{slots}

REGRAS DE TRANSIÇÃO:
{transition_rules}
- Em faq_generation, sugira 5-10 perguntas em suggestedQuestions.
- Quando o usuário responde uma pergunta de FAQ, retorne faqAnswered e remova essa pergunta de suggestedQuestions.
- Após o usuário responder {faq_to_complete}+ FAQs, mude para complete.
- Em complete, nextQuestion DEVE ser null."""

SYNTHESIZE_SYSTEM_PROMPT = """Você é um especialista em criar documentos de conhecimento otimizados para busca semântica (RAG).

Você recebe informações coletadas e deve gerar um documento estruturado.

REGRAS:
1. Use APENAS as informações fornecidas. NÃO invente nada.
2. Se um campo não foi informado ou está como "não informado", NÃO inclua essa seção.
3. Use linguagem clara, direta e profissional.
4. Estruture em seções com headers markdown (##).
5. Cada seção deve ser auto-contida e compreensível isoladamente.

ESTRUTURA DO DOCUMENTO:
- Título claro e descritivo
{structure}

FORMATO DE RESPOSTA (JSON):
{{
  "title": "Título claro e descritivo",
  "content": "Conteúdo em markdown"
}}"""

CONTENT_GENERATION_PROMPT = """Você é um especialista em criar conteúdo para bases de conhecimento de agentes de IA.

## TAREFA
Gerar documento estruturado e otimizado para RAG (busca semântica) com base nas informações coletadas durante a conversa.

## REGRAS CRÍTICAS
1. Use APENAS as informações fornecidas - NÃO invente NADA
2. Escreva em primeira pessoa do plural ("Oferecemos", "Aceitamos", "Nossa empresa")
3. Seja direto e completo
4. Organize de forma lógica com headers quando apropriado
5. Se faltar algo crítico, indique com [A DEFINIR]
6. INCLUA uma seção "## Perguntas Frequentes" no FINAL do documento com 3-5 FAQs relevantes

## FORMATO DE SAÍDA (JSON OBRIGATÓRIO)
{
  "title": "Título descritivo do documento",
  "content": "Conteúdo completo formatado em markdown leve",
  "keyPoints": ["Ponto-chave 1", "Ponto-chave 2", "...até 5 pontos principais"]
}

IMPORTANTE: Responda SEMPRE em JSON válido. Nada antes ou depois do JSON."""


def get_profile(wizard_type: str) -> WizardProfile:
    return WIZARD_PROFILES.get(wizard_type, WIZARD_PROFILES["general"])


def build_wizard_system_prompt(wizard_type: str) -> str:
    profile = get_profile(wizard_type)
    slot_lines = "\n".join(f"- {s} ({SLOT_LABELS.get(s, s).lower()})" for s in profile.slots) or "- (nenhum)"
    return WIZARD_SYSTEM_PROMPT.format(
        slots=slot_lines,
        transition_rules=profile.transition_rules,
        faq_to_complete=profile.faq_to_complete,
    )


def build_context_prompt(slots: dict[str, str], messages: list[ChatMessage], user_message: str) -> str:
    slots_json = json.dumps(slots, ensure_ascii=False, indent=2) if slots else "{}"
    history = "\n".join(
        f"{'Usuário' if m.role == 'user' else 'Assistente'}: {m.content}" for m in messages
    )
    return (
        "Contexto atual:\n"
        f"Slots coletados: {slots_json}\n"
        "Últimas mensagens:\n"
        f"{history}\n\n"
        f"Última mensagem do usuário: {user_message}"
    )


def _as_dict(value) -> dict:
    return value if isinstance(value, dict) else {}


def _as_list(value) -> list:
    return value if isinstance(value, list) else []


def _to_turn(data: dict) -> WizardTurnResponse:
    # 可选字段类型不符时按缺省处理，不丢弃整轮回复
    return WizardTurnResponse.model_validate({
        "message": data["message"],
        "stage": data["stage"],
        "nextQuestion": data.get("nextQuestion"),
        "slotUpdates": {str(k): str(v) for k, v in _as_dict(data.get("slotUpdates")).items() if v is not None},
        "missingSlots": [str(s) for s in _as_list(data.get("missingSlots"))],
        "suggestedQuestions": [str(q) for q in _as_list(data.get("suggestedQuestions"))],
        "faqAnswered": data.get("faqAnswered") if isinstance(data.get("faqAnswered"), dict) else None,
    })


async def run_wizard_turn(
    *,
    user_message: str,
    recent_messages: list[ChatMessage],
    current_slots: dict[str, str],
    wizard_type: str = "general",
) -> WizardTurnResponse:
    """执行一轮向导对话"""
    messages = [
        {"role": "system", "content": build_wizard_system_prompt(wizard_type)},
        {"role": "user", "content": build_context_prompt(current_slots, recent_messages, user_message)},
    ]
    try:
        data = await chat_json(messages, required_fields=("message", "stage"), temperature=0.7)
        return _to_turn(data)
    except (LLMResponseFormatError, ValueError) as e:
        # ValueError 覆盖 pydantic 对 stage 等字段的校验失败
        logger.warning(f"向导回复两次都无法解析，使用兜底回复: {e}")
        return WizardTurnResponse.model_validate(FALLBACK_TURN)


def build_synthesis_prompt(slots: dict[str, str], faqs: list[FaqPair], wizard_type: str = "general") -> str:
    """已收集信息的用户提示词，跳过空值和"não informado"的字段"""
    profile = get_profile(wizard_type)
    keys = list(dict.fromkeys([*profile.slots, *slots.keys()]))

    lines = ["INFORMAÇÕES COLETADAS:", ""]
    for key in keys:
        value = (slots.get(key) or "").strip()
        if value and value.lower() != NOT_INFORMED:
            lines.append(f"{SLOT_LABELS.get(key, key)}: {value}")

    if faqs:
        lines.append("")
        lines.append("PERGUNTAS FREQUENTES:")
        for faq in faqs:
            lines.append("")
            lines.append(f"P: {faq.question}")
            lines.append(f"R: {faq.answer}")

    lines.append("")
    lines.append("")
    lines.append("Gere o documento de conhecimento otimizado para RAG com base nessas informações.")
    return "\n".join(lines)


async def synthesize_document(
    slots: dict[str, str],
    faqs: list[FaqPair],
    wizard_type: str = "general",
) -> dict[str, str]:
    """
    合成知识文档

    Raises:
        ValueError: 没有任何字段
        LLMResponseFormatError: 重试后仍缺少 title 或 content
    """
    if not slots:
        raise ValueError("Nenhuma informação fornecida para síntese")

    profile = get_profile(wizard_type)
    data = await chat_json(
        [
            {"role": "system", "content": SYNTHESIZE_SYSTEM_PROMPT.format(structure=profile.document_structure)},
            {"role": "user", "content": build_synthesis_prompt(slots, faqs, wizard_type)},
        ],
        required_fields=("title", "content"),
        retry_message=SYNTHESIS_RETRY_MESSAGE,
        temperature=0.5,
    )
    return {"title": str(data["title"]).strip(), "content": str(data["content"]).strip()}


def category_title(category: str, scope: str, product_name: str | None) -> str:
    label = CATEGORY_LABELS.get(category, category)
    if scope == "product" and product_name:
        return f"{label} - {product_name}"
    return label


async def generate_category_content(
    *,
    category: str,
    scope: str = "global",
    product_name: str | None = None,
    collected_info: dict[str, str] | None = None,
    conversation_excerpts: list[str] | None = None,
) -> dict:
    """
    按分类生成文档

    返回 {title, content, keyPoints}。模型输出无法解析时把原文作为 content，标题为 "Documento"，
    之后标题统一覆盖为分类名。
    """
    label = CATEGORY_LABELS.get(category, category)
    scope_description = (
        f'para o produto/serviço "{product_name}"'
        if scope == "product" and product_name
        else "da empresa (informações globais)"
    )
    info_block = "\n\n".join(f"### {k}\n{v}" for k, v in (collected_info or {}).items())
    excerpts_block = "\n---\n".join(conversation_excerpts or [])
    user_prompt = (
        "## TAREFA\n"
        f'Gere um documento de conhecimento para a categoria "{label}" {scope_description}.\n\n'
        "## INFORMAÇÕES COLETADAS\n"
        f"{info_block}\n\n"
        "## TRECHOS DA CONVERSA (contexto adicional)\n"
        f"{excerpts_block}\n\n"
        "---\n\n"
        "Gere o documento seguindo as regras e formato JSON especificados."
    )

    raw = await chat_completion(
        [
            {"role": "system", "content": CONTENT_GENERATION_PROMPT},
            {"role": "user", "content": user_prompt},
        ],
        temperature=0.5,
        max_tokens=3000,
    )
    try:
        data = parse_json_object(raw)
        result = {
            "title": data.get("title") or "Documento sem título",
            "content": data.get("content") or "",
            "keyPoints": [str(p) for p in _as_list(data.get("keyPoints"))],
        }
    except LLMResponseFormatError:
        logger.warning(f"分类内容无法解析为 JSON，使用原文: category={category}")
        result = {"title": "Documento", "content": raw, "keyPoints": []}

    result["title"] = category_title(category, scope, product_name)
    logger.info(f"生成分类内容: title={result['title']}, keyPoints={len(result['keyPoints'])}")
    return result
