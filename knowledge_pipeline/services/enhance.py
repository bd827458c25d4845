"""
知识条目内容增强

按条目类型给出一组引导问题，用户回答后由 LLM 把现有内容和回答整合为更完整的文档。
未知类型（包括 manual）使用 general 模板。
"""

import logging

from knowledge_pipeline.infra.llm import chat_json

logger = logging.getLogger(__name__)

QUESTION_TEMPLATES: dict[str, list[str]] = {
    "product": [
        "Qual o nome exato do produto/serviço?",
        "Qual o preço e formas de pagamento aceitas?",
        "Quais são os principais benefícios e diferenciais?",
        "Tem garantia? Qual o prazo?",
        "Como funciona a entrega ou prestação do serviço?",
    ],
    "faq": [
        "Qual a pergunta exata que os clientes costumam fazer?",
        "Qual a resposta completa e correta para essa pergunta?",
        "Existem variações dessa pergunta?",
        "Há links ou recursos adicionais que podem ajudar?",
    ],
    "policy": [
        "Qual o nome/título desta política?",
        "Quais são as regras principais?",
        "Quais são as exceções ou casos especiais?",
        "Qual o prazo de validade ou quando se aplica?",
    ],
    "instruction": [
        "Qual o objetivo desta instrução?",
        "Quais são os passos a seguir em ordem?",
        "Quais erros comuns devem ser evitados?",
        "Em que situações esta instrução deve ser aplicada?",
    ],
    "general": [
        "Sobre o que é essa informação?",
        "Quais são os pontos principais?",
        "Quando essa informação é útil?",
        "Há algo mais que o agente deve saber sobre isso?",
    ],
}

TYPE_LABELS: dict[str, str] = {
    "product": "Produto/Serviço",
    "faq": "Pergunta Frequente",
    "policy": "Política",
    "instruction": "Instrução",
    "general": "Conhecimento Geral",
}

ENHANCE_SYSTEM_PROMPT = """Você é um especialista em criar conteúdo para bases de conhecimento de agentes de IA de atendimento.

Sua tarefa é pegar as informações fornecidas e criar um texto bem estruturado, claro e completo que será usado por um agente de IA para responder clientes.

REGRAS:
1. Escreva em primeira pessoa do plural ("Nós oferecemos", "Nossa política")
2. Seja claro e direto, evite jargões
3. Organize as informações de forma lógica
4. Inclua todos os detalhes relevantes fornecidos
5. Se alguma informação estiver faltando, NÃO invente - apenas omita
6. Use formatação simples (parágrafos, listas quando apropriado)
7. O texto deve ser natural para o agente usar em conversas

FORMATO DE RESPOSTA (JSON):
{
  "title": "Título claro e descritivo",
  "content": "Conteúdo completo e estruturado"
}"""


def _template_key(item_type: str | None) -> str:
    return item_type if item_type in QUESTION_TEMPLATES else "general"


def get_enhancement_questions(item_type: str | None) -> dict:
    key = _template_key(item_type)
    return {
        "itemType": key,
        "typeLabel": TYPE_LABELS[key],
        "questions": list(QUESTION_TEMPLATES[key]),
    }


def build_enhance_prompt(
    item_type: str | None,
    title: str | None,
    current_content: str | None,
    answers: list[str],
) -> str:
    key = _template_key(item_type)
    questions = QUESTION_TEMPLATES[key]
    qa_blocks = []
    for index, question in enumerate(questions):
        answer = answers[index].strip() if index < len(answers) and answers[index] else ""
        qa_blocks.append(f"**{question}**\n{answer or 'Não informado'}")

    parts = [f"Tipo: {TYPE_LABELS[key]}"]
    if title:
        parts.append(f"Título atual: {title}")
    if current_content:
        parts.append(f"Conteúdo atual:\n{current_content}")
    parts.append("Informações adicionais fornecidas:\n\n" + "\n\n".join(qa_blocks))
    parts.append("Crie um conteúdo melhorado e completo combinando o conteúdo atual com as novas informações.")
    return "\n\n".join(parts)


async def enhance_content(
    *,
    item_type: str | None,
    title: str | None,
    current_content: str | None,
    answers: list[str],
) -> dict[str, str]:
    """
    增强条目内容

    Raises:
        LLMResponseFormatError: 重试后仍缺少 title 或 content
    """
    data = await chat_json(
        [
            {"role": "system", "content": ENHANCE_SYSTEM_PROMPT},
            {"role": "user", "content": build_enhance_prompt(item_type, title, current_content, answers)},
        ],
        required_fields=("title", "content"),
        temperature=0.7,
        max_tokens=2048,
    )
    logger.info(f"内容增强完成: type={_template_key(item_type)}")
    return {"title": str(data["title"]).strip(), "content": str(data["content"]).strip()}
