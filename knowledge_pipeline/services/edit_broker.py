"""
编辑请求解析服务 (Edit Request Broker)

把自然语言编辑指令解析为可审核、有有效期的结构化变更集，从不直接修改数据：

1. 组装上下文：有效产品列表 + 有效知识条目（id/标题/分类/作用域/产品）
2. 调用 LLM 输出严格 JSON，并在信任边界按 action 校验为 update/create/delete
3. understood=false：返回澄清问题，不持久化任何内容
4. understood=true：product_slug 由服务端解析为 product_id，保存为 pending 请求

LLM 不可用、返回错误或格式非法时一律"失败关闭"：understood=false + 说明信息，绝不猜测变更。
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta

from pydantic import ValidationError
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from knowledge_pipeline.config import get_settings
from knowledge_pipeline.exceptions import LLMError
from knowledge_pipeline.infra.llm import chat_json
from knowledge_pipeline.models import KnowledgeEditRequest, KnowledgeItem, Product
from knowledge_pipeline.schemas.edit import EditProposal
from knowledge_pipeline.services.knowledge_store import utcnow

logger = logging.getLogger(__name__)

VALID_CATEGORIES = (
    "general", "contact_hours", "payment", "policies", "scope", "compliance",
    "language_guide", "glossary", "product_service", "pricing_plans", "process",
    "requirements", "objections", "qualification", "faq", "social_proof",
)

UNAVAILABLE_MESSAGE = (
    "O assistente de edição está indisponível no momento. "
    "Tente novamente em alguns minutos ou edite o item manualmente."
)
UNPARSEABLE_MESSAGE = "Não consegui interpretar o pedido. Pode descrever a alteração com mais detalhes?"

EDIT_SYSTEM_PROMPT = """Você é um assistente que processa pedidos de edição na base de conhecimento de uma organização.

## PRODUTOS DISPONÍVEIS
{products}

## ITENS DE CONHECIMENTO EXISTENTES
{items}

## CATEGORIAS VÁLIDAS (CHAVES EM INGLÊS)
{categories}

## TAREFA
Analise o pedido do usuário e identifique:
1. Qual(is) item(ns) de conhecimento deve(m) ser alterado(s)
2. Que tipo de mudança (update, create, delete)
3. O conteúdo atualizado

RESPONDA APENAS COM JSON VÁLIDO no formato:
{{
  "understood": true,
  "needs_clarification": null,
  "proposed_changes": [
    {{
      "item_id": "uuid ou null se criar novo",
      "action": "update|create|delete",
      "category": "categoria válida",
      "scope": "global|product",
      "product_slug": "slug do produto ou null",
      "current_title": "título atual ou null",
      "proposed_title": "novo título ou null",
      "current_content": "conteúdo atual resumido ou null",
      "proposed_content": "conteúdo novo completo",
      "change_summary": "resumo da mudança em 1 frase"
    }}
  ],
  "warnings": ["avisos se houver efeitos colaterais"],
  "explanation": "Explicação breve do que vai ser feito"
}}

Se precisar de mais informações, responda com:
{{
  "understood": false,
  "needs_clarification": "O que você precisa saber",
  "proposed_changes": [],
  "warnings": [],
  "explanation": null
}}"""


@dataclass
class EditBrokerResult:
    """解析结果，understood=false 时 request 为空"""
    understood: bool
    proposal: EditProposal
    request: KnowledgeEditRequest | None = None
    needs_clarification: str | None = None
    warnings: list[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "success": self.request is not None,
            "understood": self.understood,
            "request_id": self.request.id if self.request else None,
            "needs_clarification": self.needs_clarification,
            "proposed_changes": [c.model_dump() for c in self.proposal.proposed_changes] if self.request else [],
            "warnings": self.warnings,
            "explanation": self.proposal.explanation,
            "expires_at": self.request.expires_at if self.request else None,
        }


def build_context(products: list[Product], items: list[KnowledgeItem]) -> tuple[str, str]:
    """产品和条目的上下文行"""
    products_by_id = {p.id: p for p in products}
    products_context = "\n".join(f"- {p.name} (slug: {p.slug})" for p in products)
    item_lines = []
    for item in items:
        product = products_by_id.get(item.product_id) if item.product_id else None
        product_part = f", product: {product.name}" if product else ""
        item_lines.append(
            f'- [{item.id}] "{item.title}" (category: {item.category}, scope: {item.scope}{product_part})'
        )
    return products_context, "\n".join(item_lines)


def _fail_closed(message: str) -> EditBrokerResult:
    return EditBrokerResult(
        understood=False,
        proposal=EditProposal(understood=False, needs_clarification=message),
        needs_clarification=message,
    )


async def interpret_edit_request(
    session: AsyncSession,
    *,
    organization_id: str,
    user_request: str,
    created_by: str | None = None,
) -> EditBrokerResult:
    """解析编辑指令，理解成功且有变更时保存 pending 请求"""
    settings = get_settings()
    logger.info(f"处理编辑请求: organization={organization_id}: {user_request[:100]}")

    products = list((await session.execute(
        select(Product).where(Product.organization_id == organization_id, Product.is_active.is_(True))
    )).scalars().all())
    items = list((await session.execute(
        select(KnowledgeItem).where(
            KnowledgeItem.organization_id == organization_id,
            KnowledgeItem.is_active.is_(True),
        ).order_by(KnowledgeItem.created_at)
    )).scalars().all())

    products_context, items_context = build_context(products, items)
    system_prompt = EDIT_SYSTEM_PROMPT.format(
        products=products_context or "(Nenhum produto cadastrado)",
        items=items_context or "(Nenhum item cadastrado)",
        categories=", ".join(VALID_CATEGORIES),
    )

    try:
        raw = await chat_json(
            [
                {"role": "system", "content": system_prompt},
                {"role": "user", "content": f"Pedido: {user_request}"},
            ],
            temperature=settings.edit_llm_temperature,
            json_mode=True,
        )
    except LLMError as e:
        logger.error(f"编辑请求解析失败（LLM）: {e}")
        return _fail_closed(UNAVAILABLE_MESSAGE)

    try:
        proposal = EditProposal.model_validate(raw)
    except ValidationError as e:
        logger.warning(f"LLM 返回的变更集不合法: {e}")
        return _fail_closed(UNPARSEABLE_MESSAGE)

    if not proposal.understood or not proposal.proposed_changes:
        return EditBrokerResult(
            understood=proposal.understood,
            proposal=proposal,
            needs_clarification=proposal.needs_clarification,
            warnings=proposal.warnings,
        )

    slug_to_id = {p.slug: p.id for p in products}
    for change in proposal.proposed_changes:
        change.product_id = slug_to_id.get(change.product_slug) if change.product_slug else None

    expires_at: datetime = utcnow() + timedelta(minutes=settings.edit_request_ttl_minutes)
    request = KnowledgeEditRequest(
        organization_id=organization_id,
        user_request=user_request,
        proposed_changes=[c.model_dump() for c in proposal.proposed_changes],
        warnings=list(proposal.warnings),
        explanation=proposal.explanation,
        status="pending",
        expires_at=expires_at,
        created_by=created_by,
    )
    session.add(request)
    await session.commit()

    logger.info(f"✅ 创建编辑请求 {request.id}，{len(proposal.proposed_changes)} 项变更")
    return EditBrokerResult(
        understood=True,
        proposal=proposal,
        request=request,
        warnings=proposal.warnings,
    )
