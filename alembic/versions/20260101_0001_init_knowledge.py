"""
初始数据库迁移脚本

创建知识管道的所有表：
- products                : 产品目录
- knowledge_items         : 知识条目
- knowledge_chunks        : 条目片段与向量
- knowledge_item_history  : 条目变更历史
- knowledge_edit_requests : 自然语言编辑请求

Revision ID: 20260101_0001
Revises: 无（初始迁移）
Create Date: 2026-01-01 00:00:00
"""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

revision: str = "20260101_0001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
    ]


def upgrade() -> None:
    op.create_table(
        "products",
        *_timestamps(),
        sa.Column("id", sa.String(length=36), nullable=False),
        sa.Column("organization_id", sa.String(length=36), nullable=False),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("slug", sa.String(length=255), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("organization_id", "slug", name="uq_products_org_slug"),
    )
    op.create_index("ix_products_organization_id", "products", ["organization_id"])

    op.create_table(
        "knowledge_items",
        *_timestamps(),
        sa.Column("id", sa.String(length=36), nullable=False),
        sa.Column("organization_id", sa.String(length=36), nullable=False),
        sa.Column("agent_id", sa.String(length=36), nullable=True),
        sa.Column("product_id", sa.String(length=36), nullable=True),
        sa.Column("title", sa.String(length=500), nullable=False),
        sa.Column("content", sa.Text(), nullable=True),
        sa.Column("resolved_content", sa.Text(), nullable=True),
        sa.Column("content_hash", sa.String(length=64), nullable=True),
        sa.Column("type", sa.String(length=50), nullable=False),
        sa.Column("category", sa.String(length=50), nullable=True),
        sa.Column("scope", sa.String(length=20), nullable=False),
        sa.Column("status", sa.String(length=20), nullable=False),
        sa.Column("error_message", sa.Text(), nullable=True),
        sa.Column("source", sa.String(length=50), nullable=True),
        sa.Column("source_url", sa.Text(), nullable=True),
        sa.Column("source_file_path", sa.Text(), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False),
        sa.Column("needs_reindex", sa.Boolean(), nullable=False),
        sa.Column("last_indexed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("global_item_id", sa.String(length=36), nullable=True),
        sa.Column("inherits_global", sa.Boolean(), nullable=False),
        sa.Column("version", sa.Integer(), nullable=False),
        sa.Column("metadata", sa.JSON(), nullable=True),
        sa.Column("created_by", sa.String(length=64), nullable=True),
        sa.Column("updated_by", sa.String(length=64), nullable=True),
        sa.ForeignKeyConstraint(["product_id"], ["products.id"], ondelete="SET NULL"),
        sa.ForeignKeyConstraint(["global_item_id"], ["knowledge_items.id"], ondelete="SET NULL"),
        sa.CheckConstraint(
            "source_url IS NULL OR source_file_path IS NULL",
            name="ck_knowledge_items_single_source",
        ),
        sa.CheckConstraint(
            "status <> 'error' OR error_message IS NOT NULL",
            name="ck_knowledge_items_error_message",
        ),
        sa.PrimaryKeyConstraint("id"),
    )
    for column in (
        "organization_id", "agent_id", "product_id", "status",
        "is_active", "needs_reindex", "global_item_id",
    ):
        op.create_index(f"ix_knowledge_items_{column}", "knowledge_items", [column])

    op.create_table(
        "knowledge_chunks",
        *_timestamps(),
        sa.Column("id", sa.String(length=36), nullable=False),
        sa.Column("organization_id", sa.String(length=36), nullable=False),
        sa.Column("item_id", sa.String(length=36), nullable=False),
        sa.Column("chunk_index", sa.Integer(), nullable=False),
        sa.Column("content", sa.Text(), nullable=False),
        sa.Column("embedding", sa.JSON(), nullable=False),
        sa.Column("metadata", sa.JSON(), nullable=True),
        sa.ForeignKeyConstraint(["item_id"], ["knowledge_items.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("item_id", "chunk_index", name="uq_knowledge_chunks_item_index"),
    )
    op.create_index("ix_knowledge_chunks_organization_id", "knowledge_chunks", ["organization_id"])
    op.create_index("ix_knowledge_chunks_item_id", "knowledge_chunks", ["item_id"])

    op.create_table(
        "knowledge_item_history",
        sa.Column("id", sa.String(length=36), nullable=False),
        sa.Column("organization_id", sa.String(length=36), nullable=False),
        sa.Column("item_id", sa.String(length=36), nullable=True),
        sa.Column("edit_request_id", sa.String(length=36), nullable=True),
        sa.Column("previous_title", sa.String(length=500), nullable=True),
        sa.Column("previous_content", sa.Text(), nullable=True),
        sa.Column("previous_resolved_content", sa.Text(), nullable=True),
        sa.Column("new_title", sa.String(length=500), nullable=True),
        sa.Column("new_content", sa.Text(), nullable=True),
        sa.Column("new_resolved_content", sa.Text(), nullable=True),
        sa.Column("change_type", sa.String(length=20), nullable=False),
        sa.Column("change_source", sa.String(length=50), nullable=True),
        sa.Column("change_description", sa.Text(), nullable=True),
        sa.Column("changed_by", sa.String(length=64), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.PrimaryKeyConstraint("id"),
    )
    for column in ("organization_id", "item_id", "edit_request_id"):
        op.create_index(f"ix_knowledge_item_history_{column}", "knowledge_item_history", [column])

    op.create_table(
        "knowledge_edit_requests",
        *_timestamps(),
        sa.Column("id", sa.String(length=36), nullable=False),
        sa.Column("organization_id", sa.String(length=36), nullable=False),
        sa.Column("user_request", sa.Text(), nullable=False),
        sa.Column("proposed_changes", sa.JSON(), nullable=False),
        sa.Column("warnings", sa.JSON(), nullable=True),
        sa.Column("explanation", sa.Text(), nullable=True),
        sa.Column("status", sa.String(length=20), nullable=False),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("applied_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("apply_errors", sa.JSON(), nullable=True),
        sa.Column("created_by", sa.String(length=64), nullable=True),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_knowledge_edit_requests_organization_id", "knowledge_edit_requests", ["organization_id"])
    op.create_index("ix_knowledge_edit_requests_status", "knowledge_edit_requests", ["status"])


def downgrade() -> None:
    op.drop_table("knowledge_edit_requests")
    op.drop_table("knowledge_item_history")
    op.drop_table("knowledge_chunks")
    op.drop_table("knowledge_items")
    op.drop_table("products")
