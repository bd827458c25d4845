"""
API 路由汇总

路由模块说明：
- health.py   : 健康检查
- items.py    : 条目创建、直接编辑、处理/重处理/重建
- imports.py  : 文件和网页导入
- edits.py    : 自然语言编辑请求（解析、执行）
- wizard.py   : 向导对话、文档合成、分类内容生成、内容增强
- feedback.py : 反馈分类
"""

from fastapi import APIRouter

from knowledge_pipeline.api.routes import edits, feedback, health, imports, items, wizard

api_router = APIRouter()

api_router.include_router(health.router, tags=["health"])
api_router.include_router(items.router, tags=["items"])
api_router.include_router(imports.router, tags=["imports"])
api_router.include_router(edits.router, tags=["edit-requests"])
api_router.include_router(wizard.router, tags=["wizard"])
api_router.include_router(feedback.router, tags=["feedback"])
