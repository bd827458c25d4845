"""
Knowledge Pipeline Service - 应用主包

多租户 CRM 的知识入库与检索流水线，包含以下子模块：
- api/        : API 路由和依赖注入
- db/         : 数据库连接和会话管理
- models/     : SQLAlchemy ORM 数据模型
- schemas/    : Pydantic 请求/响应模式
- pipeline/   : 文本提取器与切分器（可插拔注册表）
- services/   : 业务逻辑服务层（入库、重处理、编辑请求、向导）
- infra/      : 基础设施（Embedding、LLM、对象存储、条目锁）

项目架构遵循分层设计：
    API层 → 服务层 → 数据访问层 → 基础设施层
"""
