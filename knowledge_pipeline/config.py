"""
服务配置

字段可由同名环境变量（不区分大小写）或 .env 覆盖，例如 EMBEDDING_PROVIDER=hash。
测试中直接修改 get_settings() 返回的实例。
"""

from functools import lru_cache

from pydantic_settings import BaseSettings


class Settings(BaseSettings):

    # --- 应用基础配置 ---
    app_name: str = "Knowledge Pipeline Service"
    environment: str = "dev"                 # 运行环境：dev/staging/prod/test
    log_level: str = "INFO"
    log_json: bool | None = None             # True=JSON，None=自动（prod用JSON）

    # --- 数据库配置 ---
    # 格式：postgresql+asyncpg://用户名:密码@主机:端口/数据库名
    database_url: str = "postgresql+asyncpg://kb:kb@localhost:5432/knowledge"

    # --- Redis 配置（分布式条目锁） ---
    redis_url: str | None = None  # 未配置时使用进程内锁（单实例模式）
    item_lock_timeout_seconds: int = 300  # 锁自动释放时间，防止进程崩溃后死锁
    item_lock_key_prefix: str = "kb:item-lock:"

    # --- Embedding 配置（向量化模型） ---
    # provider: voyage / openai / ollama / hash
    # hash 仅用于本地开发，生成确定性的伪向量
    embedding_provider: str = "voyage"
    embedding_model: str = "voyage-3"
    embedding_dim: int = 1024          # 必须与 knowledge_chunks 存储的维度一致
    embedding_batch_size: int = 128    # 单次请求的文本数上限
    embedding_timeout_seconds: float = 60.0

    voyage_api_key: str | None = None
    voyage_api_base: str = "https://api.voyageai.com/v1"

    # --- 模型提供商 API 配置 ---
    ollama_base_url: str = "http://localhost:11434"

    # OpenAI / 兼容网关
    openai_api_key: str | None = None
    openai_api_base: str | None = None

    # --- LLM 配置（对话模型） ---
    # 用于编辑请求解析、向导对话、内容合成、反馈分类
    # provider: openai / ollama
    llm_provider: str = "openai"
    llm_model: str = "gpt-4o-mini"
    llm_temperature: float = 0.7
    llm_max_tokens: int = 2048
    llm_timeout_seconds: float = 120.0

    # --- 切分配置 ---
    chunker_name: str = "paragraph_overlap"
    chunk_max_chars: int = 1500
    chunk_overlap_chars: int = 200

    # --- 对象存储配置 ---
    # 上传的原始文件按 {organization_id}/{timestamp}-{name} 存放
    storage_root: str = "./storage"
    storage_bucket: str = "knowledge-uploads"
    max_upload_bytes: int = 20 * 1024 * 1024

    # --- URL 导入配置 ---
    url_fetch_timeout_seconds: float = 30.0
    url_fetch_user_agent: str = "Mozilla/5.0 (compatible; KnowledgeBot/1.0)"
    url_max_bytes: int = 5 * 1024 * 1024

    # --- 编辑请求配置 ---
    edit_request_ttl_minutes: int = 60  # 待确认编辑请求的有效期
    edit_llm_temperature: float = 0.3

    # --- 外部 API 重试配置 ---
    # 仅对 HTTP 429 进行指数退避重试
    external_retry_max_attempts: int = 5
    external_retry_base_delay_seconds: float = 1.0
    # 批量重处理时相邻条目之间的等待时间，避免触发供应商限流
    reprocess_item_delay_seconds: float = 0.0

    # --- 本地化 ---
    default_new_item_title: str = "Novo item"

    model_config = {
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "extra": "ignore",
    }

    def get_embedding_config(self) -> dict:
        """获取 Embedding 提供商配置"""
        provider = self.embedding_provider
        config: dict = {
            "provider": provider,
            "model": self.embedding_model,
            "dim": self.embedding_dim,
            "batch_size": self.embedding_batch_size,
            "timeout": self.embedding_timeout_seconds,
        }
        if provider == "voyage":
            config["api_key"] = self.voyage_api_key
            config["base_url"] = self.voyage_api_base
        elif provider == "openai":
            config["api_key"] = self.openai_api_key
            config["base_url"] = self.openai_api_base
        elif provider == "ollama":
            config["base_url"] = self.ollama_base_url
        return config

    def get_llm_config(self) -> dict:
        """获取 LLM 提供商配置"""
        provider = self.llm_provider
        config: dict = {
            "provider": provider,
            "model": self.llm_model,
            "timeout": self.llm_timeout_seconds,
        }
        if provider == "ollama":
            config["base_url"] = self.ollama_base_url
        else:
            config["api_key"] = self.openai_api_key
            config["base_url"] = self.openai_api_base
        return config


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings()
