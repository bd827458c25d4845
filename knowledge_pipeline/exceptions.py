class ExtractionError(Exception):
    """
    文本提取错误（文件不可读、内容过短、扫描版 PDF 等）

    文件导入时条目已经创建，item_id 指向被标记为 error 的条目。
    """

    def __init__(self, message: str, item_id: str | None = None):
        super().__init__(message)
        self.item_id = item_id


class ChunkingError(Exception):
    """切分结果为空"""


class EmbeddingError(Exception):
    """向量化错误"""


class EmbeddingProviderUnavailable(EmbeddingError):
    """向量化服务不可达或未配置（首次入库可降级为零向量）"""


class EmbeddingDimensionError(EmbeddingError):
    """向量维度或数量与预期不符（任何路径下都是致命错误）"""


class LLMError(Exception):
    """LLM 调用错误"""


class LLMRateLimitError(LLMError):
    """LLM 供应商限流（HTTP 429）"""


class LLMPaymentRequiredError(LLMError):
    """LLM 供应商额度不足（HTTP 402）"""


class LLMResponseFormatError(LLMError):
    """LLM 返回内容无法解析为约定的 JSON"""


class StorageError(Exception):
    """对象存储写入错误"""


class IngestionError(Exception):
    """知识条目入库错误"""


class UrlFetchError(IngestionError):
    """URL 抓取失败（网络错误或非 2xx 响应）"""


class EditRequestError(Exception):
    """
    编辑请求不可执行

    code 用于 API 层映射响应状态：
    - EDIT_REQUEST_NOT_FOUND
    - EDIT_REQUEST_NOT_APPLICABLE
    - EDIT_REQUEST_EXPIRED
    """

    def __init__(self, message: str, code: str = "EDIT_REQUEST_NOT_APPLICABLE"):
        super().__init__(message)
        self.code = code
