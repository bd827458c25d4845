"""领域异常到 HTTPException 的映射"""

from fastapi import HTTPException, status

from knowledge_pipeline.exceptions import (
    EditRequestError,
    LLMError,
    LLMPaymentRequiredError,
    LLMRateLimitError,
)

EDIT_REQUEST_STATUS = {
    "EDIT_REQUEST_NOT_FOUND": status.HTTP_404_NOT_FOUND,
    "EDIT_REQUEST_NOT_APPLICABLE": status.HTTP_409_CONFLICT,
    "EDIT_REQUEST_EXPIRED": status.HTTP_410_GONE,
}


def http_error(status_code: int, code: str, detail: str) -> HTTPException:
    return HTTPException(status_code=status_code, detail={"code": code, "detail": detail})


def llm_http_error(e: LLMError) -> HTTPException:
    if isinstance(e, LLMRateLimitError):
        return http_error(
            status.HTTP_429_TOO_MANY_REQUESTS,
            "RATE_LIMITED",
            "Limite de requisições excedido. Tente novamente em alguns segundos.",
        )
    if isinstance(e, LLMPaymentRequiredError):
        return http_error(
            status.HTTP_402_PAYMENT_REQUIRED,
            "PAYMENT_REQUIRED",
            "Créditos insuficientes. Adicione créditos para continuar.",
        )
    return http_error(status.HTTP_502_BAD_GATEWAY, "LLM_ERROR", str(e))


def edit_request_http_error(e: EditRequestError) -> HTTPException:
    return http_error(EDIT_REQUEST_STATUS.get(e.code, status.HTTP_409_CONFLICT), e.code, str(e))
