from knowledge_pipeline.middleware.request_trace import RequestTraceMiddleware

__all__ = ["RequestTraceMiddleware"]
