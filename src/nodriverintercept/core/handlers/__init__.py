from .request_interceptor import RequestInterceptor

__all__ = [
    "RequestInterceptor",
]
