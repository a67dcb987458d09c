"""Error types shared by the crawl lifecycle, the provider client and the API."""

from __future__ import annotations


class CrawlServiceError(RuntimeError):
    def __init__(self, code: str, message: str, status_code: int = 500):
        super().__init__(message)
        self.code = code
        self.message = message
        self.status_code = status_code


class StorageError(CrawlServiceError):
    """Database or work-queue failure."""

    def __init__(self, message: str, code: str = "storage_unavailable"):
        super().__init__(code=code, message=message, status_code=500)


class FirecrawlClientError(CrawlServiceError):
    """The crawl provider was unreachable or answered with something unusable."""

    def __init__(self, code: str, message: str, status_code: int = 502):
        super().__init__(code=code, message=message, status_code=status_code)


class CrawlRequestNotFoundError(CrawlServiceError):
    def __init__(self, message: str = "Crawl request not found"):
        super().__init__(code="crawl_request_not_found", message=message, status_code=404)
