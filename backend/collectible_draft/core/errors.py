from typing import Optional


class SearchNotConfigured(ValueError):
    """No credentials for any image search provider."""


class SearchBackendError(Exception):
    def __init__(self, message: str, status_code: Optional[int] = None, body: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.body = body
