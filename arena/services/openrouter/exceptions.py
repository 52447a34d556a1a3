class OpenRouterAPIError(Exception):
    """Base exception for OpenRouter API errors."""

    def __init__(
        self,
        message: str,
        status_code: int | None = None,
        retryable: bool = False,
    ):
        super().__init__(message)
        self.status_code = status_code
        self.retryable = retryable


class OpenRouterAuthError(OpenRouterAPIError):
    """Authentication failed or credits exhausted."""

    pass


class OpenRouterBadRequestError(OpenRouterAPIError):
    """Request rejected by the gateway or the upstream model."""

    pass


class OpenRouterRateLimitError(OpenRouterAPIError):
    """Rate limit exceeded."""

    def __init__(self, message: str, status_code: int | None = 429):
        super().__init__(message, status_code=status_code, retryable=True)


class OpenRouterServerError(OpenRouterAPIError):
    """Gateway or upstream provider failed."""

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message, status_code=status_code, retryable=True)
