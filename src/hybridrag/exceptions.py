"""
Exceptions raised by hybridrag components.
"""


class RAGError(Exception):
    """Base exception for hybridrag errors."""

    def __init__(self, message: str):
        self.message = message
        super().__init__(self.message)


class ConfigurationError(RAGError, ValueError):
    """Raised when a configuration is rejected at build time."""


class ProviderError(RAGError):
    """Raised when an embedding, reranking or store call fails."""

    def __init__(self, message: str, provider: str | None = None):
        self.provider = provider
        if provider:
            message = f"{provider}: {message}"
        super().__init__(message)


class ProviderTimeoutError(ProviderError):
    """Raised when a provider call exceeds its deadline."""

    def __init__(self, operation: str, timeout: float, provider: str | None = None):
        self.operation = operation
        self.timeout = timeout
        super().__init__(f"{operation} timed out after {timeout:.2f}s", provider=provider)


class DimensionMismatchError(RAGError):
    """Raised when a vector does not match the index dimensionality."""

    def __init__(self, expected: int, actual: int, chunk_id: str | None = None):
        self.expected = expected
        self.actual = actual
        self.chunk_id = chunk_id
        target = f" for chunk '{chunk_id}'" if chunk_id else ""
        super().__init__(
            f"Vector dimension mismatch{target}: expected {expected}, got {actual}"
        )
