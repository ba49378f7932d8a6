"""Domain-specific exceptions — framework-independent.

Every failure the RAG core can surface derives from ``DocChatError``. The
``retryable`` flag tells the stream client's retry loop whether another
attempt may succeed; ``user_message`` is the human-readable cause shown when
the failure finally reaches the user.
"""


class DocChatError(Exception):
    """Base class for all errors raised by the retrieval and chat core."""

    retryable: bool = False
    user_message: str = "Something went wrong while talking to the assistant."

    def __init__(self, message: str | None = None, *, status_code: int | None = None):
        self.message = message or self.user_message
        self.status_code = status_code
        super().__init__(self.message)


class ValidationError(DocChatError):
    """Raised for requests that can never succeed as-is (empty prompt, bad credential, bad URL)."""

    user_message = "The request is invalid."


class AuthenticationFailed(DocChatError):
    """Raised when the model endpoint rejects the credential."""

    user_message = "Authentication failed. Please check your Claude API key in Settings."


class EmbeddingUnavailable(DocChatError):
    """Raised when the embedding collaborator cannot produce a vector."""

    user_message = "Document search is currently unavailable."


class TokenCountUnavailable(DocChatError):
    """Raised when the exact token counting endpoint cannot answer."""

    user_message = "Exact token counting is unavailable."


class RateLimitExceeded(DocChatError):
    """Raised when the local request window is full or the endpoint answers 429."""

    retryable = True
    user_message = "API rate limit exceeded. Please wait a moment before trying again."

    def __init__(
        self,
        message: str | None = None,
        *,
        status_code: int | None = None,
        retry_after: float | None = None,
    ):
        self.retry_after = retry_after
        super().__init__(message, status_code=status_code)


class ServiceUnavailable(DocChatError):
    """Raised while the circuit breaker is open."""

    retryable = True
    user_message = "Chat service is currently unavailable. Please try again later."

    def __init__(self, message: str | None = None, *, retry_after: float | None = None):
        self.retry_after = retry_after
        super().__init__(message, status_code=503)


class ConnectionFailed(DocChatError):
    """Raised for transient transport failures and 5xx/overloaded responses."""

    retryable = True
    user_message = "Connection failed. Check your internet connection and try again."


class RequestTimeout(ConnectionFailed):
    """Raised when connecting to or reading from the endpoint timed out."""

    user_message = "Request timed out. Please try again."


class ContextTooLarge(DocChatError):
    """Raised when the endpoint refuses the prompt as too large."""

    user_message = (
        "The document context is too large. Try with fewer or smaller documents."
    )


class ProtocolError(DocChatError):
    """Raised when the endpoint answers with something that is not a valid event stream."""

    user_message = "Invalid response from the model endpoint."


class RequestFailed(DocChatError):
    """Raised for any other non-retryable rejection from the endpoint."""

    user_message = "Request failed. Please try again."
