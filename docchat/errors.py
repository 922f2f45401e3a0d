"""
Error taxonomy for the document chat backend.

Input errors are rejected before any external call. Gateway errors carry the
failing collaborator. Pipeline errors (RetrievalError, GenerationError) abort
a chat request; metadata failures after a completion never do.
"""


class DocChatError(Exception):
    """Base class for all application errors."""

    status_code = 500
    public_message = "An internal error occurred. Please try again."


# ============================================================
# INPUT ERRORS
# ============================================================

class InputValidationError(DocChatError):
    status_code = 400

    @property
    def public_message(self) -> str:
        return str(self)


class UserNotFoundError(DocChatError):
    status_code = 401
    public_message = "Authentication error: user could not be resolved."


class NotFoundError(DocChatError):
    status_code = 404

    @property
    def public_message(self) -> str:
        return str(self)


class PermissionDeniedError(DocChatError):
    status_code = 403

    @property
    def public_message(self) -> str:
        return str(self)


# ============================================================
# GATEWAY ERRORS
# ============================================================

class EmbeddingError(DocChatError):
    pass


class VectorStoreError(DocChatError):
    pass


class CompletionError(DocChatError):
    pass


class MetadataStoreError(DocChatError):
    pass


# ============================================================
# PIPELINE ERRORS
# ============================================================

class RetrievalError(DocChatError):
    public_message = "Could not process your question."


class GenerationError(DocChatError):
    public_message = "Could not process your question."


class IngestionError(DocChatError):
    public_message = "Failed to process document."
