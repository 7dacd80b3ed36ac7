from __future__ import annotations

from typing import Any


class SolveurError(Exception):
    """Base error for Solveur."""

    code = "INTERNAL_ERROR"
    status_code = 500

    def __init__(self, message: str | None = None, **details: Any) -> None:
        super().__init__(message or self.__class__.__doc__ or self.code)
        self.message = message or (self.__class__.__doc__ or self.code).strip()
        self.details = details


class ProviderConfigError(SolveurError):
    """Missing or invalid provider configuration."""

    code = "PROVIDER_CONFIG_MISSING"
    status_code = 503


class TenantNotFound(SolveurError):
    """Tenant not found."""

    code = "TENANT_NOT_FOUND"
    status_code = 404


class TenantInactive(SolveurError):
    """Tenant is not active."""

    code = "TENANT_INACTIVE"
    status_code = 403


class QuotaExceeded(SolveurError):
    """Usage quota exceeded for today."""

    code = "QUOTA_EXCEEDED"
    status_code = 429


class EmbeddingUnavailable(SolveurError):
    """Embedding provider failure; recovered by the chat pipeline."""

    code = "EMBEDDING_UNAVAILABLE"
    status_code = 503


class VectorSearchUnavailable(SolveurError):
    """Vector index failure; recovered by the chat pipeline."""

    code = "VECTOR_SEARCH_UNAVAILABLE"
    status_code = 503


class CompletionFailed(SolveurError):
    """I could not generate a response right now. Please try again."""

    code = "COMPLETION_FAILED"
    status_code = 500


class PersistenceFailed(SolveurError):
    """Conversation persistence failure; logged, never surfaced."""

    code = "PERSISTENCE_FAILED"
    status_code = 500


class PersonalityError(SolveurError):
    """Invalid personality operation."""

    code = "PERSONALITY_INVALID"
    status_code = 400


class PersonalityNotFound(SolveurError):
    """Personality not found."""

    code = "PERSONALITY_NOT_FOUND"
    status_code = 404


class SlugUnavailable(SolveurError):
    """Organization subdomain is already taken."""

    code = "SLUG_UNAVAILABLE"
    status_code = 409


class SlugInvalid(SolveurError):
    """Subdomain must be 2-50 characters of lowercase letters, numbers and hyphens."""

    code = "SLUG_INVALID"
    status_code = 400


class AuthError(SolveurError):
    """Invalid credentials."""

    code = "AUTH_UNAUTHORIZED"
    status_code = 401


class MessageRequired(SolveurError):
    """Message is required."""

    code = "MESSAGE_REQUIRED"
    status_code = 400


class SsoNotConfigured(SolveurError):
    """SSO provider is not configured."""

    code = "SSO_NOT_CONFIGURED"
    status_code = 501


class AdminActionInvalid(SolveurError):
    """Invalid admin operation."""

    code = "ADMIN_ACTION_INVALID"
    status_code = 400


class AdminNotFound(SolveurError):
    """Admin target not found."""

    code = "NOT_FOUND"
    status_code = 404
