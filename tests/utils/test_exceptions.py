"""Tests for the error taxonomy and provider error classification."""

import asyncio

import pytest

from engram.utils import (
    ConfigurationError,
    ConflictError,
    EngramError,
    InternalError,
    NotFoundError,
    ProviderPermanentError,
    ProviderTransientError,
    ValidationError,
    VectorStoreError,
    is_transient_exception,
    provider_error,
)


class StatusError(Exception):
    """SDK-style exception exposing an HTTP status."""

    def __init__(self, message: str, status_code: int):
        super().__init__(message)
        self.status_code = status_code


class APITimeoutError(Exception):
    pass


@pytest.mark.unit
class TestErrorKinds:
    """Test every error maps to one kind."""

    @pytest.mark.parametrize(
        "error_cls,kind",
        [
            (ValidationError, "validation"),
            (ConfigurationError, "validation"),
            (NotFoundError, "not_found"),
            (ConflictError, "conflict"),
            (ProviderTransientError, "provider_transient"),
            (ProviderPermanentError, "provider_permanent"),
            (VectorStoreError, "internal"),
            (InternalError, "internal"),
        ],
    )
    def test_kind(self, error_cls, kind):
        error = error_cls("message")

        assert error.kind == kind
        assert isinstance(error, EngramError)

    def test_context_and_to_dict(self):
        """Test context is kept and serialized."""
        error = NotFoundError("Memory not found", {"memory_id": "mem_1"})

        assert error.message == "Memory not found"
        assert error.context == {"memory_id": "mem_1"}
        assert error.to_dict() == {
            "kind": "not_found",
            "message": "Memory not found",
            "context": {"memory_id": "mem_1"},
        }

    def test_context_defaults_to_empty(self):
        assert ValidationError("bad").context == {}


@pytest.mark.unit
class TestTransientClassification:
    """Test is_transient_exception."""

    @pytest.mark.parametrize("status", [408, 429, 500, 502, 503, 504])
    def test_transient_status(self, status):
        assert is_transient_exception(StatusError("failed", status)) is True

    @pytest.mark.parametrize("status", [400, 401, 403, 404, 422])
    def test_permanent_status(self, status):
        assert is_transient_exception(StatusError("failed", status)) is False

    def test_connection_and_timeouts(self):
        assert is_transient_exception(ConnectionError("refused")) is True
        assert is_transient_exception(asyncio.TimeoutError()) is True
        assert is_transient_exception(APITimeoutError("slow")) is True

    def test_unknown_is_permanent(self):
        assert is_transient_exception(ValueError("bad model")) is False

    def test_provider_errors_keep_their_kind(self):
        assert is_transient_exception(ProviderTransientError("x")) is True
        assert is_transient_exception(ProviderPermanentError("x")) is False


@pytest.mark.unit
class TestProviderError:
    """Test provider_error wrapping."""

    def test_wraps_transient(self):
        error = provider_error(StatusError("rate limited", 429), "openai", "embed")

        assert isinstance(error, ProviderTransientError)
        assert error.context["provider"] == "openai"
        assert error.context["operation"] == "embed"
        assert error.context["status_code"] == 429

    def test_wraps_permanent_with_context(self):
        error = provider_error(
            StatusError("unauthorized", 401), "openai", "complete", {"model": "gpt-4o"}
        )

        assert isinstance(error, ProviderPermanentError)
        assert error.context["model"] == "gpt-4o"
        assert "unauthorized" in error.message
