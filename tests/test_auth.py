"""Unit tests for API key authentication module."""

from types import SimpleNamespace
from unittest.mock import patch

import pytest
from fastapi import HTTPException

from notify_api.core.auth import parse_api_keys, validate_api_key, verify_api_key
from notify_api.core.errors import AuthenticationAppError


def _request() -> SimpleNamespace:
    return SimpleNamespace(state=SimpleNamespace())


class TestParseAPIKeys:
    """Test API key parsing utility function."""

    def test_parse_bare_key_maps_to_itself(self) -> None:
        assert parse_api_keys("my-secret-key") == {"my-secret-key": "my-secret-key"}

    def test_parse_key_with_principal(self) -> None:
        assert parse_api_keys("k1:alice,k2:bob") == {"k1": "alice", "k2": "bob"}

    def test_parse_keys_with_whitespace(self) -> None:
        assert parse_api_keys(" k1 : alice ,  k2 ") == {"k1": "alice", "k2": "k2"}

    @pytest.mark.parametrize("value", [None, "", "   ,  ,  ", ":orphan"])
    def test_parse_empty_inputs(self, value: str | None) -> None:
        assert parse_api_keys(value) == {}

    def test_last_duplicate_wins(self) -> None:
        assert parse_api_keys("k1:alice,k1:carol") == {"k1": "carol"}


class TestValidateAPIKey:
    """Test core API key validation logic."""

    @patch("notify_api.core.auth.settings")
    def test_raises_when_no_keys_configured(self, mock_settings) -> None:
        mock_settings.app.api_keys = None

        with pytest.raises(AuthenticationAppError) as exc_info:
            validate_api_key("some-key")

        assert exc_info.value.code == "api_keys_not_configured"

    @patch("notify_api.core.auth.settings")
    def test_returns_principal(self, mock_settings) -> None:
        mock_settings.app.api_keys = "valid-key-1:alice,valid-key-2"

        assert validate_api_key("valid-key-1") == "alice"
        assert validate_api_key("valid-key-2") == "valid-key-2"

    @patch("notify_api.core.auth.settings")
    def test_rejects_invalid_key(self, mock_settings) -> None:
        mock_settings.app.api_keys = "valid-key-1:alice"

        with pytest.raises(AuthenticationAppError) as exc_info:
            validate_api_key("invalid-key")

        assert exc_info.value.code == "invalid_api_key"


class TestVerifyAPIKeyDependency:
    """Test FastAPI dependency for API key verification."""

    @pytest.mark.asyncio
    @patch("notify_api.core.auth.settings")
    async def test_bypassed_when_auth_disabled(self, mock_settings) -> None:
        mock_settings.app.api_key_required = False
        request = _request()

        assert await verify_api_key(request, x_api_key=None) is None
        assert not hasattr(request.state, "user_id")

    @pytest.mark.asyncio
    @patch("notify_api.core.auth.settings")
    async def test_raises_403_when_header_missing(self, mock_settings) -> None:
        mock_settings.app.api_key_required = True
        mock_settings.app.api_keys = "valid-key"

        with pytest.raises(HTTPException) as exc_info:
            await verify_api_key(_request(), x_api_key=None)

        assert exc_info.value.status_code == 403
        assert "Missing API key" in exc_info.value.detail

    @pytest.mark.asyncio
    @patch("notify_api.core.auth.settings")
    async def test_raises_403_when_key_invalid(self, mock_settings) -> None:
        mock_settings.app.api_key_required = True
        mock_settings.app.api_keys = "valid-key"

        with pytest.raises(HTTPException) as exc_info:
            await verify_api_key(_request(), x_api_key="wrong-key")

        assert exc_info.value.status_code == 403
        assert "Invalid or missing API key" in exc_info.value.detail

    @pytest.mark.asyncio
    @patch("notify_api.core.auth.settings")
    async def test_valid_key_sets_principal_on_request(self, mock_settings) -> None:
        mock_settings.app.api_key_required = True
        mock_settings.app.api_keys = "my-valid-key:alice"
        request = _request()

        assert await verify_api_key(request, x_api_key="my-valid-key") == "alice"
        assert request.state.user_id == "alice"
