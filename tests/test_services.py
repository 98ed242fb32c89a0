"""
Tests for the smaller services: key validation, verification mail, tokens, Google sign-in
"""

from unittest.mock import AsyncMock, patch

import httpx
import pytest
from httpx import AsyncClient

from app.services import create_access_token, decode_token_claims, get_password_hash, verify_password
from app.services.email_service import VERIFY_SUBJECT, send_verification_email, verification_link
from app.services.llm_key_validator import validate_key


# ============ Passwords and tokens ============

def test_password_hash_round_trip():
    hashed = get_password_hash("secret123")
    assert hashed != "secret123"
    assert verify_password("secret123", hashed)
    assert not verify_password("wrong", hashed)


def test_access_token_subject():
    assert decode_token_claims(create_access_token("42"))["sub"] == "42"
    assert decode_token_claims("garbage") is None


# ============ Key validation ============

@pytest.mark.asyncio
@pytest.mark.parametrize(
    "status_code,expected",
    [
        (200, {"valid": True}),
        (401, {"valid": False, "error": "Invalid API key"}),
        (403, {"valid": False, "error": "API key lacks required permissions"}),
        (429, {"valid": True}),
        (502, {"valid": False, "error": "API returned status 502"}),
    ],
)
async def test_validate_key_status_mapping(status_code, expected):
    probe = AsyncMock(return_value=httpx.Response(status_code))
    with patch("app.services.llm_key_validator._probe", probe):
        assert await validate_key("openai", "sk-test") == expected
    assert probe.await_args.args[1:] == ("openai", "sk-test")


@pytest.mark.asyncio
async def test_validate_key_rejects_unknown_provider_and_blank_key():
    assert (await validate_key("acme", "k"))["error"] == "Unknown provider: acme"
    assert (await validate_key("openai", "  "))["error"] == "API key is empty"


@pytest.mark.asyncio
async def test_validate_key_timeout():
    probe = AsyncMock(side_effect=httpx.ConnectTimeout("slow"))
    with patch("app.services.llm_key_validator._probe", probe):
        result = await validate_key("anthropic", "sk-ant")
    assert result == {"valid": False, "error": "Request timed out, try again"}


@pytest.mark.asyncio
async def test_validate_endpoint_uses_stored_key(client: AsyncClient, auth_headers: dict):
    response = await client.post("/api/apikeys/validate", headers=auth_headers, json={"provider": "openai"})
    assert response.json() == {"valid": False, "error": "No openai API key stored"}

    await client.post("/api/apikeys", headers=auth_headers, json={"provider": "openai", "apiKey": "sk-stored-key-1234"})
    probe = AsyncMock(return_value=httpx.Response(200))
    with patch("app.services.llm_key_validator._probe", probe):
        response = await client.post("/api/apikeys/validate", headers=auth_headers, json={"provider": "openai"})
    assert response.json()["valid"] is True
    assert probe.await_args.args[2] == "sk-stored-key-1234"


# ============ Verification mail ============

def test_verification_link():
    with patch("app.services.email_service.settings.base_url", "https://askdb.example/"):
        assert verification_link("abc") == "https://askdb.example/verify-email?token=abc"


@pytest.mark.asyncio
async def test_verification_email_skipped_without_key():
    with patch("app.services.email_service._send") as send:
        assert await send_verification_email("a@example.com", "abc") is False
    send.assert_not_called()


@pytest.mark.asyncio
async def test_verification_email_sent():
    with patch("app.services.email_service.settings.sendgrid_api_key", "SG.test"), \
            patch("app.services.email_service._send") as send:
        assert await send_verification_email("a@example.com", "abc") is True

    message = send.call_args.args[0]
    assert message.subject.subject == VERIFY_SUBJECT
    assert "verify-email?token=abc" in message.contents[0].content


@pytest.mark.asyncio
async def test_verification_email_failure_does_not_raise():
    with patch("app.services.email_service.settings.sendgrid_api_key", "SG.test"), \
            patch("app.services.email_service._send", side_effect=RuntimeError("sendgrid down")):
        assert await send_verification_email("a@example.com", "abc") is False


# ============ Google sign-in ============

GOOGLE_CLAIMS = {
    "email": "lin@example.com",
    "email_verified": "true",
    "given_name": "Lin",
    "family_name": "Chen",
    "picture": "https://example.com/lin.png",
}


@pytest.mark.asyncio
async def test_google_login_creates_active_user(client: AsyncClient):
    with patch("app.api.auth.verify_google_id_token", AsyncMock(return_value=GOOGLE_CLAIMS)):
        response = await client.post("/api/auth/google", json={"idToken": "google-token"})
        assert response.status_code == 200
        first = response.json()

        response = await client.post("/api/auth/google", json={"idToken": "google-token"})
        assert response.json()["user"]["id"] == first["user"]["id"]

    assert first["user"]["is_active"] is True
    assert first["user"]["name"] == "Lin Chen"

    response = await client.get(
        "/api/auth/me", headers={"Authorization": f"Bearer {first['access_token']}"}
    )
    assert response.status_code == 200


@pytest.mark.asyncio
async def test_google_login_rejected(client: AsyncClient):
    with patch("app.api.auth.verify_google_id_token", AsyncMock(return_value=None)):
        response = await client.post("/api/auth/google", json={"idToken": "forged"})
    assert response.status_code == 401
