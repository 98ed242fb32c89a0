"""
Validate stored LLM provider API keys by making one lightweight real API call.
"""
import httpx
import logging

logger = logging.getLogger(__name__)

TIMEOUT = 10.0

# provider -> model-listing endpoint that accepts a Bearer key
BEARER_ENDPOINTS = {
    "openai": "https://api.openai.com/v1/models",
    "mistral": "https://api.mistral.ai/v1/models",
    "groq": "https://api.groq.com/openai/v1/models",
    "deepseek": "https://api.deepseek.com/v1/models",
}

PROVIDERS = set(BEARER_ENDPOINTS) | {"anthropic", "google"}


async def _probe(client: httpx.AsyncClient, provider: str, api_key: str) -> httpx.Response:
    if provider in BEARER_ENDPOINTS:
        return await client.get(
            BEARER_ENDPOINTS[provider],
            headers={"Authorization": f"Bearer {api_key}"},
        )
    if provider == "anthropic":
        return await client.get(
            "https://api.anthropic.com/v1/models",
            headers={"x-api-key": api_key, "anthropic-version": "2023-06-01"},
        )
    return await client.get(
        "https://generativelanguage.googleapis.com/v1beta/models",
        params={"key": api_key},
    )


async def validate_key(provider: str, api_key: str) -> dict:
    """
    Validate an API key for the given provider.
    Returns {"valid": True} or {"valid": False, "error": "..."}.
    """
    if provider not in PROVIDERS:
        return {"valid": False, "error": f"Unknown provider: {provider}"}

    if not api_key or not api_key.strip():
        return {"valid": False, "error": "API key is empty"}

    try:
        async with httpx.AsyncClient(timeout=TIMEOUT) as client:
            r = await _probe(client, provider, api_key.strip())
    except httpx.TimeoutException:
        return {"valid": False, "error": "Request timed out, try again"}
    except httpx.HTTPError as e:
        logger.warning(f"Key validation request to {provider} failed: {e}")
        return {"valid": False, "error": "Could not connect to provider API"}

    if r.status_code == 200:
        return {"valid": True}
    if r.status_code in (400, 401):
        return {"valid": False, "error": "Invalid API key"}
    if r.status_code == 403:
        return {"valid": False, "error": "API key lacks required permissions"}
    if r.status_code == 429:
        # Rate limited but key is valid
        return {"valid": True}
    return {"valid": False, "error": f"API returned status {r.status_code}"}
