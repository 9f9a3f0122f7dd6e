"""OpenAPI customization.

Enriches the generated schema with:
- The ``X-API-Key`` security scheme, required only by operations that
  resolve a principal
- Tags metadata for the public route groups
- A shared note on the rate limit headers for every rate limited operation
"""

from __future__ import annotations

from typing import Any, Dict

from fastapi import FastAPI

_AUTHENTICATED_PATHS = {"/v1/auth/verify", "/v1/me"}
_UNLIMITED_PATHS = {"/health", "/ready"}

_RATE_LIMIT_HEADERS = {
    "X-RateLimit-Limit": {
        "description": "Requests allowed per window for the route's tier.",
        "schema": {"type": "integer"},
    },
    "X-RateLimit-Remaining": {
        "description": "Requests left in the current window.",
        "schema": {"type": "integer"},
    },
    "X-RateLimit-Reset": {
        "description": "UNIX time (seconds) when the current window resets.",
        "schema": {"type": "integer"},
    },
}


def apply_openapi_customizations(app: FastAPI) -> None:
    """Patch FastAPI's OpenAPI generation to add security and rate limit docs."""

    original_openapi = app.openapi

    def custom_openapi() -> Dict[str, Any]:
        if app.openapi_schema:
            return app.openapi_schema
        schema = original_openapi()

        components = schema.setdefault("components", {})
        security_schemes = components.setdefault("securitySchemes", {})
        security_schemes.setdefault(
            "ApiKeyAuth",
            {
                "type": "apiKey",
                "in": "header",
                "name": "X-API-Key",
                "description": "Provide your API key via the X-API-Key header.",
            },
        )

        tags = schema.setdefault("tags", [])
        existing_tag_names = {t.get("name") for t in tags}
        desired_tags = [
            {"name": "Auth", "description": "Credential checks and principal lookup."},
            {"name": "Rate limits", "description": "Registered rate limit tiers."},
            {"name": "Health", "description": "Liveness and readiness checks."},
        ]
        for tag in desired_tags:
            if tag["name"] not in existing_tag_names:
                tags.append(tag)

        for path, methods in schema.get("paths", {}).items():
            for method_obj in methods.values():
                if not isinstance(method_obj, dict):
                    continue
                if path in _AUTHENTICATED_PATHS:
                    method_obj["security"] = [{"ApiKeyAuth": []}]
                if path in _UNLIMITED_PATHS:
                    continue
                ok = method_obj.get("responses", {}).get("200")
                if ok is not None:
                    ok.setdefault("headers", {}).update(_RATE_LIMIT_HEADERS)

        app.openapi_schema = schema
        return schema

    app.openapi = custom_openapi  # type: ignore[assignment]
