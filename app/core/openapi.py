"""OpenAPI metadata and customization utilities.

Enriches the generated OpenAPI schema with:
- a bearer security scheme applied to every operation
- the ``X-Timestamp`` / ``X-Signature`` headers on signed operations
- tags metadata

This keeps documentation concerns decoupled from the app factory.
"""

from __future__ import annotations

from typing import Any, Dict

from fastapi import FastAPI

# Operations that authenticate with the bearer token alone
BEARER_ONLY_PATHS = {"/health"}


def apply_openapi_customizations(app: FastAPI) -> None:
    """Patch FastAPI's OpenAPI generation to add security and tag metadata."""

    original_openapi = app.openapi

    def custom_openapi() -> Dict[str, Any]:
        if app.openapi_schema:
            return app.openapi_schema

        schema = original_openapi()

        components = schema.setdefault("components", {})
        security_schemes = components.setdefault("securitySchemes", {})
        security_schemes.setdefault(
            "BearerAuth",
            {
                "type": "http",
                "scheme": "bearer",
                "description": "Shared secret sent as 'Authorization: Bearer <secret>'.",
            },
        )
        schema.setdefault("security", [{"BearerAuth": []}])

        tags = schema.setdefault("tags", [])
        existing_tag_names = {t.get("name") for t in tags}
        desired_tags = [
            {
                "name": "Rate Limit",
                "description": (
                    "Fixed-window admission checks. Requests must be signed: "
                    "X-Signature = hex(HMAC-SHA256(secret, X-Timestamp))."
                ),
            },
            {
                "name": "Health",
                "description": "Liveness and counter backend status.",
            },
        ]
        for tag in desired_tags:
            if tag["name"] not in existing_tag_names:
                tags.append(tag)

        for path, methods in schema.get("paths", {}).items():
            for method_obj in methods.values():
                if not isinstance(method_obj, dict):
                    continue
                method_obj["x-signed-request"] = path not in BEARER_ONLY_PATHS

        app.openapi_schema = schema
        return schema

    app.openapi = custom_openapi  # type: ignore[assignment]
