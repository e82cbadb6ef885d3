"""OpenAPI customization utilities.

Every operation sits behind the admission middleware, so the generated
schema documents the shared 429 response and the X-RateLimit-* headers
once under components and references them from each operation.
"""

from __future__ import annotations

from typing import Any, Dict

from fastapi import FastAPI

from linkgate.core.rate_limit import HEADER_LIMIT, HEADER_REMAINING, HEADER_RESET

_RATE_LIMIT_HEADERS: Dict[str, Dict[str, Any]] = {
    HEADER_LIMIT: {
        "description": "Maximum requests per window for the matched endpoint class.",
        "schema": {"type": "integer"},
    },
    HEADER_REMAINING: {
        "description": "Requests left in the current window.",
        "schema": {"type": "integer"},
    },
    HEADER_RESET: {
        "description": "Seconds until the current window resets.",
        "schema": {"type": "integer"},
    },
}


def apply_openapi_customizations(app: FastAPI) -> None:
    """Patch FastAPI's OpenAPI generation to describe rate limiting.

    - Adds components.headers for the X-RateLimit-* headers
    - Adds components.responses.TooManyRequests and references it as the
      429 response of every operation
    - Adds tags metadata if not present
    """

    original_openapi = app.openapi

    def custom_openapi() -> Dict[str, Any]:
        if app.openapi_schema:
            return app.openapi_schema

        schema = original_openapi()

        components = schema.setdefault("components", {})
        headers = components.setdefault("headers", {})
        for name, definition in _RATE_LIMIT_HEADERS.items():
            headers.setdefault(name, definition)

        header_refs = {name: {"$ref": f"#/components/headers/{name}"} for name in _RATE_LIMIT_HEADERS}
        responses = components.setdefault("responses", {})
        responses.setdefault(
            "TooManyRequests",
            {
                "description": "Rate limit exceeded for the client and endpoint class.",
                "headers": {
                    "Retry-After": {
                        "description": "Seconds to wait before retrying.",
                        "schema": {"type": "integer"},
                    },
                    **header_refs,
                },
                "content": {
                    "application/json": {
                        "schema": {
                            "type": "object",
                            "properties": {
                                "error": {"type": "string", "example": "Too Many Requests"},
                                "message": {"type": "string"},
                            },
                            "required": ["error", "message"],
                        }
                    }
                },
            },
        )

        tags = schema.setdefault("tags", [])
        existing_tag_names = {t.get("name") for t in tags}
        desired_tags = [
            {
                "name": "Health",
                "description": "Liveness check with memory and counter store status.",
            },
        ]
        for tag in desired_tags:
            if tag["name"] not in existing_tag_names:
                tags.append(tag)

        for methods in schema.get("paths", {}).values():
            for method_obj in methods.values():
                if isinstance(method_obj, dict):
                    method_obj.setdefault("responses", {}).setdefault(
                        "429", {"$ref": "#/components/responses/TooManyRequests"}
                    )

        app.openapi_schema = schema
        return schema

    app.openapi = custom_openapi  # type: ignore[assignment]
