"""Helper functions for the OpenAPI builder."""
from typing import Any, Dict, Iterable


def schema_minimal(name: str, properties: Iterable[str] = ()) -> Dict[str, Any]:
    props: Dict[str, Any] = {"id": {"type": "integer"}}
    for prop in properties:
        props[prop] = {}
    return {"type": "object", "properties": props, "required": ["id"]}


def caching_headers() -> Dict[str, Any]:
    return {
        "ETag": {"schema": {"type": "string"}},
        "Last-Modified": {"schema": {"type": "string"}},
        "X-Last-Modified-ISO": {"schema": {"type": "string"}},
    }


__all__ = ["schema_minimal", "caching_headers"]
