"""Minimal deterministic OpenAPI spec builder.

Paths come from the declarative OPERATIONS registry; list endpoints get the
paging/sort parameters and caching headers, and every operation carries the
permission code its route checks in `x-required-permissions`.

`permit_hub/openapi.py` re-exports from here.
"""
from typing import Any, Dict
from .openapi_parts.constants import ENTITIES, OPERATIONS, SORT_PARAM_MAP, SORT_DETAILS
from .openapi_parts.helpers import schema_minimal, caching_headers
from .models.permit_request import PermitRequest
from .models.permit_type import ApprovalStep, FieldDefinition

__all__ = ["build_openapi_spec"]


def _path_params(path: str):
    out = []
    for segment in path.split("/"):
        if segment.startswith("{") and segment.endswith("}"):
            name = segment[1:-1]
            typ = "string" if name in ("slug", "code", "nik") else "integer"
            out.append({"name": name, "in": "path", "required": True, "schema": {"type": typ}})
    return out


def _operation(path: str, method: str, summary: str, permission, schema, kind: str) -> Dict[str, Any]:
    response: Dict[str, Any] = {"description": "OK"}
    if schema and method != "head":
        response["content"] = {"application/json": {"schema": {"$ref": f"#/components/schemas/{schema}"}}}
    if kind in ("list", "single"):
        response["headers"] = caching_headers()
    responses: Dict[str, Any] = {"201" if method == "post" and summary.startswith(("Create", "Submit", "Add")) else "200": response}
    if kind in ("list", "single"):
        responses["304"] = {"description": "Not Modified"}
    for code, ref in (("400", "BadRequest"), ("403", "Forbidden"), ("404", "NotFound"), ("409", "Conflict")):
        responses[code] = {"$ref": f"#/components/responses/{ref}"}
    op: Dict[str, Any] = {"summary": summary, "responses": responses}
    params = _path_params(path)
    if kind == "list":
        params += [
            {"$ref": "#/components/parameters/LimitParam"},
            {"$ref": "#/components/parameters/OffsetParam"},
            {"$ref": "#/components/parameters/PageParam"},
            {"$ref": "#/components/parameters/SizeParam"},
        ]
        sort_param = SORT_PARAM_MAP.get(path)
        if sort_param:
            params.append({"$ref": f"#/components/parameters/{sort_param}"})
    if path.startswith("/permits/requests") or path.startswith("/catalog/permit-types/slug"):
        params += [
            {"$ref": "#/components/parameters/CompanyHeader"},
            {"$ref": "#/components/parameters/SubDistrictHeader"},
        ]
    if params:
        op["parameters"] = params
    if permission:
        op["x-required-permissions"] = [permission]
    if method in ("post", "put") and path != "/iam/auth/login":
        op["requestBody"] = {"content": {"application/json": {"schema": {"type": "object"}}}}
    return op


def build_openapi_spec() -> Dict[str, Any]:
    schemas = {name: schema_minimal(name, props) for name, props in ENTITIES}
    schemas["PermitRequest"]["properties"]["status"] = {"type": "string", "enum": list(PermitRequest.ALL_STATUSES)}
    # Lifecycle: submitted -> in_progress* -> approved | rejected (terminal)
    schemas["PermitRequest"]["x-transitions"] = list(PermitRequest.ALL_STATUSES)
    schemas["ApprovalStep"]["properties"]["approval_mode"] = {"type": "string", "enum": list(ApprovalStep.ALL_MODES)}
    schemas["FieldDefinition"]["properties"]["field_type"] = {"type": "string", "enum": list(FieldDefinition.ALL_TYPES)}

    components: Dict[str, Any] = {
        "schemas": schemas
        | {
            "Pagination": {
                "type": "object",
                "properties": {
                    "total": {"type": "integer"},
                    "limit": {"type": "integer"},
                    "offset": {"type": "integer"},
                    "returned": {"type": "integer"},
                    "page": {"type": "integer"},
                },
                "required": ["total", "limit", "offset", "returned"],
            },
            "Error": {
                "type": "object",
                "properties": {
                    "error": {
                        "type": "object",
                        "properties": {
                            "status": {"type": "integer"},
                            "title": {"type": "string"},
                            "detail": {"type": "string"},
                        },
                    }
                },
                "required": ["error"],
            },
        },
        "responses": {
            name: {
                "description": desc,
                "content": {"application/json": {"schema": {"$ref": "#/components/schemas/Error"}}},
            }
            for name, desc in (
                ("BadRequest", "Bad Request"),
                ("Forbidden", "Forbidden"),
                ("NotFound", "Not Found"),
                ("Conflict", "Conflict"),
            )
        },
        "securitySchemes": {"BearerAuth": {"type": "http", "scheme": "bearer", "bearerFormat": "JWT"}},
        "parameters": {
            "LimitParam": {"name": "limit", "in": "query", "schema": {"type": "integer", "default": 50}},
            "OffsetParam": {"name": "offset", "in": "query", "schema": {"type": "integer", "default": 0}},
            "PageParam": {"name": "page", "in": "query", "schema": {"type": "integer", "default": 1}},
            "SizeParam": {"name": "size", "in": "query", "schema": {"type": "integer", "default": 50}},
            "CompanyHeader": {"name": "X-Company-ID", "in": "header", "schema": {"type": "integer"}},
            "SubDistrictHeader": {"name": "ID-SubDistrict", "in": "header", "schema": {"type": "string"}},
        },
    }
    for pname, desc in SORT_DETAILS.items():
        components["parameters"][pname] = {"name": "sort", "in": "query", "schema": {"type": "string"}, "description": desc}

    paths: Dict[str, Any] = {}
    for path, method, summary, permission, schema, kind in OPERATIONS:
        paths.setdefault(path, {})[method] = _operation(path, method, summary, permission, schema, kind)

    # Add operationIds & tags
    tag_desc: Dict[str, str] = {}
    for path, ops in paths.items():
        tag = path.split("/")[1].capitalize()
        for method, od in ops.items():
            rid = path.strip("/").replace("/", "_").replace("{", "").replace("}", "").replace("-", "_")
            od["operationId"] = f"{method}_{rid}"
            od["tags"] = [tag]
        tag_desc[tag] = f"{tag} endpoints"

    return {
        "openapi": "3.0.3",
        "info": {"title": "Permit Hub API", "version": "0.1.0"},
        "paths": paths,
        "components": components,
        "security": [{"BearerAuth": []}],
        "tags": [{"name": n, "description": d} for n, d in sorted(tag_desc.items())],
    }
