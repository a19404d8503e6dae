"""Centralized constants for the OpenAPI spec builder.

Tests depend on deterministic ordering and content.
"""
from typing import Dict, List, Optional, Tuple

# Schema registry: (SchemaName, documented properties besides id)
ENTITIES: List[Tuple[str, Tuple[str, ...]]] = [
    ("PermitType", ("slug", "name", "description", "subdistrict_id", "fields", "steps", "requirements")),
    ("FieldDefinition", ("field_key", "field_label", "field_type", "is_required", "display_order", "options")),
    ("ApprovalStep", ("step_order", "description", "approval_mode", "roles")),
    ("Requirement", ("code", "name", "description", "is_mandatory")),
    ("PermitTemplate", ("name", "slug", "template_config")),
    ("Citizen", ("nik", "full_name", "address", "phone")),
    ("PermitRequest", (
        "code", "status", "current_step", "submitted_at", "approved_at", "register_number",
        "data", "documents", "approval_logs", "final_documents",
    )),
    ("ApprovalLog", ("step_order", "step", "step_role_id", "approved_by", "approved_at", "status", "note")),
    ("Role", ("name", "is_system", "description", "permissions")),
    ("AuditLog", ("actor_user_id", "actor_role_id", "subdistrict_id", "action", "entity", "entity_id", "meta", "created_at")),
]

# (path, method, summary, permission or None, schema or None, kind)
# kind: "list" adds paging/sort params and caching headers, "single" adds caching headers.
OPERATIONS: List[Tuple[str, str, str, Optional[str], Optional[str], str]] = [
    ("/iam/auth/login", "post", "Login", None, None, "plain"),
    ("/iam/auth/me", "get", "Current user", None, None, "plain"),
    ("/iam/roles", "get", "List roles", "ADMIN.ROLE.MANAGE", "Role", "list"),
    ("/iam/roles", "post", "Create role", "ADMIN.ROLE.MANAGE", "Role", "plain"),
    ("/iam/users/{user_id}/roles", "put", "Replace user roles", "ADMIN.USER.MANAGE", None, "plain"),
    ("/iam/audit/logs", "get", "Audit trail", "ADMIN.SETTINGS.MANAGE", "AuditLog", "list"),
    ("/catalog/permit-types", "get", "List permit types", "PERMIT.READ", "PermitType", "list"),
    ("/catalog/permit-types", "head", "Permit types headers", "PERMIT.READ", None, "list"),
    ("/catalog/permit-types", "post", "Create permit type", "PERMIT.MANAGE", "PermitType", "plain"),
    ("/catalog/permit-types/slug/{slug}", "get", "Permit type by slug", "PERMIT.READ", "PermitType", "plain"),
    ("/catalog/permit-types/{permit_type_id}", "get", "Get permit type", "PERMIT.READ", "PermitType", "plain"),
    ("/catalog/permit-types/{permit_type_id}", "put", "Update permit type", "PERMIT.MANAGE", "PermitType", "plain"),
    ("/catalog/permit-types/{permit_type_id}", "delete", "Delete permit type", "PERMIT.MANAGE", None, "plain"),
    ("/catalog/permit-types/{permit_type_id}/fields", "post", "Add field", "PERMIT.MANAGE", "FieldDefinition", "plain"),
    ("/catalog/fields/{field_id}", "put", "Update field", "PERMIT.MANAGE", "FieldDefinition", "plain"),
    ("/catalog/fields/{field_id}", "delete", "Delete field", "PERMIT.MANAGE", None, "plain"),
    ("/catalog/fields/{field_id}/move-up", "post", "Move field up", "PERMIT.MANAGE", "FieldDefinition", "plain"),
    ("/catalog/fields/{field_id}/move-down", "post", "Move field down", "PERMIT.MANAGE", "FieldDefinition", "plain"),
    ("/catalog/permit-types/{permit_type_id}/steps", "get", "List steps", "PERMIT.READ", "ApprovalStep", "plain"),
    ("/catalog/permit-types/{permit_type_id}/steps", "post", "Add step", "PERMIT.MANAGE", "ApprovalStep", "plain"),
    ("/catalog/permit-types/{permit_type_id}/steps/last", "get", "Last step", "PERMIT.READ", "ApprovalStep", "plain"),
    ("/catalog/steps/{step_id}", "put", "Update step", "PERMIT.MANAGE", "ApprovalStep", "plain"),
    ("/catalog/steps/{step_id}", "delete", "Delete step", "PERMIT.MANAGE", None, "plain"),
    ("/catalog/requirements", "get", "List requirements", "PERMIT.READ", "Requirement", "list"),
    ("/catalog/requirements", "post", "Create requirement", "PERMIT.MANAGE", "Requirement", "plain"),
    ("/catalog/requirements/{requirement_id}", "put", "Update requirement", "PERMIT.MANAGE", "Requirement", "plain"),
    ("/catalog/requirements/{requirement_id}", "delete", "Delete requirement", "PERMIT.MANAGE", None, "plain"),
    ("/catalog/permit-types/{permit_type_id}/requirements/{requirement_id}", "put", "Attach requirement", "PERMIT.MANAGE", None, "plain"),
    ("/catalog/permit-types/{permit_type_id}/requirements/{requirement_id}", "delete", "Detach requirement", "PERMIT.MANAGE", None, "plain"),
    ("/catalog/templates", "get", "List templates", "PERMIT.READ", "PermitTemplate", "list"),
    ("/catalog/templates", "post", "Create template", "PERMIT.MANAGE", "PermitTemplate", "plain"),
    ("/permits/requests", "get", "List permit requests", "PERMIT.READ", "PermitRequest", "list"),
    ("/permits/requests", "head", "Permit requests headers", "PERMIT.READ", None, "list"),
    ("/permits/requests", "post", "Submit permit request", "PERMIT.SUBMIT", "PermitRequest", "plain"),
    ("/permits/requests/{request_id}", "get", "Get permit request", "PERMIT.READ", "PermitRequest", "single"),
    ("/permits/requests/{request_id}", "put", "Edit permit request", "PERMIT.UPDATE", "PermitRequest", "plain"),
    ("/permits/requests/{request_id}", "delete", "Delete permit request", "PERMIT.DELETE", None, "plain"),
    ("/permits/requests/code/{code}", "get", "Permit request by code", "PERMIT.READ", "PermitRequest", "single"),
    ("/permits/requests/{request_id}/decide", "post", "Approve or reject current step", "PERMIT.DECIDE", "PermitRequest", "plain"),
    ("/permits/requests/{request_id}/history", "get", "Approval history", "PERMIT.READ", "ApprovalLog", "plain"),
    ("/citizens", "get", "List citizens", "PERMIT.READ", "Citizen", "list"),
    ("/citizens/{nik}", "get", "Citizen by NIK", "PERMIT.READ", "Citizen", "plain"),
    ("/citizens/{citizen_id}", "put", "Update citizen", "PERMIT.MANAGE", "Citizen", "plain"),
    ("/citizens/{citizen_id}", "delete", "Delete citizen", "PERMIT.MANAGE", None, "plain"),
]

SORT_PARAM_MAP: Dict[str, str] = {
    "/catalog/permit-types": "SortPermitTypesParam",
    "/catalog/requirements": "SortRequirementsParam",
    "/catalog/templates": "SortTemplatesParam",
    "/permits/requests": "SortPermitRequestsParam",
    "/citizens": "SortCitizensParam",
}

SORT_DETAILS: Dict[str, str] = {
    "SortPermitTypesParam": "Multi-field sort (name,slug,id). Prefix - for desc",
    "SortRequirementsParam": "Multi-field sort (code,name,id). Prefix - for desc",
    "SortTemplatesParam": "Multi-field sort (name,id). Prefix - for desc",
    "SortPermitRequestsParam": "Multi-field sort (submitted_at,status,code,id). Prefix - for desc; default -submitted_at",
    "SortCitizensParam": "Multi-field sort (full_name,nik,id). Prefix - for desc",
}

__all__ = ["ENTITIES", "OPERATIONS", "SORT_PARAM_MAP", "SORT_DETAILS"]
