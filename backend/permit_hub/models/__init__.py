"""ORM models. Importing this package registers every table on `Base.metadata`."""
from .authz import Base, Permission, Role, RolePermission, User, UserRole  # noqa: F401
from .audit import AuditLog  # noqa: F401
from .permit_type import (  # noqa: F401
    approval_step_roles,
    PermitTemplate,
    PermitType,
    FieldDefinition,
    Requirement,
    PermitTypeRequirement,
    ApprovalStep,
)
from .permit_request import (  # noqa: F401
    permit_request_current_roles,
    Citizen,
    PermitRequest,
    DynamicData,
    UploadedDocument,
    ApprovalLog,
    ApprovalDecision,
    FinalDocument,
    RegisterCounter,
)
