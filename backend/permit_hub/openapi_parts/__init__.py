"""Building blocks for the OpenAPI spec (constants and small helpers)."""
from .constants import ENTITIES, OPERATIONS, SORT_DETAILS  # noqa: F401
from .helpers import schema_minimal, caching_headers  # noqa: F401

__all__ = ["ENTITIES", "OPERATIONS", "SORT_DETAILS", "schema_minimal", "caching_headers"]
