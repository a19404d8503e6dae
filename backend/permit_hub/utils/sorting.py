from __future__ import annotations
from typing import List, Mapping, Optional, Sequence
from permit_hub.errors import ValidationFailed


def parse_sort(sort_expr: str, allowed: Mapping[str, object]) -> List:
    """Turn ``'-submitted_at,code'`` into ORDER BY clauses.

    Keys outside ``allowed`` raise ValidationFailed; a repeated key keeps its first direction.
    """
    clauses = []
    seen = set()
    for token in (t.strip() for t in sort_expr.split(',')):
        if not token:
            continue
        desc = token.startswith('-')
        key = token.lstrip('-')
        col = allowed.get(key)
        if col is None:
            raise ValidationFailed(f'Invalid sort field {key}', field='sort')
        if key in seen:
            continue
        seen.add(key)
        clauses.append(col.desc() if desc else col.asc())
    return clauses


def apply_multi_sort(query, sort_expr: Optional[str], allowed: Mapping[str, object], tie_breaker,
                     default: Optional[Sequence] = None):
    """Order ``query`` by ``sort_expr`` with ``tie_breaker`` ascending last.

    Without a sort expression the ``default`` clauses apply, or the tie breaker alone.
    """
    clauses = parse_sort(sort_expr, allowed) if sort_expr else []
    if not clauses:
        return query.order_by(*(default or (tie_breaker.asc(),)))
    return query.order_by(*clauses, tie_breaker.asc())
