from __future__ import annotations
from typing import Any, Dict, Mapping
from permit_hub.errors import ValidationFailed

def apply_filters(query, specs: Dict[str, Dict[str, Any]], params: Mapping[str, Any]):
    """Generic filter builder. Filters combine with AND semantics.

    specs: { param_name: { 'op': callable(query, value)->query, 'coerce': type/func, 'validate': callable(optional) } }
    Empty strings are treated as absent.
    """
    for name, meta in specs.items():
        if name not in params or params[name] is None or params[name] == '':
            continue
        val = params[name]
        if 'coerce' in meta:
            try:
                val = meta['coerce'](val)
            except (TypeError, ValueError) as exc:
                raise ValidationFailed(f'{name} invalid', field=name) from exc
        if 'validate' in meta and not meta['validate'](val):
            raise ValidationFailed(f'{name} invalid', field=name)
        query = meta['op'](query, val)
    return query


def split_csv(value) -> list:
    """Accept 'a,b' strings or lists; drop blanks."""
    if isinstance(value, (list, tuple)):
        items = value
    else:
        items = str(value).split(',')
    return [str(i).strip() for i in items if str(i).strip()]


def split_int_csv(value) -> list:
    return [int(i) for i in split_csv(value)]
