"""Paged list and detail responses with ETag / Last-Modified revalidation.

Every collection endpoint (permit types, requirements, citizens, requests, roles,
audit logs) goes through :func:`paged_response`; single permit requests go through
:func:`entity_response`. Both honour ``If-None-Match`` before ``If-Modified-Since``.
"""
from __future__ import annotations
from typing import Any, Callable, Iterable, Optional, Tuple
from flask import request, make_response, jsonify
from sqlalchemy import func
from sqlalchemy.orm import Query
from permit_hub.config.pagination import normalize_pagination, normalize_page
from permit_hub.errors import ValidationFailed
import hashlib
from datetime import datetime, timezone, timedelta
from email.utils import parsedate_to_datetime, format_datetime

# HTTP dates carry whole seconds only
TIMESTAMP_TOLERANCE = timedelta(seconds=1)


def canonicalize_timestamp(dt: datetime) -> datetime:
    """UTC, tz-aware, truncated to whole seconds. Naive values are taken as UTC."""
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    else:
        dt = dt.astimezone(timezone.utc)
    return dt.replace(microsecond=0)


def iso_z(dt: Optional[datetime]) -> str:
    if dt is None:
        return ''
    return canonicalize_timestamp(dt).isoformat().replace('+00:00', 'Z')


def http_date(dt: datetime) -> str:
    return format_datetime(canonicalize_timestamp(dt), usegmt=True)


def resolve_paging(args) -> Tuple[int, int]:
    """(limit, offset) from either page/size or limit/offset query params."""
    try:
        if args.get('page') is not None or args.get('size') is not None:
            return normalize_page(args.get('page'), args.get('size'))
        return normalize_pagination(args.get('limit'), args.get('offset'))
    except ValueError as e:
        raise ValidationFailed(str(e), field='paging')


def apply_pagination(q: Query) -> Tuple[Query, int, int, int]:
    limit, offset = resolve_paging(request.args)
    total = q.count()
    return q.offset(offset).limit(limit), total, limit, offset


def compute_etag(ids: Iterable[Any], total: int, limit: int, offset: int, latest_iso: Optional[str] = '') -> str:
    seed = f"{list(ids)}|{total}|{limit}|{offset}|{latest_iso or ''}"
    return hashlib.sha256(seed.encode()).hexdigest()[:32]


def build_list_payload(rows: list, total: int, limit: int, offset: int):
    return {
        'data': rows,
        'pagination': {
            'total': total,
            'limit': limit,
            'offset': offset,
            'returned': len(rows),
            'page': offset // limit + 1,
        }
    }


def _stamp(resp, etag: str, latest_ts: Optional[datetime]):
    resp.headers['ETag'] = etag
    if latest_ts:
        resp.headers['Last-Modified'] = http_date(latest_ts)
        resp.headers['X-Last-Modified-ISO'] = iso_z(latest_ts)
    return resp


def _parse_if_modified_since(header_val: str) -> Optional[datetime]:
    """Accepts ISO 8601 (what X-Last-Modified-ISO hands out) or an RFC 1123 HTTP-date."""
    try:
        dt = datetime.fromisoformat(header_val.replace('Z', '+00:00'))
    except ValueError:
        try:
            dt = parsedate_to_datetime(header_val)
        except (TypeError, ValueError):
            return None
    if dt is None:
        return None
    return canonicalize_timestamp(dt)


def not_modified(etag: str, latest_ts: Optional[datetime]):
    """A 304 response when the client copy is current, else None."""
    inm = request.headers.get('If-None-Match')
    if inm:
        if inm.strip('"') == etag:
            return _stamp(make_response('', 304), etag, latest_ts)
        return None
    ims_raw = request.headers.get('If-Modified-Since')
    if ims_raw and latest_ts:
        ims = _parse_if_modified_since(ims_raw)
        if ims and canonicalize_timestamp(latest_ts) <= ims + TIMESTAMP_TOLERANCE:
            return _stamp(make_response('', 304), etag, latest_ts)
    return None


def _finish(resp, head: bool):
    if head:
        resp.set_data(b'')
    return resp


def paged_response(q: Query, serializer: Callable[[Any], dict], stamp_col, head: bool = False):
    """Paginate ``q``, serialise the page and attach validators.

    ``stamp_col`` is the timestamp column feeding Last-Modified: the newest value on
    the page, or the newest in the table when the page is empty.
    """
    paged_q, total, limit, offset = apply_pagination(q)
    rows = paged_q.all()
    attr = stamp_col.key
    stamps = [getattr(r, attr) for r in rows if getattr(r, attr, None)]
    if rows:
        latest_ts = max(stamps, default=None)
    else:
        latest_ts = q.session.query(func.max(stamp_col)).scalar()
    rows_json = [serializer(r) for r in rows]
    etag = compute_etag([r.get('id') for r in rows_json], total, limit, offset, iso_z(latest_ts))
    cached = not_modified(etag, latest_ts)
    if cached is not None:
        return _finish(cached, head)
    resp = make_response(build_list_payload(rows_json, total, limit, offset))
    return _finish(_stamp(resp, etag, latest_ts), head)


def entity_response(body: dict, entity_id: Any, latest_ts: Optional[datetime]):
    etag = compute_etag([entity_id], 1, 1, 0, iso_z(latest_ts))
    cached = not_modified(etag, latest_ts)
    if cached is not None:
        return cached
    return _stamp(make_response(jsonify(body)), etag, latest_ts)
