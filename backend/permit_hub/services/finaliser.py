"""Final permit document emission.

The register number comes from a per-type RegisterCounter row that is bumped
with a single `UPDATE ... SET last_value = last_value + 1` inside the approving
transaction. The write lock it takes is held until commit, so two final approvals
of the same type never share a number and a rolled back approval gives its
number back.
"""
from __future__ import annotations
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Optional, Protocol

from flask import current_app, has_app_context
from sqlalchemy import select, update

from permit_hub.models.permit_request import FinalDocument, RegisterCounter

logger = logging.getLogger(__name__)

DEFAULT_STORAGE_BASE_URL = '/files/permits'


@dataclass(frozen=True)
class RenderedDocument:
    file_name: str
    file_url: str


class DocumentRenderer(Protocol):
    def render(self, request, permit_type) -> RenderedDocument: ...


class StorageUrlRenderer:
    """Points at the storage location a separate PDF job will fill."""

    def __init__(self, base_url: str = DEFAULT_STORAGE_BASE_URL):
        self.base_url = base_url.rstrip('/')

    def render(self, request, permit_type) -> RenderedDocument:
        file_name = f'{request.code}.pdf'
        return RenderedDocument(file_name=file_name, file_url=f'{self.base_url}/{file_name}')


def resolve_renderer(renderer: Optional[DocumentRenderer] = None) -> DocumentRenderer:
    if renderer is not None:
        return renderer
    if has_app_context():
        configured = current_app.config.get('PERMIT_RENDERER')
        if configured is not None:
            return configured
        return StorageUrlRenderer(current_app.config.get('PERMIT_STORAGE_BASE_URL') or DEFAULT_STORAGE_BASE_URL)
    return StorageUrlRenderer()


def allocate_register_number(session, permit_type, when: Optional[datetime] = None) -> str:
    bumped = session.execute(
        update(RegisterCounter)
        .where(RegisterCounter.permit_type_id == permit_type.id)
        .values(last_value=RegisterCounter.last_value + 1)
        .execution_options(synchronize_session=False)
    )
    if bumped.rowcount == 0:
        # first number of this type; a racing insert fails on the unique permit_type_id
        session.add(RegisterCounter(permit_type_id=permit_type.id, last_value=1))
        session.flush()
    value = session.execute(
        select(RegisterCounter.last_value).where(RegisterCounter.permit_type_id == permit_type.id)
    ).scalar_one()
    year = (when or datetime.now(timezone.utc)).year
    return f'{permit_type.slug.upper()}/{value:05d}/{year}'


def finalise(session, request, permit_type, generated_by=None, renderer: Optional[DocumentRenderer] = None) -> FinalDocument:
    now = datetime.now(timezone.utc)
    request.register_number = allocate_register_number(session, permit_type, now)
    rendered = resolve_renderer(renderer).render(request, permit_type)
    doc = FinalDocument(
        permit_request_id=request.id,
        file_name=rendered.file_name,
        file_url=rendered.file_url,
        generated_by=generated_by,
        generated_at=now,
    )
    session.add(doc)
    session.flush()
    logger.info('permit request %s registered as %s', request.code, request.register_number)
    return doc


__all__ = [
    'RenderedDocument', 'DocumentRenderer', 'StorageUrlRenderer', 'resolve_renderer',
    'allocate_register_number', 'finalise',
]
