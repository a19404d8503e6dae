"""Citizen registry keyed on national identity number (NIK)."""
from __future__ import annotations
import logging
from typing import Any, Dict

from sqlalchemy import select

from permit_hub.decorators.transaction import transactional
from permit_hub.errors import NotFound, ValidationFailed
from permit_hub.models.permit_request import Citizen
from permit_hub.utils.validation import require_keys

logger = logging.getLogger(__name__)

CITIZEN_FIELDS = ('full_name', 'address', 'phone')


def find_by_nik(session, nik: str):
    return session.execute(select(Citizen).where(Citizen.nik == nik)).scalar_one_or_none()


def upsert_citizen(session, data: Dict[str, Any]) -> Citizen:
    """Return the citizen with data['nik'], creating it when unknown.

    An existing record is reused as stored: a differing name or address in the
    submission does not overwrite it. Flushes only; the caller owns the commit.
    """
    require_keys(data, 'nik', 'full_name')
    nik = str(data['nik']).strip()
    citizen = find_by_nik(session, nik)
    if citizen is not None:
        if citizen.full_name != data['full_name']:
            logger.info('citizen %s kept stored name for differing submission', nik)
        return citizen
    citizen = Citizen(
        nik=nik,
        full_name=data['full_name'],
        address=data.get('address'),
        phone=data.get('phone'),
    )
    session.add(citizen)
    session.flush()
    return citizen


def list_citizens(session):
    return session.query(Citizen)


def get_citizen(session, citizen_id: int) -> Citizen:
    citizen = session.get(Citizen, citizen_id)
    if citizen is None:
        raise NotFound(f'citizen {citizen_id} not found')
    return citizen


def get_citizen_by_nik(session, nik: str) -> Citizen:
    citizen = find_by_nik(session, nik)
    if citizen is None:
        raise NotFound(f'citizen {nik} not found')
    return citizen


@transactional
def update_citizen(session, citizen_id: int, data: Dict[str, Any]) -> Citizen:
    citizen = get_citizen(session, citizen_id)
    for key in CITIZEN_FIELDS:
        if key in data:
            setattr(citizen, key, data[key])
    if not citizen.full_name:
        raise ValidationFailed('full_name required', field='full_name')
    session.flush()
    return citizen


@transactional
def delete_citizen(session, citizen_id: int):
    """Delete a citizen together with every request they own."""
    citizen = get_citizen(session, citizen_id)
    session.expire(citizen)
    session.delete(citizen)
