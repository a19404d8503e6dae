"""Transaction boundary for service functions.

Decorated functions take the SQLAlchemy session as their first argument. The
decorator commits when the function returns and rolls back on any exception,
so a failed call never leaves partial rows behind. A flush that finds its
versioned row changed by another transaction raises StaleDataError, reported
as ConcurrentUpdate (a StateConflict).

Usage:

@transactional
def decide(session, request_id, caller, note, approved): ...
"""
from __future__ import annotations
import logging
from functools import wraps

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm.exc import StaleDataError

from permit_hub.errors import ConcurrentUpdate, PermitHubError, StateConflict, StorageFailure

logger = logging.getLogger(__name__)


def transactional(fn):
    @wraps(fn)
    def wrapper(session, *args, **kwargs):
        try:
            rv = fn(session, *args, **kwargs)
            session.commit()
            return rv
        except PermitHubError:
            session.rollback()
            raise
        except IntegrityError as exc:
            session.rollback()
            logger.info('%s rejected by constraint: %s', fn.__name__, exc.orig)
            raise StateConflict('conflicting record exists') from exc
        except StaleDataError as exc:
            session.rollback()
            logger.info('%s lost a concurrent update: %s', fn.__name__, exc)
            raise ConcurrentUpdate('record was changed concurrently; retry') from exc
        except SQLAlchemyError as exc:
            session.rollback()
            logger.error('%s failed in datastore: %s', fn.__name__, exc)
            raise StorageFailure('datastore rejected the transaction') from exc
        except Exception:
            session.rollback()
            raise
    return wrapper


__all__ = ['transactional']
