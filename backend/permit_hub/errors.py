"""Domain errors raised by the permit hub services.

Every error carries the HTTP status and title used by the unified error handler
in `permit_hub.create_app`, so routes never translate them by hand.
"""
from __future__ import annotations
from typing import Optional


class PermitHubError(Exception):
    status = 500
    title = 'Permit Hub Error'

    def __init__(self, detail: str = ''):
        super().__init__(detail)
        self.detail = detail or self.title

    def to_dict(self):
        return {
            'error': {
                'status': self.status,
                'title': self.title,
                'detail': self.detail,
            }
        }


class NotFound(PermitHubError):
    status = 404
    title = 'Not Found'


class ValidationFailed(PermitHubError):
    status = 400
    title = 'Validation Failed'

    def __init__(self, detail: str = '', field: Optional[str] = None):
        super().__init__(detail)
        self.field = field


class Unauthorised(PermitHubError):
    status = 403
    title = 'Unauthorised'


class InvariantBroken(PermitHubError):
    status = 500
    title = 'Invariant Broken'


class StateConflict(PermitHubError):
    status = 409
    title = 'State Conflict'


class ConcurrentUpdate(StateConflict):
    """A versioned row changed between read and write; the caller may re-run."""


class StorageFailure(PermitHubError):
    status = 503
    title = 'Storage Failure'


__all__ = [
    'PermitHubError', 'NotFound', 'ValidationFailed', 'Unauthorised',
    'InvariantBroken', 'StateConflict', 'ConcurrentUpdate', 'StorageFailure',
]
