"""Workflow error taxonomy shared by the stores, services and routes."""


class WorkflowError(Exception):
    """Base class for errors that map to a client-visible category."""
    status_code = 500
    category = 'error'
    default_message = 'Something went wrong'

    def __init__(self, message=None):
        super().__init__(message or self.default_message)
        self.message = message or self.default_message

    def to_dict(self):
        return {'error': self.message, 'category': self.category}


class NotFound(WorkflowError):
    status_code = 404
    category = 'not_found'
    default_message = 'Not found'


class PermissionDenied(WorkflowError):
    status_code = 403
    category = 'permission_denied'
    default_message = 'You do not have permission to do that'


class Conflict(WorkflowError):
    status_code = 409
    category = 'conflict'
    default_message = 'That conflicts with existing data'


class InvalidState(WorkflowError):
    status_code = 409
    category = 'invalid_state'
    default_message = 'That request has already been resolved'


class Timeout(WorkflowError):
    status_code = 504
    category = 'timeout'
    default_message = 'The data service took too long to respond, try again'


class PartialFailure(WorkflowError):
    """A multi-step write that stopped part way.

    ``manifest`` has an ``applied`` list and a ``failed`` list of
    op descriptions so callers can see exactly what still needs doing.
    """
    status_code = 500
    category = 'partial_failure'
    default_message = 'Only part of the operation completed'

    def __init__(self, message=None, applied=None, failed=None):
        super().__init__(message)
        self.manifest = {
            'applied': list(applied or []),
            'failed': list(failed or []),
        }

    def to_dict(self):
        data = super().to_dict()
        data['manifest'] = self.manifest
        return data
