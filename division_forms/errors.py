"""Error taxonomy for the forms backend.

Every error carries a stable ``code`` and the HTTP status the API answers
with. Compile errors (an operator data problem) and validation failures (a
user input problem) deliberately never share a code.
"""


class FormsError(Exception):
    code = 'error'
    status_code = 400
    message = 'Request failed'

    def __init__(self, message=None, details=None):
        self.message = message or self.message
        self.details = details
        super().__init__(self.message)

    def to_dict(self):
        data = {'code': self.code, 'message': self.message}
        if self.details is not None:
            data['details'] = self.details
        return data


class BadRequest(FormsError):
    code = 'bad_request'
    message = 'Bad request'


class NotFound(FormsError):
    code = 'not_found'
    status_code = 404
    message = 'Not found'


class Conflict(FormsError):
    code = 'conflict'
    status_code = 409
    message = 'Conflict'


class FormUnavailable(FormsError):
    code = 'form_unavailable'
    message = 'Form not available'


class SchemaCompileError(FormsError):
    code = 'schema_compile_error'
    message = 'Schema compile error'


class SchemaRejected(FormsError):
    """Schema refused at publish time (not an object, too large, too deep)."""
    code = 'schema_rejected'
    message = 'Schema rejected'


class ValidationFailed(FormsError):
    code = 'validation_failed'
    status_code = 422
    message = 'Validation error'

    def __init__(self, violations, message=None):
        self.violations = list(violations)
        super().__init__(message, details=[v.to_dict() for v in self.violations])


class ConcurrentPublishConflict(FormsError):
    code = 'concurrent_publish_conflict'
    status_code = 409
    message = 'Concurrent publish conflict, retry the publish'


class AccessDenied(FormsError):
    code = 'access_denied'
    status_code = 403
    message = 'Forbidden'


class LastSuperadminProtected(FormsError):
    code = 'last_superadmin_protected'
    message = 'Cannot remove the last remaining superadmin'
