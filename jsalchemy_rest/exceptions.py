class RestException(Exception):
    """Helps the HTTP exception compute flows."""

    status_code = 500
    message = 'Internal Server Error'

    def __init__(self, message: str = None, status_code: int = None):
        if status_code:
            self.status_code = status_code
        if message:
            self.message = message
        super().__init__(self.message)

    def to_dict(self) -> dict:
        return {'status': 'error', 'message': self.message}


class NotFound(RestException):
    """The record looked up by key doesn't exist."""
    status_code = 404

    def __init__(self, collection: str, key):
        super().__init__(f'Could not find {collection} with id {key}')
        self.collection = collection
        self.key = key

    def to_dict(self) -> dict:
        return {'status': 'missing', 'message': self.message}


class ValidationError(RestException):
    """The payload was rejected by the model or by the database."""
    status_code = 422
    message = 'Validation failed'

    def __init__(self, message: str = None, errors: dict = None):
        super().__init__(message)
        self.errors = errors or {}

    def to_dict(self) -> dict:
        ret = super().to_dict()
        if self.errors:
            ret['errors'] = self.errors
        return ret


class VersionConflict(RestException):
    status_code = 409
    message = 'Version conflict'


class MalformedValue(RestException):
    status_code = 400
    message = 'Malformed value'


class MalformedIdentifier(MalformedValue):

    def __init__(self, collection: str, key):
        super().__init__(f'"{key}" is not a valid key for {collection}')
        self.collection = collection
        self.key = key


class InvalidQuery(RestException):
    status_code = 400
    message = 'Invalid query'


class RegistrationError(RestException):
    """Building the REST surface of a model failed."""

    def __init__(self, model_name: str, cause: BaseException = None):
        reason = f': {cause}' if cause else ''
        super().__init__(f'Unable to register "{model_name}"{reason}')
        self.model_name = model_name
        self.cause = cause
