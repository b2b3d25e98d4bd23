"""Error types raised by the business logic and rendered by the app's error handlers."""


class ForumError(Exception):
    status_code = 500
    default_message = 'Internal server error'

    def __init__(self, message=None, status_code=None):
        super().__init__(message or self.default_message)
        self.message = message or self.default_message
        if status_code is not None:
            self.status_code = status_code

    def to_dict(self):
        return {'message': self.message}


class BadRequest(ForumError):
    status_code = 400
    default_message = 'Bad request'


class Unauthorised(ForumError):
    status_code = 401
    default_message = 'Unauthorised'


class Forbidden(ForumError):
    status_code = 403
    default_message = 'Forbidden'


class NotFound(ForumError):
    status_code = 404
    default_message = 'Not found'


class Expired(ForumError):
    status_code = 410
    default_message = 'This link has expired'


class InternalError(ForumError):
    status_code = 500
