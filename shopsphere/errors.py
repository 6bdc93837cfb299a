class ServiceError(Exception):
    """Base error carrying the HTTP status the API layer should answer with."""

    status_code = 500

    def __init__(self, message: str, status_code: int = None, **details):
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = status_code
        self.details = details


class ValidationError(ServiceError):
    status_code = 400


class AuthorizationError(ServiceError):
    status_code = 403


class NotFoundError(ServiceError):
    status_code = 404


class ConflictError(ServiceError):
    status_code = 409


class ConfigurationError(ServiceError):
    status_code = 500


class UpstreamError(ServiceError):
    """The payment processor failed or rejected the call.

    The processor's own message is kept on the exception for logs; it is only
    returned to clients when running in development.
    """

    status_code = 502


class ProtocolError(UpstreamError):
    """The processor answered with something we cannot interpret."""


class GatewayTimeoutError(UpstreamError):
    """A transaction was still pending when verification gave up."""

    status_code = 504


class SignatureError(ServiceError):
    status_code = 400
