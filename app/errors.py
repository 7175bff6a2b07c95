"""
Domain exceptions. Each carries the HTTP status the API layer answers with.
"""


class DomainError(Exception):
    status_code = 400

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class InvalidRequestError(DomainError):
    status_code = 400


class NotFoundError(DomainError):
    status_code = 404


class ConflictError(DomainError):
    status_code = 409


class InvalidTransitionError(ConflictError):
    pass


class ActiveRideExistsError(ConflictError):
    status_code = 429


class PaymentGatewayError(DomainError):
    status_code = 502
