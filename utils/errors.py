"""
Error types raised by service code.

Routes validate their own input and return ``jsonify(error=...), 400`` directly;
anything deeper in the stack raises one of these and the app-level error handler
renders it as ``{"error": message}`` with the matching HTTP status.
"""


class ApiError(Exception):
    status_code = 500
    message = "Something went wrong"

    def __init__(self, message=None, status_code=None):
        super().__init__(message or self.message)
        self.message = message or self.message
        if status_code is not None:
            self.status_code = status_code


class ValidationError(ApiError):
    status_code = 400
    message = "Invalid request"


class DomainError(ApiError):
    # business rule violations (mentor premium expired, self booking, ...)
    status_code = 400
    message = "Request violates a booking rule"


class AuthorizationError(ApiError):
    status_code = 403
    message = "Not authorized"


class NotFoundError(ApiError):
    status_code = 404
    message = "Not found"


class ConflictError(ApiError):
    status_code = 409
    message = "Conflict"


class PaymentInitiationError(ApiError):
    status_code = 502
    message = "Could not initiate payment."


class WebhookSignatureError(ApiError):
    status_code = 400
    message = "Invalid webhook signature"
