"""Error kinds raised by the account services and translated to HTTP responses in main."""


class AppError(Exception):
    """Base class for every error the service reports to callers.

    Operational errors (bad input, bad credentials, missing records) always carry
    their specific message to the client. Non-operational ones are only detailed
    when the application runs with DEBUG enabled.
    """

    status_code: int = 500
    error_code: str = "APP_ERROR"
    default_message: str = "Something went very wrong!"
    is_operational: bool = True

    def __init__(self, message: str | None = None, details: dict | None = None):
        self.message = message or self.default_message
        self.details = details or {}
        super().__init__(self.message)


# --- Validation ---


class ValidationError(AppError):
    status_code = 400
    error_code = "VALIDATION_ERROR"
    default_message = "Invalid input data."


class MissingCredentials(ValidationError):
    default_message = "Please provide email and password!"


class PasswordMismatch(ValidationError):
    default_message = "Passwords are not the same"


# --- Authentication ---


class AuthenticationError(AppError):
    status_code = 401
    error_code = "AUTHENTICATION_ERROR"
    default_message = "Authentication failed"


class BadCredentials(AuthenticationError):
    default_message = "Incorrect email or password!"


class AccountDisabled(AuthenticationError):
    default_message = "This user is disabled"


class AccountExpired(AuthenticationError):
    default_message = "The user's activity has expired. Please contact the admin."


class NoToken(AuthenticationError):
    default_message = "You are not logged in! Please log in to get access."


class InvalidToken(AuthenticationError):
    default_message = "Invalid token. Please log in again!"


class ExpiredToken(AuthenticationError):
    error_code = "TOKEN_EXPIRED"
    default_message = "Your token has expired. Please log in again"


class TokenUserNotFound(AuthenticationError):
    default_message = "The user belonging to this token no longer exists."


class StalePassword(AuthenticationError):
    default_message = "User recently changed password! Please log in again."


class InvalidResetToken(AuthenticationError):
    # Wrong secret and expired secret are reported identically.
    status_code = 400
    error_code = "INVALID_RESET_TOKEN"
    default_message = "Token is invalid or has expired"


# --- Everything else ---


class AuthorizationError(AppError):
    status_code = 403
    error_code = "AUTHORIZATION_ERROR"
    default_message = "You do not have permission to perform this action"


class NotFoundError(AppError):
    status_code = 404
    error_code = "NOT_FOUND"
    default_message = "Resource not found"


class ConflictError(AppError):
    status_code = 409
    error_code = "CONFLICT"
    default_message = "Resource conflict"


class DeliveryError(AppError):
    status_code = 500
    error_code = "DELIVERY_ERROR"
    default_message = "There was an error sending the email. Try again later!"


class InternalError(AppError):
    status_code = 500
    error_code = "INTERNAL_ERROR"
    is_operational = False
