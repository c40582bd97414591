"""Auth exceptions."""


class AuthException(Exception):
    """Base auth exception with HTTP status."""

    def __init__(self, message: str, status_code: int = 400):
        super().__init__(message)
        self.message = message
        self.status_code = status_code


class InvalidCredentials(AuthException):
    def __init__(self, message: str = "Invalid email or password."):
        super().__init__(message, status_code=401)


class AccountLocked(AuthException):
    """Lock-until is in the future; the cause is never disclosed."""

    def __init__(self, retry_after: int | None = None):
        message = "Your account is temporarily locked. Please try again later."
        if retry_after:
            minutes = max(1, (retry_after + 59) // 60)
            message = f"Your account is temporarily locked. Please try again in {minutes} minute(s)."
        super().__init__(message, status_code=423)
        self.retry_after = retry_after


class AccountDisabled(AuthException):
    def __init__(self, message: str = "This account has been disabled. Please contact support."):
        super().__init__(message, status_code=403)


class EmailNotVerified(AuthException):
    def __init__(self, message: str = "Email not verified. Please verify your email first."):
        super().__init__(message, status_code=403)


class PasswordExpired(AuthException):
    def __init__(self, message: str = "Password expired. Please reset your password."):
        super().__init__(message, status_code=403)


class CaptchaFailed(AuthException):
    def __init__(self, message: str = "Captcha verification failed."):
        super().__init__(message, status_code=403)


class OtpNotFound(AuthException):
    def __init__(self, message: str = "Verification code not found. Please request a new code."):
        super().__init__(message, status_code=400)


class OtpExpired(AuthException):
    def __init__(self, message: str = "Verification code expired. Please request a new code."):
        super().__init__(message, status_code=400)


class OtpExhausted(AuthException):
    def __init__(self, message: str = "Too many attempts. Please request a new code."):
        super().__init__(message, status_code=429)


class OtpMismatch(AuthException):
    def __init__(self, message: str = "Incorrect verification code."):
        super().__init__(message, status_code=400)


class ChallengeInvalid(AuthException):
    def __init__(self, message: str = "Invalid or expired login verification session."):
        super().__init__(message, status_code=400)


class TokenExpired(AuthException):
    def __init__(self, message: str = "Session expired. Please log in again."):
        super().__init__(message, status_code=401)


class InvalidToken(AuthException):
    def __init__(self, message: str = "Not authorized, invalid token"):
        super().__init__(message, status_code=401)


class TokenVersionMismatch(AuthException):
    def __init__(self, message: str = "Session revoked. Please log in again."):
        super().__init__(message, status_code=401)


class WeakPassword(AuthException):
    def __init__(self, message: str):
        super().__init__(message, status_code=400)


class PasswordReused(AuthException):
    def __init__(self, message: str = "You cannot reuse your recent passwords."):
        super().__init__(message, status_code=400)


class AccountExists(AuthException):
    def __init__(self, message: str = "An account with this email already exists. Please login instead."):
        super().__init__(message, status_code=409)


class AccountNotFound(AuthException):
    def __init__(self, message: str = "Account not found."):
        super().__init__(message, status_code=404)
