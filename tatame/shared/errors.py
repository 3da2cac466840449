"""
TATAME - Shared Error Definitions

Common exceptions used across all TATAME components.
"""


class TatameError(Exception):
    """Base exception for all TATAME errors."""
    pass


# =============================================================================
# Configuration Errors
# =============================================================================
class ConfigurationError(TatameError):
    """Raised when required configuration is missing or invalid."""
    pass


class MissingEnvironmentVariableError(ConfigurationError):
    """Raised when a required environment variable is not set."""
    def __init__(self, var_name: str):
        self.var_name = var_name
        super().__init__(f"Missing required environment variable: {var_name}")


# =============================================================================
# Lookup Errors
# =============================================================================
class NotFoundError(TatameError):
    """Base exception for missing records."""
    pass


class FeatureNotFoundError(NotFoundError):
    """Raised when a feature id or code is not found."""
    def __init__(self, ref: str):
        self.ref = ref
        super().__init__(f"Feature not found: {ref}")


class SiteNotFoundError(NotFoundError):
    """Raised when a WordPress site is not found for the user."""
    def __init__(self, site_id: str):
        self.site_id = site_id
        super().__init__(f"Site not found: {site_id}")


class CourseNotFoundError(NotFoundError):
    def __init__(self, course_id: str):
        self.course_id = course_id
        super().__init__(f"Course not found: {course_id}")


class LessonNotFoundError(NotFoundError):
    def __init__(self, lesson_id: str):
        self.lesson_id = lesson_id
        super().__init__(f"Lesson not found: {lesson_id}")


class TemplateNotFoundError(NotFoundError):
    def __init__(self, slug: str):
        self.slug = slug
        super().__init__(f"Email template not found: {slug}")


class JobNotFoundError(NotFoundError):
    def __init__(self, job_id: str):
        self.job_id = job_id
        super().__init__(f"Provisioning job not found: {job_id}")


class UserNotFoundError(NotFoundError):
    def __init__(self, user_id: str):
        self.user_id = user_id
        super().__init__(f"User not found: {user_id}")


# =============================================================================
# Request Errors
# =============================================================================
class ValidationError(TatameError):
    """Raised when input validation fails."""
    pass


class ConflictError(TatameError):
    """Raised when an operation collides with existing state."""
    pass


class PermissionDeniedError(TatameError):
    """Raised when the caller may not perform an operation."""
    pass


class AuthenticationError(TatameError):
    """Raised when a token is missing, invalid or expired."""
    pass


class AccountLockedError(AuthenticationError):
    """Raised when an account is locked after repeated failed logins."""
    pass


# =============================================================================
# Security Errors
# =============================================================================
class CryptoError(TatameError):
    """Raised when encryption or decryption fails."""
    pass


# =============================================================================
# Provisioning Errors
# =============================================================================
class ProvisioningError(TatameError):
    """Base exception for remote provisioning failures."""
    pass


class ProvisioningBusyError(ProvisioningError):
    """Raised when a provisioning service is already running."""
    pass


class SSHConnectionError(ProvisioningError):
    """Raised when the SSH session cannot be established."""
    def __init__(self, host: str, reason: str = ""):
        self.host = host
        self.reason = reason
        super().__init__(f"SSH connection to {host} failed: {reason}")


class RemoteCommandError(ProvisioningError):
    """Raised when a remote command exits non-zero."""
    def __init__(self, message: str, exit_code: int = -1, stderr: str = ""):
        self.exit_code = exit_code
        self.stderr = stderr
        super().__init__(message)


class CredentialsParseError(ProvisioningError):
    """Raised when the credentials block is missing from script output."""
    def __init__(self, message: str = "Failed to parse site credentials from script output"):
        super().__init__(message)
