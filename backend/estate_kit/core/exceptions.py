"""
Domain error hierarchy shared by services and the HTTP layer
"""


class EstateKitError(Exception):
    """Base class for all domain errors"""

    error_code = "estate_kit_error"

    def __init__(self, message: str = "", error_code: str = None):
        self.message = message or self.__class__.__doc__ or ""
        if error_code:
            self.error_code = error_code
        super().__init__(self.message)


class AuthenticationError(EstateKitError):
    """Authentication failed"""

    error_code = "authentication_failed"

    def __init__(self, reason: str = ""):
        # The public message never carries the reason
        super().__init__("Authentication failed")
        self.reason = reason


class ValidationError(EstateKitError):
    """Invalid input"""

    error_code = "validation_error"


class NotFoundError(EstateKitError):
    """Resource not found"""

    error_code = "not_found"


class PermissionDeniedError(EstateKitError):
    """Operation not permitted"""

    error_code = "permission_denied"


class EncryptionError(EstateKitError):
    """Encryption or decryption failed"""

    error_code = "encryption_error"


class DependencyTimeoutError(EstateKitError):
    """External dependency did not answer in time"""

    error_code = "dependency_timeout"
