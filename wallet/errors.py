class WalletError(Exception):
    """Base wallet error; carries the HTTP status the API answers with."""
    status_code = 400

    def __init__(self, message, status_code=None):
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = status_code

    def to_dict(self):
        return {"error": self.message}


class ValidationError(WalletError):
    pass


class AuthenticationError(WalletError):
    status_code = 401


class PermissionDenied(WalletError):
    status_code = 403


class NotFoundError(WalletError):
    status_code = 404


class ConflictError(WalletError):
    """Version mismatch, request already processed or reference already approved."""
    status_code = 409


class InsufficientBalanceError(WalletError):
    pass


class LimitExceededError(WalletError):
    pass


class WindowClosedError(WalletError):
    pass
