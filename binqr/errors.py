"""Error taxonomy shared by services, routers and the client."""


class BinQRError(RuntimeError):
    """Base error. ``code`` is stable and machine-readable."""

    code = "error"

    def __init__(self, message: str | None = None):
        super().__init__(message or self.__class__.__doc__ or self.code)
        self.message = str(self.args[0])


class AuthError(BinQRError):
    """Invalid credentials or token."""

    code = "auth_error"


class AccountExists(AuthError):
    """An account with this email already exists."""

    code = "account_exists"


class ValidationError(BinQRError):
    """Input failed validation."""

    code = "validation_error"


class InviteError(BinQRError):
    """Invite operation failed."""

    code = "invite_error"


class InvalidOrExpiredCode(InviteError):
    """Invalid or expired invite code."""

    code = "invalid_or_expired_code"


class NoInvitesRemaining(InviteError):
    """No invites remaining."""

    code = "no_invites_remaining"


class InviteNotFound(InviteError):
    """Invite not found."""

    code = "invite_not_found"


class InviteNotRevocable(InviteError):
    """Invite is no longer pending and cannot be revoked."""

    code = "invite_not_revocable"


class PersistenceError(BinQRError):
    """Storage read or write failed."""

    code = "persistence_error"


class RecordNotFound(PersistenceError):
    """Record not found."""

    code = "not_found"


class LocationHasBoxes(PersistenceError):
    """Cannot delete location with boxes. Move or delete boxes first."""

    code = "location_has_dependents"


ERRORS_BY_CODE: dict[str, type[BinQRError]] = {
    cls.code: cls
    for cls in (
        AuthError,
        AccountExists,
        ValidationError,
        InviteError,
        InvalidOrExpiredCode,
        NoInvitesRemaining,
        InviteNotFound,
        InviteNotRevocable,
        PersistenceError,
        RecordNotFound,
        LocationHasBoxes,
    )
}
