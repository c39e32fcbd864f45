class MigratorError(Exception):
    """Base class for migrator-specific errors."""


class FormatError(MigratorError):
    """Archive is not in a supported format (bad magic, version, truncation)."""


class AuthenticationError(MigratorError):
    """Authentication tag did not verify: wrong password or damaged archive."""


class SecurityRejection(MigratorError):
    """Entry path would land outside the restore target."""

    def __init__(self, name: str, reason: str):
        self.name = name
        self.reason = reason
        super().__init__(f"{reason}: {name!r}")
