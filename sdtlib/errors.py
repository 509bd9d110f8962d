"""Exception types raised by sdt components."""


class SdtError(Exception):
    """Base class for all sdt errors."""


class ValidationError(SdtError, ValueError):
    """Operator input was malformed. Raised before anything is touched."""


class CommandError(SdtError):
    """A host command could not be run or exited unsuccessfully."""

    def __init__(self, cmd, returncode=None, output=""):
        self.cmd = list(cmd)
        self.returncode = returncode
        self.output = output
        status = "not found" if returncode is None else f"exit {returncode}"
        super().__init__(f"{' '.join(self.cmd)} failed ({status})")


class ApplyError(SdtError):
    """A configuration change could not be applied."""


class ExternallyManagedError(ApplyError):
    """The target file is owned by another network manager."""


class VerificationError(SdtError):
    """A change was applied but did not take effect or does not work."""


class RollbackError(SdtError):
    """Restoring the previous configuration failed or did not verify."""


class LockTimeoutError(SdtError):
    """The package manager lock stayed held past the wait ceiling."""


class BackupError(SdtError, OSError):
    """A backup generation could not be written."""
