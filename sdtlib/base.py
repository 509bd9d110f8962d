"""Base orchestrator class for sdt components."""

import sys
from typing import List

from .config import SdtConfig


class _C:
    BOLD = "\033[1m"
    RED = "\033[31m"
    GREEN = "\033[32m"
    YELLOW = "\033[33m"
    CYAN = "\033[36m"
    RESET = "\033[0m"


def _color(code: str, stream=None) -> str:
    return code if (stream or sys.stdout).isatty() else ""


class BaseOrchestrator:
    """
    Base class for sdt orchestrator components.

    Provides common functionality for dry-run mode, tagged console output,
    and change tracking. The coordinator, the mutators and the maintenance
    runner all inherit from this class.
    """

    def __init__(self, config: SdtConfig, dry_run: bool = False, verbose: bool = False):
        """
        Initialize the orchestrator.

        Args:
            config: Shared immutable configuration
            dry_run: If True, only show what would be done without making changes
            verbose: If True, enable verbose output
        """
        self.config = config
        self.dry_run = dry_run
        self.verbose = verbose
        self.changes: List[str] = []

    def _emit(self, tag: str, color: str, msg: str, stream=None) -> None:
        stream = stream or sys.stdout
        prefix = "[DRY-RUN] " if self.dry_run else ""
        print(f"{_color(color, stream)}[{tag}]{_color(_C.RESET, stream)} {prefix}{msg}", file=stream)

    def log(self, msg: str) -> None:
        """
        Log an informational message with optional dry-run prefix.

        Args:
            msg: Message to log
        """
        self._emit("INFO", _C.CYAN, msg)

    def log_ok(self, msg: str) -> None:
        """Log a success message."""
        self._emit("OK", _C.GREEN, msg)

    def log_warn(self, msg: str) -> None:
        """Log a warning."""
        self._emit("WARN", _C.YELLOW, msg)

    def log_error(self, msg: str) -> None:
        """Log an error to stderr."""
        self._emit("ERROR", _C.RED, msg, stream=sys.stderr)

    def log_verbose(self, msg: str) -> None:
        """
        Log a message only if verbose mode is enabled.

        Args:
            msg: Message to log
        """
        if self.verbose:
            self.log(msg)

    def record_change(self, description: str) -> None:
        """
        Record a change that was made.

        Args:
            description: Description of the change
        """
        self.changes.append(description)

    def summarize(self, title: str = "Summary") -> None:
        """
        Print a summary of changes made.

        Args:
            title: Title for the summary section
        """
        print("")
        print("=" * 60)
        print(f"{_color(_C.BOLD)}{title}{_color(_C.RESET)}")
        if self.dry_run:
            print("Dry-run complete - no changes were made")
        elif self.changes:
            print(f"Changes made: {len(self.changes)}")
            for change in self.changes:
                print(f"  - {change}")
        else:
            print("No changes made")
        print("=" * 60)
