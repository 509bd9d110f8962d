"""User interaction utilities for sdt."""

import select
import sys
from typing import Optional


def prompt(message: str, default: str = "") -> str:
    """
    Prompt the user for input with an optional default value.

    Args:
        message: The prompt message to display
        default: Default value if user presses Enter

    Returns:
        User input or default value
    """
    if default:
        display = f"{message} [{default}]: "
    else:
        display = f"{message}: "

    try:
        response = input(display).strip()
        return response if response else default
    except EOFError:
        print()
        return default


def prompt_timeout(message: str, timeout: float) -> Optional[str]:
    """
    Prompt for one line, giving up after ``timeout`` seconds of inactivity.

    Returns:
        The stripped line, or None on timeout

    Raises:
        EOFError: stdin was closed
    """
    print(message, end="", flush=True)
    if sys.stdin.isatty():
        ready, _, _ = select.select([sys.stdin], [], [], timeout)
        if not ready:
            print()
            return None
    line = sys.stdin.readline()
    if not line:
        print()
        raise EOFError
    return line.strip()


def pause(message: str = "Press Enter to continue...") -> None:
    """
    Pause execution until user presses Enter.

    Args:
        message: Message to display
    """
    try:
        input(message)
    except EOFError:
        print()


def confirm(message: str, default: bool = False) -> bool:
    """
    Ask the user for confirmation.

    Args:
        message: The question to ask
        default: Default answer if user presses Enter

    Returns:
        True if user confirmed, False otherwise
    """
    if default:
        prompt_suffix = "[Y/n]"
    else:
        prompt_suffix = "[y/N]"

    while True:
        try:
            response = input(f"{message} {prompt_suffix}: ").strip().lower()
        except EOFError:
            print()
            return default

        if not response:
            return default
        if response in ("y", "yes"):
            return True
        if response in ("n", "no"):
            return False
        print("  Please answer 'y' or 'n'")
