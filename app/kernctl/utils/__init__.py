"""Utility modules for kernctl.

This module exports commonly used utility functions.
"""

from kernctl.utils.formatting import (
    console,
    err_console,
    print_detail,
    print_error,
    print_info,
    print_success,
    print_warning,
)
from kernctl.utils.shell import CommandResult, command_exists, run_command

__all__ = [
    "CommandResult",
    "command_exists",
    "console",
    "err_console",
    "print_detail",
    "print_error",
    "print_info",
    "print_success",
    "print_warning",
    "run_command",
]
