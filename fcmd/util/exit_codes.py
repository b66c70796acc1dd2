"""Documented exit codes for the fcmd CLI.

Exit codes follow UNIX conventions:
- 0: Success
- 1: General/unspecified error
- 2: Invalid command-line arguments or usage
- 3-4: Application-specific errors

Usage:
    from fcmd.util.exit_codes import ExitCode
    sys.exit(ExitCode.INPUT_ERROR)
"""

from __future__ import annotations


class ExitCode:
    """Exit code constants for fcmd processes.

    Attributes:
        SUCCESS: Normal termination, no errors.
        GENERAL_ERROR: Unspecified runtime error.
        INVALID_ARGS: Command-line argument validation failed.
        INPUT_ERROR: The sample source (WAV file) could not be read.
        OUTPUT_ERROR: The frame log could not be written.
    """

    SUCCESS: int = 0
    GENERAL_ERROR: int = 1
    INVALID_ARGS: int = 2
    INPUT_ERROR: int = 3
    OUTPUT_ERROR: int = 4

    @classmethod
    def message(cls, code: int) -> str:
        """Return a human-readable message for an exit code."""
        messages = {
            cls.SUCCESS: "Success",
            cls.GENERAL_ERROR: "General error",
            cls.INVALID_ARGS: "Invalid arguments",
            cls.INPUT_ERROR: "Sample source unreadable",
            cls.OUTPUT_ERROR: "Frame log unwritable",
        }
        return messages.get(code, f"Unknown exit code {code}")
