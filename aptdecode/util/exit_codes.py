"""Documented exit codes for the aptdecode CLI.

Exit codes follow UNIX conventions:
- 0: Success
- 1: General/unspecified error
- 2: Invalid command-line arguments or usage
- 3-5: Application-specific errors
- 130: Interrupted by the user

Usage:
    from aptdecode.util.exit_codes import ExitCode
    sys.exit(ExitCode.CONFIG_ERROR)
"""

from __future__ import annotations


class ExitCode:
    """Exit code constants for aptdecode processes.

    Attributes:
        SUCCESS: Normal termination, image or WAV written.
        GENERAL_ERROR: Unspecified runtime error.
        INVALID_ARGS: Command-line argument validation failed.
        CONFIG_ERROR: Profile or filter parameters rejected.
        INPUT_ERROR: Input recording unreadable, empty or degenerate.
        DECODE_ERROR: Resampling or demodulation failed.
        CANCELLED: Decode aborted before an image was produced.
    """

    SUCCESS: int = 0
    GENERAL_ERROR: int = 1
    INVALID_ARGS: int = 2
    CONFIG_ERROR: int = 3
    INPUT_ERROR: int = 4
    DECODE_ERROR: int = 5
    CANCELLED: int = 130

    @classmethod
    def message(cls, code: int) -> str:
        """Return a human-readable message for an exit code."""
        messages = {
            cls.SUCCESS: "Success",
            cls.GENERAL_ERROR: "General error",
            cls.INVALID_ARGS: "Invalid arguments",
            cls.CONFIG_ERROR: "Invalid profile or filter configuration",
            cls.INPUT_ERROR: "Input recording could not be used",
            cls.DECODE_ERROR: "Decoding failed",
            cls.CANCELLED: "Cancelled",
        }
        return messages.get(code, f"Unknown exit code {code}")
