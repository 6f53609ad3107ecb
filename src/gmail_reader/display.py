"""ANSI escape sequences and inline markers for terminal output."""

from __future__ import annotations

BOLD = "\033[1m"
RED = "\033[31m"
GREEN = "\033[32m"
BLUE = "\033[34m"
GREY = "\033[37m"
RESET = "\033[0m"
NORMAL = RESET

# Longest error detail shown inline in a message body.
MAX_MARKER_DETAIL = 200


def _bounded(detail: str) -> str:
    detail = " ".join(detail.split())
    if len(detail) > MAX_MARKER_DETAIL:
        return detail[: MAX_MARKER_DETAIL - 3] + "..."
    return detail


def error_marker(summary: str, error: BaseException | str | None = None) -> str:
    """Build a bracketed red marker describing a failure.

    Args:
        summary: Short description of what failed.
        error: Optional exception or detail text appended after the summary.

    Returns:
        A single line suitable for embedding in a rendered body.
    """

    text = summary
    if error is not None:
        detail = _bounded(str(error))
        if detail:
            text = f"{summary}: {detail}"
    return f"{RED}[{text}]{RESET}"


def attachment_marker(filename: str) -> str:
    return f'{BOLD}[attachment "{filename}"; inspect separately]{RESET}'


def html_marker() -> str:
    return f"{BLUE}Rendered HTML{RESET}"


def signed_block(signer: str, block: str) -> str:
    return (
        f"{GREEN}BEGIN message signed by {signer}{RESET}\n"
        f"{block}\n"
        f"{GREEN}END message signed by {signer}{RESET}"
    )


def color_escape(fg: int, bg: int) -> str:
    """Return the 256-colour escape sequence for a foreground/background pair."""
    return f"\033[38;5;{fg}m\033[48;5;{bg}m"
