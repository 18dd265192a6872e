"""
Banner logging for failures that must not get lost in routine output.

Each banner is emitted as a single multi-line record so the queue listener
keeps it contiguous, and carries the affected user in the record's
`user_id` field rather than in the message text.
"""

import traceback
from typing import List, Optional

from sleep_titration.utils.logging_config import get_logger

logger = get_logger(__name__)

BANNER_WIDTH = 80


def _banner(title: str, fill: str, message: str, context: Optional[str], body: List[str]) -> str:
    rule = fill * BANNER_WIDTH
    lines = ["", rule, f"{title:^{BANNER_WIDTH}}", rule]
    if context:
        lines.append(f"CONTEXT: {context}")
    lines.append(f"MESSAGE: {message}")
    lines.extend(body)
    lines.append(rule)
    return "\n".join(lines)


def _exception_lines(exception: Optional[BaseException], include_traceback: bool) -> List[str]:
    if exception is None:
        return []
    lines = [f"EXCEPTION: {type(exception).__name__}: {exception}"]
    if include_traceback and exception.__traceback__ is not None:
        lines.append("TRACEBACK:")
        lines.append("".join(
            traceback.format_exception(type(exception), exception, exception.__traceback__)
        ).rstrip())
    return lines


def log_critical_error(
    message: str,
    exception: Optional[BaseException] = None,
    context: Optional[str] = None,
    user_id: Optional[str] = None,
    include_traceback: bool = True,
):
    """
    Log a failure as an ERROR banner.

    Args:
        message: What failed
        exception: The exception being handled, if any; its own traceback is used
        context: Where it failed (e.g. "window_db.create_window")
        user_id: Affected user, written to the record's user_id field
        include_traceback: Whether to append the exception's traceback
    """
    text = _banner("ERROR", "*", message, context, _exception_lines(exception, include_traceback))
    logger.error(text, extra={'user_id': user_id or "N/A"})


def log_warning_banner(message: str, context: Optional[str] = None, user_id: Optional[str] = None):
    """Log a WARNING banner (batch runs that finished with failures)."""
    logger.warning(_banner("WARNING", "!", message, context, []), extra={'user_id': user_id or "N/A"})
