"""
Error logging utility for notification system.

Logs notification processing errors to timestamped files for debugging.
"""

import os
import threading
import uuid
from datetime import datetime
from typing import Any


def _log_dir() -> str:
    return os.getenv("NOTIFICATION_LOG_DIR") or os.path.join(
        os.path.dirname(__file__), "logs"
    )


def log_notification_error(
    error_type: str, error_message: str, context: dict[str, Any] | None = None
) -> str:
    """
    Log a notification error to a timestamped file.

    Args:
        error_type: Type of error (e.g., 'recipient', 'delivery', 'retry', 'digest')
        error_message: The error message
        context: Optional dictionary with additional context (notification_id, user_id, etc.)

    Returns:
        Path to the log file created
    """
    # Create logs directory if it doesn't exist
    log_dir = _log_dir()
    os.makedirs(log_dir, exist_ok=True)

    # Workers log concurrently, so the name carries microseconds and a nonce
    timestamp = datetime.now().strftime("%Y%m%d_%H%M%S_%f")
    filename = os.path.join(
        log_dir, f"notification_error_{timestamp}_{uuid.uuid4().hex[:6]}.txt"
    )

    # Write error to file
    with open(filename, "w", encoding="utf-8") as f:
        f.write(f"Notification Error Report - {datetime.now()}\n")
        f.write("=" * 60 + "\n\n")
        f.write(f"Error Type: {error_type}\n")
        f.write(f"Error Message: {error_message}\n")
        f.write(f"Worker: {threading.current_thread().name}\n\n")

        if context:
            f.write("Context:\n")
            f.write("-" * 60 + "\n")
            for key, value in context.items():
                f.write(f"{key}: {value}\n")

    return filename


def report_notification_error(
    error_type: str,
    error_message: str,
    context: dict[str, Any] | None = None,
    summary: str | None = None,
) -> str | None:
    """
    Print a one-line warning and write the full error report.

    Never raises exceptions - an unwritable log directory only costs the file.

    Returns:
        Path to the log file, or None if it could not be written
    """
    headline = summary or f"{error_type} error: {error_message}"
    try:
        error_file = log_notification_error(error_type, error_message, context)
    except OSError as e:
        print(f"  ⚠️  {headline} (could not write error report: {e})")
        return None

    print(f"  ⚠️  {headline}. Details logged to: {error_file}")
    return error_file
