"""
Console and transcript logging.

Everything the operator sees goes through ``logger`` so that the same lines
land in the per-session transcript once ``set_log_file`` has been called.
"""

import re
import sys
import logging
from pathlib import Path
from datetime import datetime
from typing import Callable, Optional

# Reads one line of operator input; swapped for a scripted feed in tests.
InputFn = Callable[[str], str]


class FileAndConsoleLogger:
    """Dual logger: detailed file logging + clean console output."""

    def __init__(self, log_path: Path = None):
        self.log_path = log_path
        self.console_logger = logging.getLogger('spo_retention.console')
        self.file_logger = logging.getLogger('spo_retention.file')
        self.console_logger.propagate = False
        self.file_logger.propagate = False

        # Console: INFO level, clean format
        if not self.console_logger.handlers:
            console_handler = logging.StreamHandler(sys.stdout)
            console_handler.setLevel(logging.INFO)
            console_handler.setFormatter(logging.Formatter('%(message)s'))
            self.console_logger.addHandler(console_handler)
        self.console_logger.setLevel(logging.INFO)

    def set_log_file(self, log_path: Path):
        """Set up file logging."""
        for handler in list(self.file_logger.handlers):
            self.file_logger.removeHandler(handler)
            handler.close()

        log_path.parent.mkdir(parents=True, exist_ok=True)
        self.log_path = log_path
        file_handler = logging.FileHandler(log_path, encoding='utf-8')
        file_handler.setLevel(logging.DEBUG)
        file_handler.setFormatter(logging.Formatter(
            '%(asctime)s | %(levelname)s | %(message)s'
        ))
        self.file_logger.addHandler(file_handler)
        self.file_logger.setLevel(logging.DEBUG)

    def info(self, msg: str):
        self.console_logger.info(msg)
        if self.log_path:
            self.file_logger.info(msg)

    def debug(self, msg: str):
        if self.log_path:
            self.file_logger.debug(msg)

    def success(self, msg: str):
        self.console_logger.info(f"✅ {msg}")
        if self.log_path:
            self.file_logger.info(msg)

    def warning(self, msg: str):
        self.console_logger.warning(f"⚠️  {msg}")
        if self.log_path:
            self.file_logger.warning(msg)

    def error(self, msg: str):
        self.console_logger.error(f"❌ {msg}")
        if self.log_path:
            self.file_logger.error(msg)

    def api_error(self, method: str, url: str, status: int, context: str,
                  error_msg: str = None):
        """Log API error with full details to file."""
        log_entry = (
            f"API ERROR | {method} {redact(url)} | "
            f"Status: {status} | Context: {context} | "
            f"Error: {error_msg or 'N/A'}"
        )
        if self.log_path:
            self.file_logger.error(log_entry)


def redact(text: str) -> str:
    """Strip bearer tokens and SAS signatures from a URL or message."""
    text = re.sub(r'access_token=[^&]+', 'access_token=REDACTED', text)
    text = re.sub(r'Bearer [^\s]+', 'Bearer REDACTED', text)
    text = re.sub(r'sig=[^&]+', 'sig=REDACTED', text)
    return text


def banner(title: str, width: int = 70):
    logger.info("\n" + "=" * width)
    logger.info(title)
    logger.info("=" * width)


def start_session_log(output_root: Path) -> Path:
    """Open the transcript file for this invocation."""
    timestamp = datetime.now().strftime('%Y%m%d_%H%M%S')
    log_path = Path(output_root) / 'logs' / f"session_{timestamp}.log"
    logger.set_log_file(log_path)
    logger.debug(f"Session started, transcript at {log_path}")
    return log_path


def ask(prompt: str, input_fn: Optional[InputFn] = None) -> str:
    """Prompt the operator and echo the answer into the transcript."""
    answer = (input_fn or input)(prompt).strip()
    logger.debug(f"PROMPT {prompt.strip()} -> {answer!r}")
    return answer


def ask_yes_no(prompt: str, input_fn: Optional[InputFn] = None) -> bool:
    """Ask until the operator answers yes or no."""
    while True:
        answer = ask(prompt, input_fn).lower()
        if answer in ('y', 'yes'):
            return True
        if answer in ('n', 'no'):
            return False
        logger.warning("Please answer 'y' or 'n'")


logger = FileAndConsoleLogger()
