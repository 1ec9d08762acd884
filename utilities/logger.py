import logging
import re
import sys

# The Gemini endpoint carries the API key as a query parameter, so any
# logged URL or error text has to be scrubbed.
SECRET_PATTERNS = [
    (re.compile(r'([?&]key=)[\w-]+', re.IGNORECASE), r'\1***MASKED***'),
    (re.compile(r'(api[_-]?key\s*[=:]\s*)["\']?[\w-]{20,}["\']?', re.IGNORECASE), r'\1***MASKED***'),
]

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def mask_secrets(text: str) -> str:
    """Mask sensitive values in text."""
    for pattern, replacement in SECRET_PATTERNS:
        text = pattern.sub(replacement, text)
    return text


class SecretMaskingFilter(logging.Filter):
    """Filter to mask secrets in log messages."""

    def filter(self, record):
        if isinstance(record.msg, str):
            record.msg = mask_secrets(record.msg)
        if isinstance(record.args, tuple):
            record.args = tuple(
                mask_secrets(arg) if isinstance(arg, str) else arg
                for arg in record.args
            )
        return True


def setup_logger(level='INFO') -> logging.Logger:
    """Configure the root logger with a masked console handler.

    Safe to call more than once (the app factory runs per test); the
    handler is only attached the first time.
    """
    root = logging.getLogger()
    root.setLevel(level)
    if any(getattr(h, '_mock_interview', False) for h in root.handlers):
        return root

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(logging.Formatter(LOG_FORMAT, datefmt="%Y-%m-%d %H:%M:%S"))
    handler.addFilter(SecretMaskingFilter())
    handler._mock_interview = True
    root.addHandler(handler)
    return root
