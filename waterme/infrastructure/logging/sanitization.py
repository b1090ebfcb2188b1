"""
Logging sanitization for sensitive data protection.

This module keeps credentials out of log output: the Telegram bot token, the
webhook secret, database passwords and users' e-mail addresses.
"""

import re
from copy import deepcopy
from typing import Any, Dict, List, Optional, Set


class LogSanitizer:
    """Sanitizes sensitive data from log output."""

    # Sensitive field patterns (case-insensitive substring of the key)
    SENSITIVE_FIELD_PATTERNS: Set[str] = {
        'password', 'passwd', 'secret', 'token', 'api_key', 'apikey',
        'private_key', 'authorization', 'bearer', 'email'
    }

    # Sensitive value patterns (regex)
    SENSITIVE_VALUE_PATTERNS = [
        # Telegram bot tokens: <bot id>:<35 char secret>
        r'\b\d{6,12}:[A-Za-z0-9_-]{30,}\b',
        # Email addresses
        r'\b[A-Za-z0-9._%+-]+@[A-Za-z0-9.-]+\.[A-Za-z]{2,}\b',
        # JWT tokens (basic pattern)
        r'\beyJ[A-Za-z0-9-_]+\.[A-Za-z0-9-_]+\.[A-Za-z0-9-_]*\b',
    ]

    # Replacement text for sanitized values
    REPLACEMENT_TEXT = "***REDACTED***"

    def __init__(self, field_patterns: Optional[Set[str]] = None):
        self.field_patterns = field_patterns or self.SENSITIVE_FIELD_PATTERNS

    def sanitize_dict(self, data: Dict[str, Any], max_depth: int = 10) -> Dict[str, Any]:
        """
        Recursively sanitize a dictionary, removing sensitive data.

        Args:
            data: Dictionary to sanitize
            max_depth: Maximum recursion depth

        Returns:
            Sanitized dictionary with sensitive fields redacted
        """
        if max_depth <= 0:
            return {"error": "max_depth_reached"}

        sanitized = {}
        for key, value in data.items():
            lowered = str(key).lower()

            if any(pattern in lowered for pattern in self.field_patterns):
                sanitized[key] = self.REPLACEMENT_TEXT
            elif isinstance(value, dict):
                sanitized[key] = self.sanitize_dict(value, max_depth - 1)
            elif isinstance(value, list):
                sanitized[key] = self._sanitize_list(value, max_depth - 1)
            else:
                sanitized[key] = self._sanitize_value(value)

        return sanitized

    def _sanitize_list(self, data: List[Any], max_depth: int) -> List[Any]:
        if max_depth <= 0:
            return ["max_depth_reached"]

        sanitized = []
        for item in data:
            if isinstance(item, dict):
                sanitized.append(self.sanitize_dict(item, max_depth - 1))
            elif isinstance(item, list):
                sanitized.append(self._sanitize_list(item, max_depth - 1))
            else:
                sanitized.append(self._sanitize_value(item))
        return sanitized

    def _sanitize_value(self, value: Any) -> Any:
        if not isinstance(value, str):
            return value
        return self.sanitize_string(value)

    @classmethod
    def sanitize_string(cls, text: str) -> str:
        """Replace sensitive substrings of ``text``."""
        sanitized = text
        for pattern in cls.SENSITIVE_VALUE_PATTERNS:
            sanitized = re.sub(pattern, cls.REPLACEMENT_TEXT, sanitized)
        return sanitized

    @classmethod
    def sanitize_url(cls, url: str) -> str:
        """Remove credentials and secret query parameters from a URL."""
        if not isinstance(url, str):
            return str(url)

        # user:pass@host
        sanitized = re.sub(r'://[^@/]+@', '://***:***@', url)
        # Bot API paths embed the token
        sanitized = re.sub(r'/bot[^/]+', f'/bot{cls.REPLACEMENT_TEXT}', sanitized)

        for param in ('token', 'secret', 'password', 'api_key'):
            sanitized = re.sub(
                rf'([?&]){param}=[^&]*',
                rf'\g<1>{param}={cls.REPLACEMENT_TEXT}',
                sanitized,
                flags=re.IGNORECASE
            )
        return sanitized


class StructlogSanitizer:
    """Structlog processor for sanitizing log events."""

    def __init__(self, sanitizer: Optional[LogSanitizer] = None):
        self.sanitizer = sanitizer or LogSanitizer()

    def __call__(self, logger, method_name, event_dict):
        """Return a sanitized copy of ``event_dict``."""
        try:
            sanitized_event = self.sanitizer.sanitize_dict(deepcopy(event_dict))

            if isinstance(sanitized_event.get('url'), str):
                sanitized_event['url'] = self.sanitizer.sanitize_url(sanitized_event['url'])

            return sanitized_event

        except Exception as e:
            # Never fall back to the unsanitized event
            return {
                "event": "log_sanitization_error",
                "error": str(e),
                "original_event_type": type(event_dict).__name__
            }


class LogSanitizationConfig:
    """Configuration for log sanitization behavior."""

    MINIMAL_FIELD_PATTERNS = {'password', 'secret', 'token', 'private_key'}

    def __init__(self, environment: str = "production"):
        self.environment = environment.lower()

    @property
    def sanitization_level(self) -> str:
        if self.environment in ('production', 'staging'):
            return 'strict'
        return 'minimal'

    def get_sanitizer(self) -> LogSanitizer:
        """Get configured sanitizer for the environment."""
        if self.sanitization_level == 'minimal':
            # Credentials are always redacted, user data only outside development
            return LogSanitizer(field_patterns=set(self.MINIMAL_FIELD_PATTERNS))
        return LogSanitizer()
