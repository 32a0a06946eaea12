"""Configuration validators for WDSC."""

import logging
import os
from typing import Any, List
from urllib.parse import urlparse

logger = logging.getLogger(__name__)


class ValidationError(Exception):
    """Raised when configuration validation fails."""
    pass


class ConfigValidator:
    """Base class for configuration validators."""

    def validate(self, value: Any) -> Any:
        """Validate and normalize a configuration value.

        Args:
            value: Raw configuration value

        Returns:
            Validated and normalized value

        Raises:
            ValidationError: If validation fails
        """
        raise NotImplementedError


class LocalPathValidator(ConfigValidator):
    """Validates the local root of a sync configuration.

    The directory does not have to exist yet; it only has to be absolute
    after user expansion.
    """

    def validate(self, value: Any) -> str:
        if not isinstance(value, str) or not value.strip():
            raise ValidationError(f"Local path must be a non-empty string, got: {value!r}")

        path = os.path.expanduser(value.strip())
        if not os.path.isabs(path):
            raise ValidationError(f"Local path must be absolute: {value}")

        # Keep the trailing separator off so relative paths compute cleanly
        return os.path.normpath(path)


class WebDAVUrlValidator(ConfigValidator):
    """Validates a WebDAV endpoint URL."""

    VALID_SCHEMES = {'http', 'https', 'webdav', 'webdavs'}

    def validate(self, value: Any) -> str:
        if not isinstance(value, str):
            raise ValidationError(f"WebDAV URL must be a string, got: {type(value)}")

        url = value.strip()
        parsed = urlparse(url)

        if parsed.scheme.lower() not in self.VALID_SCHEMES:
            raise ValidationError(
                f"Invalid WebDAV URL scheme: {parsed.scheme or '(none)'}. "
                f"Must be one of: {', '.join(sorted(self.VALID_SCHEMES))}"
            )

        if not parsed.netloc:
            raise ValidationError(f"WebDAV URL has no host: {value}")

        return url


class LogLevelValidator(ConfigValidator):
    """Validates log level."""

    VALID_LEVELS = {'DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL'}

    def validate(self, value: Any) -> str:
        if not isinstance(value, str):
            raise ValidationError(f"Log level must be a string, got: {type(value)}")

        level = value.upper()

        if level not in self.VALID_LEVELS:
            raise ValidationError(
                f"Invalid log level: {value}. Must be one of: {', '.join(sorted(self.VALID_LEVELS))}"
            )

        return level


class AuthTypeValidator(ConfigValidator):
    """Validates endpoint authentication type."""

    VALID_TYPES = ('None', 'Basic', 'Digest')

    def validate(self, value: Any) -> str:
        if not isinstance(value, str):
            raise ValidationError(f"Auth type must be a string, got: {type(value)}")

        for auth_type in self.VALID_TYPES:
            if auth_type.lower() == value.strip().lower():
                return auth_type

        raise ValidationError(
            f"Invalid auth type: {value}. Must be one of: {', '.join(self.VALID_TYPES)}"
        )


class BooleanValidator(ConfigValidator):
    """Validates boolean values."""

    TRUE_VALUES = {'true', '1', 'yes', 'on', 'enabled'}
    FALSE_VALUES = {'false', '0', 'no', 'off', 'disabled'}

    def validate(self, value: Any) -> bool:
        # Already a boolean
        if isinstance(value, bool):
            return value

        # Convert string to boolean
        if isinstance(value, str):
            normalized = value.lower().strip()

            if normalized in self.TRUE_VALUES:
                return True

            if normalized in self.FALSE_VALUES:
                return False

            raise ValidationError(
                f"Invalid boolean value: {value}. Expected: true/false, yes/no, 1/0, on/off, enabled/disabled"
            )

        if isinstance(value, int):
            return bool(value)

        raise ValidationError(f"Cannot convert to boolean: {value!r}")


class IntegerValidator(ConfigValidator):
    """Validates integer values with optional min/max bounds."""

    def __init__(self, min_value: int = None, max_value: int = None):
        self.min_value = min_value
        self.max_value = max_value

    def validate(self, value: Any) -> int:
        if isinstance(value, bool):
            raise ValidationError(f"Must be an integer, got: {value}")
        try:
            int_value = int(value)
        except (ValueError, TypeError):
            raise ValidationError(f"Must be an integer, got: {value}")

        if self.min_value is not None and int_value < self.min_value:
            raise ValidationError(
                f"Must be at least {self.min_value}, got: {int_value}"
            )

        if self.max_value is not None and int_value > self.max_value:
            raise ValidationError(
                f"Must be at most {self.max_value}, got: {int_value}"
            )

        return int_value


class StringValidator(ConfigValidator):
    """Validates string values with optional constraints."""

    def __init__(self, min_length: int = 0, max_length: int = None, allow_empty: bool = True):
        self.min_length = min_length
        self.max_length = max_length
        self.allow_empty = allow_empty

    def validate(self, value: Any) -> str:
        if not isinstance(value, str):
            raise ValidationError(f"Must be a string, got: {type(value)}")

        if not self.allow_empty and not value.strip():
            raise ValidationError("Cannot be empty")

        if len(value) < self.min_length:
            raise ValidationError(
                f"Must be at least {self.min_length} characters, got: {len(value)}"
            )

        if self.max_length is not None and len(value) > self.max_length:
            raise ValidationError(
                f"Must be at most {self.max_length} characters, got: {len(value)}"
            )

        return value


class PatternListValidator(ConfigValidator):
    """Validates a list of exclude glob patterns."""

    def validate(self, value: Any) -> List[str]:
        if value is None:
            return []

        if isinstance(value, str):
            # Comma separated, as typed on the command line
            value = [p for p in value.split(',')]

        if not isinstance(value, (list, tuple)):
            raise ValidationError(f"Exclude patterns must be a list, got: {type(value)}")

        patterns = []
        for pattern in value:
            if not isinstance(pattern, str):
                raise ValidationError(f"Exclude pattern must be a string, got: {pattern!r}")
            pattern = pattern.strip()
            if pattern and pattern not in patterns:
                patterns.append(pattern)

        return patterns


# Registry of validators for global settings
VALIDATORS = {
    'log_level': LogLevelValidator(),
    'request_timeout': IntegerValidator(min_value=1, max_value=3600),
}

# Registry of validators for sync configuration records
SYNC_FIELD_VALIDATORS = {
    'name': StringValidator(max_length=200, allow_empty=False),
    'localPath': LocalPathValidator(),
    'webdavUrl': WebDAVUrlValidator(),
    'enabled': BooleanValidator(),
    'syncOnSave': BooleanValidator(),
    'syncOnDelete': BooleanValidator(),
    'syncHidden': BooleanValidator(),
    'debounceMs': IntegerValidator(min_value=0),
    'excludePatterns': PatternListValidator(),
}


def validate_config_value(key: str, value: Any) -> Any:
    """Validate a global configuration value using registered validators.

    Args:
        key: Configuration key
        value: Value to validate

    Returns:
        Validated and normalized value

    Raises:
        ValidationError: If validation fails
    """
    if key in VALIDATORS:
        return VALIDATORS[key].validate(value)

    # Unknown keys pass through unchanged
    return value


def validate_sync_field(key: str, value: Any) -> Any:
    """Validate one field of a sync configuration record.

    Raises:
        ValidationError: If validation fails, with the field name in the message
    """
    validator = SYNC_FIELD_VALIDATORS.get(key)
    if validator is None:
        return value
    try:
        return validator.validate(value)
    except ValidationError as e:
        raise ValidationError(f"{key}: {e}")
