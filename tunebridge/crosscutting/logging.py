import json
import logging
import re
import sys
from datetime import datetime, timezone
from typing import Dict, Any, Optional
from contextvars import ContextVar

# Context variables for correlation
transfer_id_var: ContextVar[Optional[str]] = ContextVar('transfer_id', default=None)
playlist_id_var: ContextVar[Optional[str]] = ContextVar('playlist_id', default=None)
phase_var: ContextVar[Optional[str]] = ContextVar('phase', default=None)
provider_var: ContextVar[Optional[str]] = ContextVar('provider', default=None)

_CONTEXT_VARS = {
    'transfer_id': (transfer_id_var, 'transferId'),
    'playlist_id': (playlist_id_var, 'playlistId'),
    'phase': (phase_var, 'phase'),
    'provider': (provider_var, 'provider'),
}


class SecretMasker:
    """Masks sensitive information in log messages."""

    def __init__(self):
        """Initialize secret masker with patterns."""
        self.patterns = [
            # API tokens and keys
            r'(?i)(token|key|secret|password|auth)[\s]*[:=][\s]*["\']?([a-zA-Z0-9\-_\.]{10,})["\']?',
            # Access / refresh tokens of any provider
            r'(?i)(access_token|refresh_token|music_user_token)[\s]*[:=][\s]*["\']?([a-zA-Z0-9\-_\.]{20,})["\']?',
            # Client secrets
            r'(?i)(client_secret)[\s]*[:=][\s]*["\']?([a-zA-Z0-9\-_\.]{20,})["\']?',
            # Bearer credentials
            r'(?i)(bearer)[\s]+["\']?([a-zA-Z0-9\-_\.]{20,})["\']?',
            # OAuth codes
            r'(?i)(code|authorization_code)[\s]*[:=][\s]*["\']?([a-zA-Z0-9\-_\.]{20,})["\']?',
        ]

        self.compiled_patterns = [re.compile(pattern) for pattern in self.patterns]

    @staticmethod
    def _mask_value(secret: str) -> str:
        # Keep first 4 and last 4 characters, mask the rest
        if len(secret) > 8:
            return secret[:4] + '*' * (len(secret) - 8) + secret[-4:]
        return '*' * len(secret)

    def mask_secrets(self, text: str) -> str:
        """Mask sensitive information in text."""
        if not text:
            return text

        masked_text = text

        for pattern in self.compiled_patterns:
            def replace_match(match):
                prefix = match.group(1)
                secret = match.group(2)
                if prefix.lower() == 'bearer':
                    return f"{prefix} {self._mask_value(secret)}"
                return f"{prefix}: {self._mask_value(secret)}"

            masked_text = pattern.sub(replace_match, masked_text)

        return masked_text

    def mask_dict(self, data: Dict[str, Any]) -> Dict[str, Any]:
        """Mask sensitive information in dictionary.

        Values under keys that name a credential are masked outright.
        """
        if not data:
            return data

        masked_data = {}

        for key, value in data.items():
            if isinstance(value, str) and self._is_secret_key(key):
                masked_data[key] = self._mask_value(value)
            elif isinstance(value, str):
                masked_data[key] = self.mask_secrets(value)
            elif isinstance(value, dict):
                masked_data[key] = self.mask_dict(value)
            elif isinstance(value, list):
                masked_data[key] = [self.mask_dict(item) if isinstance(item, dict)
                                    else self.mask_secrets(item) if isinstance(item, str)
                                    else item for item in value]
            else:
                masked_data[key] = value

        return masked_data

    @staticmethod
    def _is_secret_key(key: str) -> bool:
        lowered = key.lower()
        return any(marker in lowered for marker in ('token', 'secret', 'password', 'authorization'))


class StructuredFormatter(logging.Formatter):
    """JSON formatter for structured logging."""

    def __init__(self):
        """Initialize formatter."""
        super().__init__()
        self.masker = SecretMasker()

    def format(self, record: logging.LogRecord) -> str:
        """Format log record as JSON."""
        log_entry = {
            'ts': datetime.now(timezone.utc).isoformat().replace('+00:00', 'Z'),
            'level': record.levelname,
            'logger': record.name,
            'message': self.mask_secrets(record.getMessage()),
            'module': record.module,
            'function': record.funcName,
            'line': record.lineno
        }

        # Add correlation fields if available
        for var, json_key in _CONTEXT_VARS.values():
            value = var.get()
            if value:
                log_entry[json_key] = value

        if record.exc_info:
            log_entry['exception'] = self.formatException(record.exc_info)

        fields = getattr(record, 'fields', None)
        if fields:
            log_entry['fields'] = self.masker.mask_dict(fields)

        return json.dumps(log_entry, ensure_ascii=False, default=str)

    def mask_secrets(self, text: str) -> str:
        """Mask secrets in text."""
        return self.masker.mask_secrets(text)


class CorrelationContext:
    """Context manager for correlation data."""

    def __init__(self, transfer_id: Optional[str] = None,
                 playlist_id: Optional[str] = None,
                 phase: Optional[str] = None,
                 provider: Optional[str] = None):
        """Initialize correlation context."""
        self.values = {
            'transfer_id': transfer_id,
            'playlist_id': playlist_id,
            'phase': phase,
            'provider': provider,
        }
        self._tokens = {}

    def __enter__(self):
        """Set correlation context."""
        for name, value in self.values.items():
            if value is not None:
                var, _ = _CONTEXT_VARS[name]
                self._tokens[name] = var.set(value)
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        """Restore correlation context."""
        for name, token in self._tokens.items():
            var, _ = _CONTEXT_VARS[name]
            var.reset(token)
        self._tokens = {}


def setup_logging(level: str = 'INFO', log_file: Optional[str] = None) -> logging.Logger:
    """Setup logging for the ``tunebridge`` logger hierarchy."""
    logger = logging.getLogger('tunebridge')
    logger.setLevel(getattr(logging, level.upper()))

    # Clear existing handlers
    logger.handlers.clear()

    formatter = StructuredFormatter()

    console_handler = logging.StreamHandler(sys.stderr)
    console_handler.setFormatter(formatter)
    logger.addHandler(console_handler)

    if log_file:
        file_handler = logging.FileHandler(log_file)
        file_handler.setFormatter(formatter)
        logger.addHandler(file_handler)

    return logger


def log_with_fields(logger: logging.Logger, level: str, message: str,
                    fields: Optional[Dict[str, Any]] = None,
                    exc_info: bool = False, **kwargs):
    """Log message with additional fields."""
    merged = dict(fields or {})
    merged.update(kwargs)
    logger.log(
        getattr(logging, level.upper()),
        message,
        exc_info=exc_info,
        extra={'fields': merged} if merged else None,
        stacklevel=2,
    )


# Convenience functions for common logging patterns
def log_transfer_start(logger: logging.Logger, source_provider: str, target_provider: str,
                       playlist_id: str, **kwargs):
    """Log transfer start."""
    log_with_fields(logger, 'INFO', 'Transfer started', {
        'source_provider': source_provider,
        'target_provider': target_provider,
        'playlist_id': playlist_id,
        **kwargs
    })


def log_phase(logger: logging.Logger, phase: str, message: str, **kwargs):
    """Log a phase transition."""
    with CorrelationContext(phase=phase):
        log_with_fields(logger, 'INFO', message, kwargs)


def log_transfer_complete(logger: logging.Logger, total_tracks: int, matched: int,
                          unmatched: int, added: int, failed: int, **kwargs):
    """Log transfer completion."""
    with CorrelationContext(phase='complete'):
        log_with_fields(logger, 'INFO', 'Transfer completed', {
            'total_tracks': total_tracks,
            'matched': matched,
            'unmatched': unmatched,
            'added': added,
            'failed': failed,
            **kwargs
        })


def log_error(logger: logging.Logger, message: str, error: Exception, **kwargs):
    """Log error with exception details."""
    log_with_fields(logger, 'ERROR', message, {
        'error_type': type(error).__name__,
        'error_message': str(error),
        **kwargs
    })
