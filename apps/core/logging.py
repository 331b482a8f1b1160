"""
Custom logging formatters and security event logging.

Provides:
- PIIMasker: masks emails, session tokens and passwords in log output
- JSONFormatter: structured JSON log lines (enabled with JSON_LOGS)
- SanitizingFormatter: plain text formatter that applies the same masking
- RequestContextFilter: stamps request_id / city_slug on every record
- SecurityLogger: centralized security event logging (access denials,
  tampered credentials, failed logins, upstream failures)
"""
import json
import logging
import re
import threading
import traceback
from datetime import datetime, timezone as dt_timezone

from django.utils import timezone
import sentry_sdk


_request_context = threading.local()


def set_request_context(**values):
    """Attach per-request values (request_id, city_slug) to the current thread."""
    for key, value in values.items():
        setattr(_request_context, key, value)


def clear_request_context():
    """Drop all per-request logging context for the current thread."""
    _request_context.__dict__.clear()


class PIIMasker:
    """
    Utility class to mask sensitive data in logs.
    """

    EMAIL_PATTERN = re.compile(r'\b[A-Za-z0-9._%+-]+@[A-Za-z0-9.-]+\.[A-Za-z]{2,}\b')
    JWT_PATTERN = re.compile(r'eyJ[a-zA-Z0-9_\-]+\.eyJ[a-zA-Z0-9_\-]+\.[a-zA-Z0-9_\-]+')
    BEARER_PATTERN = re.compile(r'Bearer\s+([a-zA-Z0-9_\-\.]{20,})', re.IGNORECASE)
    SECRET_PATTERN = re.compile(
        r'(token|secret|password|passwd)["\']?\s*[:=]\s*["\']?([^"\'\s,}]+)',
        re.IGNORECASE
    )

    # Field names whose values are always replaced
    SENSITIVE_FIELDS = {
        'password', 'password_hash', 'passwd',
        'token', 'access_token', 'session', 'credential', 'authorization',
        'secret', 'secret_key', 'jwt_secret_key',
    }

    @classmethod
    def mask_email(cls, text):
        """Mask email addresses in text."""
        if not isinstance(text, str):
            return text

        def mask_email_match(match):
            username, _, domain = match.group(0).partition('@')
            if len(username) > 1:
                username = username[0] + '*' * (len(username) - 1)
            return f"{username}@{domain}"

        return cls.EMAIL_PATTERN.sub(mask_email_match, text)

    @classmethod
    def mask_tokens(cls, text):
        """Mask JWTs, bearer tokens and inline secrets in text."""
        if not isinstance(text, str):
            return text
        text = cls.JWT_PATTERN.sub('[REDACTED_JWT]', text)
        text = cls.BEARER_PATTERN.sub('Bearer [REDACTED]', text)
        return cls.SECRET_PATTERN.sub(r'\1: ********', text)

    @classmethod
    def mask_text(cls, text):
        """Apply all masking patterns to text."""
        if not isinstance(text, str):
            return text
        return cls.mask_email(cls.mask_tokens(text))

    @classmethod
    def mask_dict(cls, data):
        """Recursively mask sensitive data in dictionaries."""
        if not isinstance(data, dict):
            return data

        masked = {}
        for key, value in data.items():
            lowered = key.lower()
            if lowered in cls.SENSITIVE_FIELDS and value and not isinstance(value, (dict, list)):
                masked[key] = '********'
            elif isinstance(value, dict):
                masked[key] = cls.mask_dict(value)
            elif isinstance(value, list):
                masked[key] = [
                    cls.mask_dict(item) if isinstance(item, dict) else cls.mask_text(item)
                    for item in value
                ]
            elif isinstance(value, str):
                masked[key] = cls.mask_text(value)
            else:
                masked[key] = value

        return masked


class RequestContextFilter(logging.Filter):
    """
    Add request_id and city_slug to log records from thread-local storage.
    """

    def filter(self, record):
        if not hasattr(record, 'request_id'):
            request_id = getattr(_request_context, 'request_id', None)
            if request_id:
                record.request_id = request_id

        if not hasattr(record, 'city_slug'):
            city_slug = getattr(_request_context, 'city_slug', None)
            if city_slug:
                record.city_slug = city_slug

        return True


class JSONFormatter(logging.Formatter):
    """
    Format log records as JSON for structured logging.
    Includes request_id and city_slug from extra fields if available.
    Automatically masks emails and tokens.
    """

    RESERVED_ATTRS = {
        'name', 'msg', 'args', 'created', 'filename', 'funcName',
        'levelname', 'levelno', 'lineno', 'module', 'msecs', 'message',
        'pathname', 'process', 'processName', 'relativeCreated',
        'thread', 'threadName', 'exc_info', 'exc_text', 'stack_info',
        'taskName', 'request_id', 'city_slug',
    }

    def format(self, record):
        log_data = {
            'timestamp': datetime.now(dt_timezone.utc).isoformat().replace('+00:00', 'Z'),
            'level': record.levelname,
            'logger': record.name,
            'message': PIIMasker.mask_text(record.getMessage()),
            'module': record.module,
            'function': record.funcName,
            'line': record.lineno,
        }

        if hasattr(record, 'request_id'):
            log_data['request_id'] = record.request_id

        if hasattr(record, 'city_slug'):
            log_data['city_slug'] = record.city_slug

        if record.exc_info and record.exc_info[0] is not None:
            log_data['exception'] = {
                'type': record.exc_info[0].__name__,
                'message': PIIMasker.mask_text(str(record.exc_info[1])),
                'traceback': [PIIMasker.mask_text(line) for line in traceback.format_exception(*record.exc_info)],
            }

        for key, value in record.__dict__.items():
            if key in self.RESERVED_ATTRS or key.startswith('_'):
                continue
            try:
                if isinstance(value, dict):
                    masked_value = PIIMasker.mask_dict(value)
                elif key.lower() in PIIMasker.SENSITIVE_FIELDS and value:
                    masked_value = '********'
                elif isinstance(value, str):
                    masked_value = PIIMasker.mask_text(value)
                else:
                    masked_value = value

                json.dumps(masked_value)
                log_data[key] = masked_value
            except (TypeError, ValueError):
                log_data[key] = PIIMasker.mask_text(str(value))

        return json.dumps(log_data)


class SanitizingFormatter(logging.Formatter):
    """
    Plain-text formatter that masks emails and tokens in the final line.
    """

    def format(self, record):
        return PIIMasker.mask_text(super().format(record))


class SecurityLogger:
    """
    Centralized security event logging.

    All events go to the ``security`` logger with structured context.
    Deny reasons are only ever recorded here, never returned to clients.
    Critical events are also sent to Sentry for alerting.
    """

    CRITICAL_EVENTS = {
        'tampered_credential',
        'upstream_failure',
    }

    @staticmethod
    def log_event(event_type: str, level: str = 'warning', **context):
        """
        Log a security event with structured data.

        Args:
            event_type: Type of security event (e.g., 'access_denied')
            level: Log level ('info', 'warning', 'error', 'critical')
            **context: Additional context (ip_address, user_email, city_slug, ...)

        Example:
            >>> SecurityLogger.log_event(
            ...     'access_denied',
            ...     reason='no_city_access',
            ...     city_slug='rotterdam',
            ... )
        """
        logger = logging.getLogger('security')

        log_data = {
            'event_type': event_type,
            'timestamp': timezone.now().isoformat(),
        }
        log_data.update(context)
        log_data = PIIMasker.mask_dict(log_data)

        log_method = getattr(logger, level, logger.warning)
        log_method(
            f"Security event: {event_type}",
            extra=log_data
        )

        if event_type in SecurityLogger.CRITICAL_EVENTS:
            sentry_sdk.capture_message(
                f"Critical security event: {event_type}",
                level='error',
            )

    @staticmethod
    def log_access_denied(reason: str, action: str, user_id: str = None,
                          city_slug: str = None, path: str = None,
                          ip_address: str = None, request_id: str = None):
        """Log an authorization denial with its machine-readable reason."""
        SecurityLogger.log_event(
            'access_denied',
            level='warning',
            reason=reason,
            action=action,
            user_id=user_id,
            city_slug=city_slug,
            path=path,
            ip_address=ip_address,
            request_id=request_id,
        )

    @staticmethod
    def log_tampered_credential(detail: str, ip_address: str = None,
                                path: str = None, request_id: str = None):
        """
        Log a session credential that failed structural or signature checks.

        Expired or missing credentials are a normal logged-out state and are
        not reported here.
        """
        SecurityLogger.log_event(
            'tampered_credential',
            level='error',
            detail=detail,
            ip_address=ip_address,
            path=path,
            request_id=request_id,
        )

    @staticmethod
    def log_failed_login(email: str, ip_address: str, user_agent: str = None, reason: str = None):
        """Log a failed login attempt."""
        SecurityLogger.log_event(
            'failed_login',
            level='warning',
            email=email,
            ip_address=ip_address,
            user_agent=user_agent,
            reason=reason
        )

    @staticmethod
    def log_rate_limit_exceeded(endpoint: str, ip_address: str, limit: str = None):
        """Log a rate limit violation."""
        SecurityLogger.log_event(
            'rate_limit_exceeded',
            level='warning',
            endpoint=endpoint,
            ip_address=ip_address,
            limit=limit
        )

    @staticmethod
    def log_upstream_failure(store: str, error: str, request_id: str = None):
        """Log a role/membership store failure that forced a fail-closed deny."""
        SecurityLogger.log_event(
            'upstream_failure',
            level='error',
            store=store,
            error=error,
            request_id=request_id,
        )
