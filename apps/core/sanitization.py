"""
Input sanitization utilities for preventing XSS in stored content.

Provides functions to sanitize user inputs before storage and display.
Serializers call these on every free-text field.
"""
import re
from typing import Optional


VALIDATION_LIMITS = {
    'ENDONYM_MAX_LENGTH': 255,
    'NAME_MAX_LENGTH': 255,
    'DESCRIPTION_MAX_LENGTH': 5000,
    'SLUG_MAX_LENGTH': 100,
    'EMAIL_MAX_LENGTH': 255,
}

SCRIPT_TAG_PATTERN = re.compile(r'<script\b[^<]*(?:(?!</script>)<[^<]*)*</script>', re.IGNORECASE)
JAVASCRIPT_PROTOCOL_PATTERN = re.compile(r'javascript:', re.IGNORECASE)
EVENT_HANDLER_PATTERN = re.compile(r'on\w+=', re.IGNORECASE)
EMAIL_PATTERN = re.compile(r'[^\s@]+@[^\s@]+\.[^\s@]+')
UUID_PATTERN = re.compile(
    r'[0-9a-f]{8}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{12}'
)


def sanitize_text(text: Optional[str], max_length: int = VALIDATION_LIMITS['NAME_MAX_LENGTH']) -> str:
    """
    Sanitize short text input by removing potentially dangerous characters
    and enforcing length limits.

    Examples:
        >>> sanitize_text('  <b>Amsterdam</b>  ')
        'bAmsterdam/b'
        >>> sanitize_text('x onclick=alert(1)')
        'x alert(1)'
    """
    if not text:
        return ''

    text = text.strip()
    text = text.replace('<', '').replace('>', '')
    text = JAVASCRIPT_PROTOCOL_PATTERN.sub('', text)
    text = EVENT_HANDLER_PATTERN.sub('', text)
    return text[:max_length]


def sanitize_description(text: Optional[str]) -> str:
    """
    Sanitize long text: allows markup but strips script tags,
    javascript: URLs and inline event handlers.
    """
    if not text:
        return ''

    text = text.strip()
    text = SCRIPT_TAG_PATTERN.sub('', text)
    text = JAVASCRIPT_PROTOCOL_PATTERN.sub('', text)
    text = EVENT_HANDLER_PATTERN.sub('', text)
    return text[:VALIDATION_LIMITS['DESCRIPTION_MAX_LENGTH']]


def sanitize_slug(slug: Optional[str]) -> str:
    """
    Normalize free text into a slug of lowercase letters, numbers and hyphens.

    Examples:
        >>> sanitize_slug(' Oud-West!! ')
        'oud-west'
    """
    if not slug:
        return ''

    slug = slug.lower().strip()
    slug = re.sub(r'[^a-z0-9-]', '', slug)
    slug = re.sub(r'-+', '-', slug)
    slug = slug.strip('-')
    return slug[:VALIDATION_LIMITS['SLUG_MAX_LENGTH']]


def sanitize_email(email: Optional[str]) -> str:
    """Lower-case and trim an email; returns '' when the format is invalid."""
    if not email:
        return ''

    sanitized = email.lower().strip()[:VALIDATION_LIMITS['EMAIL_MAX_LENGTH']]
    return sanitized if EMAIL_PATTERN.fullmatch(sanitized) else ''


def sanitize_uuid(value: Optional[str]) -> Optional[str]:
    """Return the lower-cased UUID string, or None if value is not a UUID."""
    if not value:
        return None

    sanitized = value.strip().lower()
    return sanitized if UUID_PATTERN.fullmatch(sanitized) else None

