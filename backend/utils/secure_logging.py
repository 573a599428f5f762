"""
Secure logging utilities for location data and provider credentials.

Route and shelter requests carry the user's position, and provider calls carry
API keys in headers or query strings. Neither should reach log files verbatim.

Usage:
    from utils.secure_logging import redact_pii, mask_secret, describe_coordinate

    logger.info(redact_pii(f"Route request from {lat}, {lon}"))
    # Output: "Route request from [COORD_REDACTED], [COORD_REDACTED]"

    logger.info(f"Shelter provider key configured: {mask_secret(api_key)}")
    # Output: "Shelter provider key configured: abcd…(64 chars)"
"""

import re
from typing import Optional

# Keys that must never be logged with their values
SENSITIVE_KEYS = (
    'appkey', 'servicekey', 'api_key', 'apikey', 'secret', 'token', 'password',
    'phone', 'email'
)


def redact_pii(text: str) -> str:
    """
    Redact personally identifiable information from log messages.

    Redacts:
    - Credential query values (serviceKey=, appKey=, ...) → [REDACTED]
    - Precise coordinates (4+ decimal places) → [COORD_REDACTED]
    - Email addresses → [EMAIL_REDACTED]
    - Phone numbers (KR and US formats) → [PHONE_REDACTED]

    Examples:
        >>> redact_pii("Location: 36.080512, 129.404033")
        'Location: [COORD_REDACTED], [COORD_REDACTED]'

        >>> redact_pii("Shelter contact 054-270-8282")
        'Shelter contact [PHONE_REDACTED]'

        >>> redact_pii("401 for url: https://apis.data.go.kr/x?serviceKey=abc123&pageNo=1")
        '401 for url: https://apis.data.go.kr/x?serviceKey=[REDACTED]&pageNo=1'
    """
    if not text:
        return text

    text = re.sub(
        r'(?i)\b(servicekey|appkey|api_?key|token)=[^&\s]*',
        r'\1=[REDACTED]',
        text
    )

    text = re.sub(
        r'\b[A-Za-z0-9._%+-]+@[A-Za-z0-9.-]+\.[A-Za-z]{2,}\b',
        '[EMAIL_REDACTED]',
        text
    )

    # 4+ decimals is building-level precision; 1-3 decimals is kept for debugging
    text = re.sub(
        r'-?\d{1,3}\.\d{4,}',
        '[COORD_REDACTED]',
        text
    )

    text = re.sub(
        r'\b0\d{1,2}[-.\s]?\d{3,4}[-.\s]?\d{4}\b',
        '[PHONE_REDACTED]',
        text
    )
    text = re.sub(
        r'\(?\b\d{3}\)?[-.\s]?\d{3}[-.\s]?\d{4}\b',
        '[PHONE_REDACTED]',
        text
    )

    return text


def describe_coordinate(lat: Optional[float], lon: Optional[float], precision: int = 2) -> str:
    """
    Render a coordinate at neighborhood precision (~1.1 km at 2 decimals).

    Examples:
        >>> describe_coordinate(36.080512, 129.404033)
        '(36.08, 129.40)'

        >>> describe_coordinate(None, None)
        '([REDACTED])'
    """
    if lat is None or lon is None:
        return '([REDACTED])'

    return f"({lat:.{precision}f}, {lon:.{precision}f})"


def mask_secret(secret: Optional[str], visible: int = 4) -> str:
    """
    Mask an API key, keeping only a short prefix and its length.

    Examples:
        >>> mask_secret("l7xx1234567890abcdef")
        'l7xx…(20 chars)'

        >>> mask_secret(None)
        '[NOT SET]'
    """
    if not secret:
        return '[NOT SET]'

    return f"{secret[:visible]}…({len(secret)} chars)"


def safe_log_dict(data: dict) -> dict:
    """
    Copy of a request/params dictionary with credentials and contact data masked.

    Examples:
        >>> safe_log_dict({'serviceKey': 'abc123', 'pageNo': '1'})
        {'serviceKey': '[REDACTED]', 'pageNo': '1'}
    """
    safe_data = {}
    for key, value in data.items():
        if any(sensitive in key.lower() for sensitive in SENSITIVE_KEYS):
            safe_data[key] = '[REDACTED]'
        elif isinstance(value, dict):
            safe_data[key] = safe_log_dict(value)
        else:
            safe_data[key] = value

    return safe_data
