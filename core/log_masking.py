"""
Log masking processor to prevent key material from appearing in logs.
WireGuard configs carry private and preshared keys; the control API carries an API key.
"""

import re
from typing import Any, Dict


MASK = "***MASKED***"

# Patterns for sensitive data
SENSITIVE_PATTERNS = [
    # WireGuard config lines
    (r'(?i)(privatekey\s*=\s*)(\S+)', r'\1' + MASK),
    (r'(?i)(presharedkey\s*=\s*)(\S+)', r'\1' + MASK),

    # API keys
    (r'(?i)(api[_-]?key["\']?\s*[:=]\s*["\']?)([^"\'\s,}]+)', r'\1' + MASK),
    (r'(?i)(x-api-key["\']?\s*[:=]\s*["\']?)([^"\'\s,}]+)', r'\1' + MASK),

    # Tokens and secrets
    (r'(?i)(token["\']?\s*[:=]\s*["\']?)([^"\'\s,}]+)', r'\1' + MASK),
    (r'(?i)(secret["\']?\s*[:=]\s*["\']?)([^"\'\s,}]+)', r'\1' + MASK),
]

# Keys that should be masked in dictionaries
SENSITIVE_KEYS = [
    'private_key', 'privatekey', 'preshared_key', 'presharedkey',
    'api_key', 'apikey', 'x_api_key',
    'token', 'secret', 'password',
]


def _normalize(key: str) -> str:
    return key.lower().replace('_', '').replace('-', '')


_SENSITIVE_NORMALIZED = [_normalize(k) for k in SENSITIVE_KEYS]


def mask_string(text: str) -> str:
    """
    Mask sensitive data in a string.

    Args:
        text: Text to mask

    Returns:
        Masked text
    """
    if not isinstance(text, str):
        return text

    masked = text
    for pattern, replacement in SENSITIVE_PATTERNS:
        masked = re.sub(pattern, replacement, masked)

    return masked


def mask_dict(data: Dict[str, Any]) -> Dict[str, Any]:
    """
    Mask sensitive data in a dictionary.

    Args:
        data: Dictionary to mask

    Returns:
        Masked dictionary
    """
    if not isinstance(data, dict):
        return data

    masked = {}
    for key, value in data.items():
        key_norm = _normalize(str(key))
        if any(sensitive in key_norm for sensitive in _SENSITIVE_NORMALIZED):
            masked[key] = mask_dict(value) if isinstance(value, dict) else MASK
        else:
            masked[key] = mask_log_data(value)

    return masked


def mask_log_data(data: Any) -> Any:
    """
    Mask sensitive data in log data (handles dict, list, str, or other types).

    Args:
        data: Data to mask

    Returns:
        Masked data
    """
    if isinstance(data, dict):
        return mask_dict(data)
    elif isinstance(data, (list, tuple)):
        return [mask_log_data(item) for item in data]
    elif isinstance(data, str):
        return mask_string(data)
    else:
        return data
