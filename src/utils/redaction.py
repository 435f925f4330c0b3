"""Keep retailer credentials and caller details out of logs and error bodies.

Sign-in forms carry whatever the retailer asks for (email, password,
one-time codes), so form values are masked wholesale and only field names
stay readable. Analytics properties are scrubbed by key, and connector
error text is cleaned before it reaches an API response.
"""

import re
from typing import Any, Mapping

MASK = "***"

# Property keys (lowercased substrings) whose values never reach a log line
_SECRET_KEY_PARTS = (
    "password", "passcode", "otp", "token", "cookie", "credential",
    "location", "client_ip",
)

_EMAIL = re.compile(r"([A-Za-z0-9._%+-])[A-Za-z0-9._%+-]*@([A-Za-z0-9.-]+\.[A-Za-z]{2,})")

# password=..., "token": "...", Authorization: Bearer ...
_SECRET_PAIR = re.compile(
    r"(?i)(?:authorization\s*:\s*bearer\s+\S+"
    r"|\"(?:password|passcode|otp|token|cookie)\"\s*:\s*\"[^\"]*\""
    r"|\b(?:password|passcode|otp|token|cookie)\s*[=:]\s*\S+)"
)

_TAG = re.compile(r"<[^>]+>")
_WHITESPACE = re.compile(r"\s+")


def mask_email(value: str) -> str:
    """``jane@example.com`` -> ``j***@example.com``."""
    return _EMAIL.sub(lambda m: f"{m.group(1)}{MASK}@{m.group(2)}", value)


def mask_form_values(values: Mapping[str, str]) -> dict[str, str]:
    """Copy of a sign-in form with every value hidden.

    Email fields keep their domain so support can tell accounts apart;
    everything else becomes ``***``. Empty values stay empty.
    """
    masked = {}
    for name, value in values.items():
        if not value:
            masked[name] = value
        elif "@" in value:
            masked[name] = mask_email(value)
        else:
            masked[name] = MASK
    return masked


def _is_secret_key(key: str) -> bool:
    key = key.lower()
    return any(part in key for part in _SECRET_KEY_PARTS)


def scrub_properties(properties: Mapping[str, Any]) -> dict[str, Any]:
    """Copy of analytics properties safe to log.

    Secret-looking keys are masked at any depth; email addresses inside
    string values are partially masked.
    """
    scrubbed: dict[str, Any] = {}
    for key, value in properties.items():
        if _is_secret_key(str(key)):
            scrubbed[key] = MASK
        elif isinstance(value, Mapping):
            scrubbed[key] = scrub_properties(value)
        elif isinstance(value, str):
            scrubbed[key] = mask_email(value)
        else:
            scrubbed[key] = value
    return scrubbed


def sanitize_error_message(msg: str | None, max_length: int = 500) -> str | None:
    """Clean connector or sign-in error text for an API error body.

    Failed sign-in pages come back as HTML, so markup is stripped and
    whitespace collapsed before credentials and emails are masked.
    The result is truncated to ``max_length``.
    """
    if msg is None:
        return None
    text = _WHITESPACE.sub(" ", _TAG.sub(" ", msg)).strip()
    text = mask_email(_SECRET_PAIR.sub(MASK, text))
    if len(text) > max_length:
        text = text[:max_length - 3] + "..."
    return text
