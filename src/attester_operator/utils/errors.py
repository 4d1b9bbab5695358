"""Error taxonomy and sanitization utilities to prevent information leakage."""

import re
from typing import Any


class AttesterError(Exception):
    """Base class for all errors raised by the Attester Operator."""


class NotFoundError(AttesterError):
    """The requested resource or secret does not exist."""


class AlreadyExistsError(AttesterError):
    """The object being created already exists."""


class TransientStoreError(AttesterError):
    """A load or persist call against the resource or secret store failed."""


class CompileError(AttesterError):
    """The policy source could not be compiled."""


class ParseError(AttesterError):
    """Stored key material could not be turned into a signer."""


class SecretCreationError(AttesterError):
    """New key material could not be generated or stored."""


class BestEffortError(AttesterError):
    """A cleanup step failed; logged and not retried."""


class ConditionsNotInitializedError(AttesterError):
    """Conditions were accessed before both slots were initialized."""


class PolicyViolationError(AttesterError):
    """The policy reported violations for an attestation request."""

    def __init__(self, attester: str, violations: list[Any]):
        self.attester = attester
        self.violations = violations
        super().__init__(f"Attester {attester} found {len(violations)} policy violation(s)")


# Patterns that might expose sensitive information
SENSITIVE_PATTERNS = [
    r"secret[_\s]?name[:\s]+([a-zA-Z0-9\-_\.]+)",
    r"pgp[_\s]?secret[:\s]+([a-zA-Z0-9\-_\.]+)",
    r"namespace[:\s]+([a-zA-Z0-9\-_]+)",
]

# Armored key blocks are removed wholesale
PEM_BLOCK_PATTERN = re.compile(
    r"-----BEGIN ([A-Z0-9 ]+)-----.*?-----END \1-----",
    flags=re.DOTALL,
)

# Fields to redact completely
SENSITIVE_FIELDS = {
    "private_key",
    "key_material",
    "password",
    "passphrase",
    "token",
}


def sanitize_error_message(message: str) -> str:
    """Sanitize error message to remove sensitive information.

    Args:
        message: Original error message

    Returns:
        Sanitized error message with sensitive data redacted
    """
    sanitized = PEM_BLOCK_PATTERN.sub(r"[REDACTED \1]", message)

    for pattern in SENSITIVE_PATTERNS:
        sanitized = re.sub(pattern, r"\1 [REDACTED]", sanitized, flags=re.IGNORECASE)

    for field in SENSITIVE_FIELDS:
        sanitized = re.sub(
            rf"\b{field}[:=\s]+([^\s,;\)]+)",
            rf"{field}: [REDACTED]",
            sanitized,
            flags=re.IGNORECASE,
        )

    return sanitized


def sanitize_exception(error: Exception) -> str:
    """Sanitize exception message.

    Args:
        error: Exception object

    Returns:
        Sanitized error message
    """
    return sanitize_error_message(str(error))


def sanitize_dict(data: dict[str, Any], sensitive_keys: set[str] | None = None) -> dict[str, Any]:
    """Sanitize dictionary by redacting sensitive fields.

    Args:
        data: Dictionary to sanitize
        sensitive_keys: Additional keys to redact (merged with SENSITIVE_FIELDS)

    Returns:
        Sanitized dictionary with sensitive values redacted
    """
    all_sensitive = SENSITIVE_FIELDS | (sensitive_keys or set())
    sanitized: dict[str, Any] = {}

    for key, value in data.items():
        if key.lower() in all_sensitive:
            sanitized[key] = "[REDACTED]"
        elif isinstance(value, dict):
            sanitized[key] = sanitize_dict(value, sensitive_keys)
        elif isinstance(value, str):
            sanitized[key] = sanitize_error_message(value)
        else:
            sanitized[key] = value

    return sanitized
