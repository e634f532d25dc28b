"""Secret redaction for daemon and client logs."""

import logging
import re

# Environment variable names whose values are treated as secrets
_SECRET_NAME_PATTERN = re.compile(r"TOKEN|SECRET|PASSWORD|PASSWD|API_KEY|CREDENTIAL", re.IGNORECASE)

_MIN_SECRET_LENGTH = 8  # skip short values to avoid false positives

_secret_values: set[str] = set()

# Lazy-initialized module cache, reset whenever a new secret is registered
_patterns: list[re.Pattern] | None = None


def is_secret_name(name: str) -> bool:
    return bool(_SECRET_NAME_PATTERN.search(name))


def register_secrets(environment: dict[str, str]) -> None:
    """Remember values of secret-looking variables so logs never show them."""
    global _patterns
    added = False
    for name, value in environment.items():
        if is_secret_name(name) and len(value) >= _MIN_SECRET_LENGTH and value not in _secret_values:
            _secret_values.add(value)
            added = True
    if added:
        _patterns = None


def redact_environment(environment: dict[str, str]) -> dict[str, str]:
    """Copy of an environment mapping with secret values replaced by '***'."""
    return {k: "***" if is_secret_name(k) else v for k, v in environment.items()}


def _build_patterns(values: set[str]) -> list[re.Pattern]:
    # Sort by length descending so longer values match first
    return [re.compile(re.escape(v)) for v in sorted(values, key=len, reverse=True)]


def _get_patterns() -> list[re.Pattern]:
    global _patterns
    if _patterns is None:
        _patterns = _build_patterns(_secret_values)
    return _patterns


def redact_secrets(text: str) -> str:
    """Replace registered secret values with '***'."""
    return _apply(text, _get_patterns())


def _apply(text: str, patterns: list[re.Pattern]) -> str:
    for p in patterns:
        text = p.sub("***", text)
    return text


class SecretRedactingFilter(logging.Filter):
    """Logging filter that replaces secret values in log records with '***'.

    Attaches to the root logger so all handlers benefit.
    Handles both f-string messages (msg is pre-formatted) and
    %-style messages (msg + args).
    """

    def filter(self, record: logging.LogRecord) -> bool:
        patterns = _get_patterns()
        if patterns:
            record.msg = _apply(str(record.msg), patterns)
            if record.args:
                if isinstance(record.args, dict):
                    record.args = {k: _apply(v, patterns) if isinstance(v, str) else v for k, v in record.args.items()}
                elif isinstance(record.args, tuple):
                    record.args = tuple(_apply(a, patterns) if isinstance(a, str) else a for a in record.args)
        return True
