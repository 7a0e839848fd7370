"""
Secret detection and redaction.

Passwords, government IDs, card numbers, API keys, bearer tokens and private
keys must never reach the record store. Secrets are replaced with a
placeholder; a candidate whose content is nothing but secrets (and the
labels around them) is dropped.
"""

import logging
import re
from dataclasses import dataclass, field
from typing import Callable, List, Tuple, Union

logger = logging.getLogger(__name__)

REDACTED = "[REDACTED]"

Replacement = Union[str, Callable[[re.Match], str]]


def _keep_label(match: re.Match) -> str:
    return f"{match.group(1)}{REDACTED}"


def _luhn_valid(digits: str) -> bool:
    total = 0
    for i, char in enumerate(reversed(digits)):
        value = int(char)
        if i % 2 == 1:
            value *= 2
            if value > 9:
                value -= 9
        total += value
    return total % 10 == 0


def _card_number(match: re.Match) -> str:
    digits = re.sub(r"\D", "", match.group(0))
    if 13 <= len(digits) <= 19 and _luhn_valid(digits):
        return REDACTED
    return match.group(0)


# (kind, pattern, replacement)
SECRET_PATTERNS: List[Tuple[str, re.Pattern, Replacement]] = [
    (
        "private_key",
        re.compile(
            r"-----BEGIN [A-Z ]*PRIVATE KEY-----[\s\S]*?(?:-----END [A-Z ]*PRIVATE KEY-----|$)"
        ),
        REDACTED,
    ),
    (
        "bearer_token",
        re.compile(r"\bBearer\s+[A-Za-z0-9\-._~+/]{16,}=*", re.IGNORECASE),
        REDACTED,
    ),
    (
        "api_key",
        re.compile(
            r"\b(?:sk-[A-Za-z0-9_\-]{16,}|AKIA[0-9A-Z]{16}|gh[pousr]_[A-Za-z0-9]{20,}"
            r"|xox[abpr]-[A-Za-z0-9\-]{10,}|AIza[0-9A-Za-z_\-]{35})\b"
        ),
        REDACTED,
    ),
    (
        "password",
        re.compile(
            r"(\b(?:password|passcode|passwd|pwd|pin|api[ _-]?key|secret|token)\b"
            r"(?:\s+(?:is|was)\s+|\s*[:=]\s*))(?!\[REDACTED\])\S+",
            re.IGNORECASE,
        ),
        _keep_label,
    ),
    (
        "ssn",
        re.compile(r"\b\d{3}-\d{2}-\d{4}\b"),
        REDACTED,
    ),
    (
        "card_number",
        re.compile(r"\b(?:\d[ -]?){12,18}\d\b"),
        _card_number,
    ),
]

# Words that only describe a secret and carry no knowledge on their own
LABEL_WORDS = {
    "my", "the", "a", "an", "is", "was", "for", "of", "to", "and", "our", "his", "her",
    "their", "new", "old", "password", "passcode", "passwd", "pwd", "pin", "ssn",
    "social", "security", "number", "card", "credit", "debit", "api", "key", "keys",
    "token", "bearer", "secret", "private", "account", "login",
}


@dataclass
class RedactionResult:
    text: str
    kinds: List[str] = field(default_factory=list)

    @property
    def redacted(self) -> bool:
        return bool(self.kinds)

    @property
    def only_secrets(self) -> bool:
        """True when nothing meaningful is left once secrets and their labels are removed."""
        if not self.redacted:
            return False
        remainder = self.text.replace(REDACTED, " ").lower()
        words = re.findall(r"[a-z0-9']+", remainder)
        return all(word in LABEL_WORDS for word in words)


def redact_secrets(text: str) -> RedactionResult:
    """
    Replace secret-like values in text with a placeholder.

    Args:
        text: Text that may contain secrets

    Returns:
        RedactionResult with the redacted text and the kinds of secret found
    """
    if not text:
        return RedactionResult(text=text or "")

    kinds = []
    for kind, pattern, replacement in SECRET_PATTERNS:
        new_text = pattern.sub(replacement, text)
        if new_text != text:
            kinds.append(kind)
            text = new_text

    if kinds:
        logger.info(f"Redacted secrets from content: {kinds}")

    return RedactionResult(text=text, kinds=kinds)


def contains_secret(text: str) -> bool:
    return redact_secrets(text).redacted
