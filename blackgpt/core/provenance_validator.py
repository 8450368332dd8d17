"""
Provenance Validator

Gates signal content and provenance tags before anything is persisted.
Hard rejections cover illicit sources and content; softer keywords only
flag the signal for human review.

Pure functions: no logging, no I/O. Callers log and count rejections.
"""

import re
from dataclasses import dataclass
from typing import Iterable, Optional

from blackgpt.models.signals import SourceType

ALLOWED_PROVENANCE_TAGS = frozenset({
    'reddit:public',
    'twitter:api',
    'news:licensed',
    'blockchain:public',
    'exchange:api',
    'manual:human-upload',
    'research:licensed',
    'telegram:public',
    'stackexchange:api',
    'coingecko:api',
    'etherscan:api',
    'newsapi:licensed',
})

ALLOWED_SOURCE_TYPES = frozenset(source.value for source in SourceType)

# Disallowed patterns that trigger immediate rejection
DISALLOWED_PATTERNS = [
    re.compile(r'\.onion\b', re.IGNORECASE),
    re.compile(r'tor://', re.IGNORECASE),
    re.compile(r'\btor\b', re.IGNORECASE),
    re.compile(r'\bdark\s*web\b', re.IGNORECASE),
    re.compile(r'\bdarknet\b', re.IGNORECASE),
    re.compile(r'\bsilk\s*road\b', re.IGNORECASE),
    re.compile(r'\balphabay\b', re.IGNORECASE),
    re.compile(r'\bdream\s*market\b', re.IGNORECASE),
    re.compile(r'\billegal\b', re.IGNORECASE),
    re.compile(r'\billicit\s*market(place)?\b', re.IGNORECASE),
    re.compile(r'\bexploit', re.IGNORECASE),
    re.compile(r'\bhack', re.IGNORECASE),
    re.compile(r'\bstolen\b', re.IGNORECASE),
    re.compile(r'\bleaked\b', re.IGNORECASE),
    re.compile(r'\bpirated\b', re.IGNORECASE),
    re.compile(r'\bransomware\b', re.IGNORECASE),
    re.compile(r'\bmalware\s*distribution\b', re.IGNORECASE),
    re.compile(r'\bcredit\s*card\s*fraud\b', re.IGNORECASE),
    re.compile(r'\bweapons?\s*market\b', re.IGNORECASE),
    re.compile(r'\bdrugs?\s*market\b', re.IGNORECASE),
]

# Suspicious keywords that require extra review but are not rejected
SOFT_FLAG_KEYWORDS = [
    'underground',
    'black market',
    'anonymous',
    'untraceable',
    'contraband',
    'prohibited',
]

@dataclass(frozen=True)
class ValidationResult:
    """Outcome of a provenance check."""
    is_valid: bool
    flagged: bool = False
    reason: Optional[str] = None
    matched: Optional[str] = None

def find_disallowed_pattern(text: str) -> Optional[str]:
    """Return the source of the first disallowed pattern found in text."""
    for pattern in DISALLOWED_PATTERNS:
        if pattern.search(text):
            return pattern.pattern
    return None

def find_soft_flag(text: str) -> Optional[str]:
    """Return the first suspicious keyword found in text."""
    lowered = text.lower()
    for keyword in SOFT_FLAG_KEYWORDS:
        if keyword in lowered:
            return keyword
    return None

def validate(tags: Iterable[str], source_type, text: str) -> ValidationResult:
    """
    Validate provenance tags, source type and content.

    Args:
        tags: Provenance tags; must be non-empty and all allow-listed
        source_type: SourceType member or its string value
        text: Gist text

    Returns:
        ValidationResult; flagged=True marks valid content needing review
    """
    tags = list(tags or [])

    if not tags:
        return ValidationResult(False, reason="At least one provenance tag is required.")

    unknown = sorted({tag for tag in tags if tag not in ALLOWED_PROVENANCE_TAGS})
    if unknown:
        return ValidationResult(
            False,
            reason=f"Provenance tag(s) not in the allowed list: {', '.join(unknown)}",
        )

    source_value = source_type.value if isinstance(source_type, SourceType) else source_type
    if source_value not in ALLOWED_SOURCE_TYPES:
        return ValidationResult(
            False,
            reason=f"Source type '{source_value}' is not in the allowed list.",
        )

    all_text = ' '.join(tags + [text or ''])

    matched = find_disallowed_pattern(all_text)
    if matched:
        return ValidationResult(
            False,
            reason="Content contains disallowed patterns. This incident has been logged.",
            matched=matched,
        )

    keyword = find_soft_flag(all_text)
    if keyword:
        return ValidationResult(
            True,
            flagged=True,
            reason=f"Suspicious keyword '{keyword}' requires review.",
            matched=keyword,
        )

    return ValidationResult(True)

class ProvenanceValidator:
    """Injectable wrapper around validate() for the lifecycle manager."""

    def validate(self, tags: Iterable[str], source_type, text: str) -> ValidationResult:
        return validate(tags, source_type, text)
