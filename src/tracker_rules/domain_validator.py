"""
Domain normalization for allowlist entries and page hosts.

Converts user-supplied domains to one canonical form (lowercase, no
surrounding whitespace or trailing dot, IDNA-encoded when non-ASCII) so that
set membership in the allowlist is stable.
"""

import re

import idna

from tracker_rules.exceptions import ValidationError


# Control chars, whitespace, and symbols that never appear in a host name
FORBIDDEN_CHARS_PATTERN = re.compile(
    r'[\x00-\x1f\x7f'
    r'\s'
    r'!@#$%^&*()+=\[\]{}|\\:;"\'<>,?/`~]'
)


def normalize_domain(raw_domain: str) -> str:
    """
    Convert a domain to canonical form.

    Args:
        raw_domain: Domain as typed or as taken from a URL host

    Returns:
        Canonical domain

    Raises:
        ValidationError: If the input is empty, contains forbidden
                         characters, or cannot be IDNA-encoded
    """
    if not raw_domain or not raw_domain.strip():
        raise ValidationError(
            code="empty_input",
            message="Domain input is empty",
            details={"raw_input": raw_domain},
        )

    domain = raw_domain.strip().rstrip(".").lower()

    if not domain or FORBIDDEN_CHARS_PATTERN.search(domain):
        raise ValidationError(
            code="forbidden_chars",
            message="Domain contains forbidden characters",
            details={
                "raw_input": raw_domain,
                "forbidden_chars": FORBIDDEN_CHARS_PATTERN.findall(domain),
            },
        )

    if any(ord(c) > 127 for c in domain):
        try:
            domain = idna.encode(domain, uts46=True).decode("ascii")
        except idna.IDNAError as e:
            raise ValidationError(
                code="idna_error",
                message=f"IDNA encoding failed: {e}",
                details={"domain": raw_domain, "idna_error": str(e)},
            )

    return domain
