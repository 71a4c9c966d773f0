# app/utils/security.py
"""
Token generation and input validation for the public, link-based flows
(payment links, onboarding links, signature uploads).
"""

import secrets
from typing import Optional
from urllib.parse import urlparse

# Allowed URL schemes for uploaded signature images
ALLOWED_SIGNATURE_SCHEMES = {"https"}

TOKEN_BYTES = 32


def generate_link_token() -> str:
    """URL-safe single-use token (43 chars) for emailed links."""
    return secrets.token_urlsafe(TOKEN_BYTES)


def validate_signature_url(url: Optional[str]) -> Optional[str]:
    """
    Returns the URL if acceptable, None if empty. Raises ValueError for
    anything that is not an absolute https URL.
    """
    if url is None or not url.strip():
        return None
    url = url.strip()
    if len(url) > 1024:
        raise ValueError("Signature URL is too long")
    parsed = urlparse(url)
    if parsed.scheme.lower() not in ALLOWED_SIGNATURE_SCHEMES or not parsed.netloc:
        raise ValueError("Signature URL must be an https URL")
    return url
