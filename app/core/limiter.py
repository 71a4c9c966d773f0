# app/core/limiter.py
"""
Rate limiter shared by the public (token-based) endpoints.
Kept in its own module so endpoints and app.main can import it without cycles.
"""

from slowapi import Limiter
from slowapi.util import get_remote_address

# Keyed by client IP address
limiter = Limiter(key_func=get_remote_address)
