"""
api/limiter.py -- Shared slowapi rate limiter instance.

Imported by api/main.py (mounted through SlowAPIMiddleware) and by
api/routes/v1/auth.py (per-route limits via @limiter.limit()).

A single shared instance means every route shares one in-memory counter
store; separate instances per module would each count in isolation.
"""

from slowapi import Limiter
from slowapi.util import get_remote_address

limiter = Limiter(key_func=get_remote_address, storage_uri="memory://")
