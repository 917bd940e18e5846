"""
Shared Flask extension instances.

Kept out of the ``fixit`` package so blueprints can decorate views with
``limiter.limit`` before ``create_app`` has run.
"""

import os

from flask_limiter import Limiter
from flask_limiter.util import get_remote_address

# Use Redis for rate-limit storage when available (production), otherwise
# fall back to in-memory storage (single-process / development).
_storage_uri = os.environ.get("REDIS_URL") or "memory://"

# init_app() is called from fixit.create_app().
limiter = Limiter(
    key_func=get_remote_address,
    storage_uri=_storage_uri,
    default_limits=["200 per minute"],
)
