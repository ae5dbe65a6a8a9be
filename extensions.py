from flask_limiter import Limiter
from flask_limiter.util import get_remote_address

# ======================
# Rate Limiter
# ======================
# No global limits; individual routes opt in (email, GST lookups).
# Storage comes from RATELIMIT_STORAGE_URI in Config.
limiter = Limiter(
    key_func=get_remote_address,
    default_limits=[],
)
