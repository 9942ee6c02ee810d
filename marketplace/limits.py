from fastapi_limiter.depends import RateLimiter

from .auth import get_key_by_user_id_or_ip

booking_limit = RateLimiter(times=30, minutes=1, identifier=get_key_by_user_id_or_ip)
checkout_limit = RateLimiter(times=10, minutes=1, identifier=get_key_by_user_id_or_ip)
login_limit = RateLimiter(times=10, minutes=1, identifier=get_key_by_user_id_or_ip)
password_recovery_limit = RateLimiter(times=5, minutes=15, identifier=get_key_by_user_id_or_ip)

ALL_LIMITS = (booking_limit, checkout_limit, login_limit, password_recovery_limit)
