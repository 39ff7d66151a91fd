from slowapi import Limiter
from slowapi.util import get_remote_address

from talentgrid.core.config import settings

# Shared limiter; decorated endpoints must accept a `request: Request` argument.
limiter = Limiter(
    key_func=get_remote_address,
    default_limits=[f"{settings.rate_limit_per_minute}/minute"],
    enabled=settings.rate_limit_enabled,
)

MUTATION_LIMIT = f"{max(settings.rate_limit_per_minute // 2, 1)}/minute"
