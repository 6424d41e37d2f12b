"""Request rate limiting"""

from slowapi import Limiter
from slowapi.util import get_remote_address

from admissions.config import settings

limiter = Limiter(key_func=get_remote_address, enabled=settings.RATE_LIMIT_ENABLED)

# Applied to every student endpoint that can allocate or release an identifier
MUTATION_LIMIT = f"{settings.RATE_LIMIT_PER_MINUTE}/minute"
