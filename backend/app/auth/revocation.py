"""JWT token revocation using a Redis blacklist.

Tokens revoked on logout stay blacklisted until their natural expiry.
Lookups fail closed: if Redis cannot be reached the token is treated as
revoked.
"""

import logging
import time

from app.utils.redis_client import get_redis

logger = logging.getLogger(__name__)


class TokenRevocation:
    """Manage JWT token revocation with Redis."""

    @staticmethod
    async def revoke_token(token: str, expires_at: float) -> bool:
        """Blacklist a token until `expires_at` (unix timestamp)."""
        ttl = int(expires_at - time.time())
        if ttl <= 0:
            return True

        try:
            redis_client = await get_redis()
            await redis_client.setex(f"revoked:{token}", ttl, str(int(time.time())))
            return True
        except Exception:
            logger.exception("Failed to revoke token")
            return False

    @staticmethod
    async def is_revoked(token: str) -> bool:
        try:
            redis_client = await get_redis()
            return await redis_client.exists(f"revoked:{token}") > 0
        except Exception:
            logger.exception("Failed to check token revocation")
            return True

