"""
Redis async connection using redis-py.
Holds the provisioning journal: short-lived markers for sagas still in flight.
Redis must NEVER be the system of record.

Supports both local Redis and hosted Redis (with TLS via rediss://).
"""
import redis.asyncio as redis
import ssl
from typing import Optional
import json
from datetime import datetime, timezone

from portal.core.config import settings


JOURNAL_PREFIX = "provision:"


class RedisClient:
    """Redis connection manager for the provisioning journal."""

    client: Optional[redis.Redis] = None

    async def connect(self) -> None:
        """Connect to Redis (supports both local and TLS)."""
        redis_url = settings.redis_url_resolved

        connection_options = {
            "encoding": "utf-8",
            "decode_responses": True,
            "socket_timeout": 30.0,
            "socket_connect_timeout": 10.0,
        }

        if settings.redis_ssl_enabled:
            ssl_context = ssl.create_default_context()
            ssl_context.check_hostname = True
            ssl_context.verify_mode = ssl.CERT_REQUIRED
            connection_options["ssl"] = ssl_context

        self.client = redis.from_url(redis_url, **connection_options)

        await self.client.ping()

    async def close(self) -> None:
        """Close Redis connection."""
        if self.client:
            await self.client.aclose()
            self.client = None

    # Provisioning journal
    async def mark_in_flight(self, login_email: str, run_id: str, role: str) -> None:
        """
        Record that a saga for ``login_email`` is running.
        Key: provision:{email}:{run_id}
        TTL: PROVISION_JOURNAL_TTL

        Each run owns its key, so a losing concurrent run cannot clear the
        winner's marker.
        """
        key = f"{JOURNAL_PREFIX}{login_email}:{run_id}"
        value = {
            "role": role,
            "started_at": datetime.now(timezone.utc).isoformat(),
        }
        await self.client.setex(key, settings.PROVISION_JOURNAL_TTL, json.dumps(value))

    async def clear_in_flight(self, login_email: str, run_id: str) -> None:
        """Remove this run's marker once its saga has settled."""
        await self.client.delete(f"{JOURNAL_PREFIX}{login_email}:{run_id}")

    async def in_flight_emails(self) -> set[str]:
        """All login emails with a live marker."""
        emails = set()
        async for key in self.client.scan_iter(match=f"{JOURNAL_PREFIX}*"):
            emails.add(key[len(JOURNAL_PREFIX):].rsplit(":", 1)[0])
        return emails


# Global Redis instance
redis_client = RedisClient()


async def get_redis() -> RedisClient:
    """Dependency that provides the Redis client."""
    return redis_client


async def init_redis() -> None:
    """Initialize Redis connection."""
    await redis_client.connect()


async def close_redis() -> None:
    """Close Redis connection."""
    await redis_client.close()
