"""
Service wiring from settings.
"""

from __future__ import annotations

from config import Settings, get_settings
from learnsync.identity import IdentityResolver, StaticIdentityResolver
from learnsync.service import LearningProgressService
from learnsync.storage.local_store import LocalStore
from learnsync.storage.remote_client import RemoteClient
from learnsync.sync.offline_queue import OfflineQueue


def build_service(
    settings: Settings | None = None,
    identity_resolver: IdentityResolver | None = None,
) -> LearningProgressService:
    """
    Build a service from settings.

    Args:
        settings: Settings to use (defaults to the cached environment settings)
        identity_resolver: Identity source (defaults to the configured user id)

    Returns:
        LearningProgressService; remote pieces are wired only when a
        remote URL is configured
    """
    settings = settings or get_settings()

    local = LocalStore(settings.local_db_path, history_limit=settings.history_limit)
    queue = OfflineQueue(
        local,
        max_retries=settings.queue_max_retries,
        identity_timeout_seconds=settings.identity_timeout_seconds,
    )

    remote_client = None
    if settings.has_remote_configured():
        remote_client = RemoteClient(
            settings.remote_url,
            api_key=settings.remote_api_key,
            timeout_ms=settings.remote_timeout_ms,
            retry_attempts=settings.remote_retry_attempts,
            retry_backoff_seconds=settings.remote_retry_backoff_seconds,
        )

    resolver = identity_resolver or StaticIdentityResolver.from_settings(
        settings.user_id, guest_mode=settings.guest_mode
    )

    return LearningProgressService(
        local=local,
        identity_resolver=resolver,
        remote_client=remote_client,
        queue=queue,
        history_limit=settings.history_limit,
        migration_batch_size=settings.migration_batch_size,
    )


async def close_service(service: LearningProgressService) -> None:
    """Release the HTTP client and the database engine."""
    if service.remote_client is not None:
        await service.remote_client.close()
    service.local.close()
