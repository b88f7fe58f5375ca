"""
Linker wiring.

Assembles one tab's worth of components from settings: storage, broadcast
channel, guest session store, auth observer, link records, reconciler and
trigger points. Redis backs storage and broadcast when REDIS_URL is set;
otherwise everything is in memory.
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Optional

from .auth.observer import AuthStateObserver
from .auth.provider import AuthProvider
from .broadcast.base import BroadcastChannel
from .broadcast.memory import InMemoryBroadcastHub
from .broadcast.redis_channel import RedisBroadcastChannel
from .config import LinkerSettings
from .guest_session import GuestSessionStore
from .linking.client import HttpLinkFunction, LinkFunction
from .linking.reconciler import LinkingReconciler
from .linking.records import LinkAttemptStore
from .linking.retry import RetryPolicy, SleepFunction
from .notifications import LoggingNotifier, Notifier
from .storage.base import KeyValueStore
from .storage.memory import InMemoryStore
from .storage.redis_store import RedisStore
from .triggers import LinkingTriggers

logger = logging.getLogger(__name__)


@dataclass
class LinkerContext:
    """Everything one tab needs, plus teardown."""
    settings: LinkerSettings
    store: KeyValueStore
    channel: BroadcastChannel
    guest_sessions: GuestSessionStore
    observer: AuthStateObserver
    records: LinkAttemptStore
    link_function: LinkFunction
    reconciler: LinkingReconciler
    triggers: LinkingTriggers

    async def close(self) -> None:
        await self.triggers.close()
        await self.observer.close()
        await self.link_function.close()
        await self.channel.close()
        await self.store.close()


async def build_linker(
    settings: LinkerSettings,
    provider: AuthProvider,
    notifier: Optional[Notifier] = None,
    store: Optional[KeyValueStore] = None,
    hub: Optional[InMemoryBroadcastHub] = None,
    link_function: Optional[LinkFunction] = None,
    sleep: SleepFunction = asyncio.sleep,
) -> LinkerContext:
    """
    Build a LinkerContext.

    Args:
        settings: Linker settings
        provider: Auth provider for this tab
        notifier: Toast sink (defaults to logging)
        store: Shared store to reuse across in-memory tabs
        hub: Shared broadcast hub for in-memory tabs
        link_function: Merge function (defaults to HttpLinkFunction)
        sleep: Backoff sleep used by the retry policy

    Raises:
        StorageError: if Redis is configured but unreachable
    """
    if settings.uses_redis:
        owns_store = store is None
        if store is None:
            redis_store = RedisStore(settings.redis_url, namespace=settings.storage_namespace)
            await redis_store.connect()
            store = redis_store
        redis_channel = RedisBroadcastChannel(settings.redis_url, namespace=settings.storage_namespace)
        try:
            await redis_channel.connect()
        except Exception:
            if owns_store:
                await store.close()
            raise
        channel: BroadcastChannel = redis_channel
    else:
        if store is None:
            store = InMemoryStore()
        if hub is None:
            hub = InMemoryBroadcastHub()
        channel = hub.open_channel()

    if link_function is None:
        link_function = HttpLinkFunction(
            settings.link_function_url,
            service_secret=settings.link_service_secret,
            timeout=settings.link_timeout_seconds,
        )

    guest_sessions = GuestSessionStore(store, channel)
    observer = AuthStateObserver(provider, channel)
    records = LinkAttemptStore(store)
    reconciler = LinkingReconciler(
        records,
        link_function,
        retry_policy=RetryPolicy.from_settings(settings, sleep=sleep),
        verify_linked=settings.verify_linked_profiles,
        claim_ttl_seconds=settings.link_claim_ttl_seconds,
    )
    triggers = LinkingTriggers(
        guest_sessions,
        observer,
        reconciler,
        records,
        notifier=notifier if notifier is not None else LoggingNotifier(),
    )

    logger.info(
        f"Linker ready (storage={'redis' if settings.uses_redis else 'memory'}, "
        f"tab={channel.instance_id})"
    )
    return LinkerContext(
        settings=settings,
        store=store,
        channel=channel,
        guest_sessions=guest_sessions,
        observer=observer,
        records=records,
        link_function=link_function,
        reconciler=reconciler,
        triggers=triggers,
    )
