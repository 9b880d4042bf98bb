"""In-process realtime notifier.

Best effort: no persistence, no delivery guarantee, handlers may see duplicates.
Subscriptions only exist inside ``async with notifier.subscribe(...)`` so they are
released on every exit path.
"""

from collections import defaultdict
from collections.abc import AsyncIterator, Awaitable, Callable, Mapping
from contextlib import asynccontextmanager
from typing import Any

from fastapi.requests import HTTPConnection
from loguru import logger

from arena.core.enums import RealtimeEvent
from arena.schemas.realtime import EVENT_SCHEMA_VERSION, BattleEventEnvelope, upgrade_event

EventHandler = Callable[[BattleEventEnvelope], Awaitable[None]]


def battle_channel(battle_id: int) -> str:
    return f"battle:{battle_id}"


def player_channel(player_id: int) -> str:
    return f"players:{player_id}"


class Subscription:
    def __init__(
        self, channel: str, event: RealtimeEvent | None, handler: EventHandler
    ) -> None:
        self.channel = channel
        self.event = event
        self.handler = handler

    def matches(self, event: RealtimeEvent) -> bool:
        return self.event is None or self.event == event


class RealtimeNotifier:
    def __init__(self) -> None:
        self._subscriptions: defaultdict[str, list[Subscription]] = defaultdict(list)

    def subscriber_count(self, channel: str) -> int:
        return len(self._subscriptions.get(channel, []))

    @asynccontextmanager
    async def subscribe(
        self, channel: str, event: RealtimeEvent | None, handler: EventHandler
    ) -> AsyncIterator[Subscription]:
        """Register ``handler`` for ``event`` (or every event when None) on ``channel``."""
        subscription = Subscription(channel, event, handler)
        self._subscriptions[channel].append(subscription)
        logger.debug(f"Subscribed to {channel} ({event or 'all events'})")
        try:
            yield subscription
        finally:
            self._unsubscribe(subscription)

    def _unsubscribe(self, subscription: Subscription) -> None:
        subscriptions = self._subscriptions.get(subscription.channel)
        if not subscriptions:
            return
        if subscription in subscriptions:
            subscriptions.remove(subscription)
        if not subscriptions:
            del self._subscriptions[subscription.channel]
        logger.debug(f"Unsubscribed from {subscription.channel}")

    async def publish(
        self, channel: str, event: RealtimeEvent, payload: Mapping[str, Any]
    ) -> int:
        """Deliver an event to the channel's current subscribers.

        Returns the number of handlers that ran without raising.
        """
        envelope = upgrade_event({**payload, "event": event, "version": EVENT_SCHEMA_VERSION})
        delivered = 0
        # Copy so handlers may unsubscribe while we iterate
        for subscription in list(self._subscriptions.get(channel, [])):
            if not subscription.matches(event):
                continue
            try:
                await subscription.handler(envelope)
            except Exception:
                logger.exception(f"Realtime handler failed for {event} on {channel}")
            else:
                delivered += 1
        return delivered


def get_notifier(connection: HTTPConnection) -> RealtimeNotifier:
    return connection.app.state.notifier
