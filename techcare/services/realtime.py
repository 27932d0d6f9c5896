"""
Realtime Subscription Registry.

Keeps track of every Postgres-changes channel the client has open (e.g.
the signed-in user's notifications feed) so the session layer can tear
them all down on sign-out and re-open them with a fresh access token
after a token refresh.

Each subscription is remembered as a :class:`SubscriptionSpec`; the live
channel object is derived from it and can be rebuilt at any time.
"""

from __future__ import annotations

from typing import Any, Callable, Optional

from pydantic import BaseModel

from techcare.database import DatabaseManager
from techcare.logger import StructuredLogger
from techcare.services.base_service import BaseService

ChangeCallback = Callable[[dict[str, Any]], None]


class SubscriptionSpec(BaseModel):
    """Everything needed to (re)open one Postgres-changes channel."""

    name: str
    table: str
    callback: ChangeCallback
    event: str = "*"
    schema_name: str = "public"
    filter: Optional[str] = None

    model_config = {"frozen": True, "arbitrary_types_allowed": True}


class RealtimeService(BaseService):
    """``IRealtime`` implementation over ``AsyncClient.channel``."""

    def __init__(self, db: DatabaseManager, logger: StructuredLogger) -> None:
        super().__init__(logger)
        self._db = db
        self._specs: dict[str, SubscriptionSpec] = {}
        self._channels: dict[str, Any] = {}

    @property
    def active_channels(self) -> list[str]:
        return sorted(self._channels)

    async def subscribe(
        self,
        table: str,
        callback: ChangeCallback,
        filter: Optional[str] = None,
        event: str = "*",
        name: Optional[str] = None,
    ) -> str:
        """Open a channel for changes on *table*; return its name.

        Subscribing twice under the same name replaces the old channel.
        """
        spec = SubscriptionSpec(
            name=name or (f"{table}:{filter}" if filter else table),
            table=table,
            callback=callback,
            event=event,
            filter=filter,
        )
        if spec.name in self._channels:
            await self._close(spec.name)
        self._specs[spec.name] = spec
        await self._open(spec)
        return spec.name

    async def unsubscribe(self, name: str) -> None:
        self._specs.pop(name, None)
        await self._close(name)

    async def unsubscribe_all(self) -> None:
        """Close every channel and forget every subscription."""
        names = list(self._channels)
        self._specs.clear()
        for name in names:
            await self._close(name)
        if names:
            self._logger.info("Realtime: closed %d channel(s).", len(names))

    async def refresh_all_connections(self, access_token: Optional[str] = None) -> None:
        """Re-authenticate the realtime socket and rebuild every channel."""
        if not self._specs or not self._db.is_online:
            return
        if access_token:
            try:
                await self._db.supabase.realtime.set_auth(access_token)
            except Exception as exc:
                self._logger.warning("Realtime: set_auth failed: %s", exc)

        for name in list(self._channels):
            await self._close(name)
        for spec in list(self._specs.values()):
            await self._open(spec)
        self._logger.info("Realtime: refreshed %d channel(s).", len(self._specs))

    # ------------------------------------------------------------------
    # Private helpers
    # ------------------------------------------------------------------

    async def _open(self, spec: SubscriptionSpec) -> None:
        if not self._db.is_online:
            self._logger.info("Offline: channel %s not opened.", spec.name)
            return
        try:
            channel = self._db.supabase.channel(spec.name)
            kwargs: dict[str, Any] = {"schema": spec.schema_name, "table": spec.table}
            if spec.filter:
                kwargs["filter"] = spec.filter
            channel.on_postgres_changes(spec.event, spec.callback, **kwargs)
            await channel.subscribe()
            self._channels[spec.name] = channel
        except Exception as exc:
            self._logger.warning("Realtime: failed to open %s: %s", spec.name, exc)

    async def _close(self, name: str) -> None:
        channel = self._channels.pop(name, None)
        if channel is None:
            return
        try:
            await self._db.supabase.remove_channel(channel)
        except Exception as exc:
            self._logger.warning("Realtime: failed to close %s: %s", name, exc)
