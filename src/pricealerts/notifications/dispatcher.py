"""Notification dispatcher -- concurrent per-channel fan-out with failure isolation.

Each requested channel is attempted independently under its own timeout
using asyncio.gather. One channel raising, timing out or reporting
failure is recorded as a failed DispatchOutcome and never prevents the
others from running. There is no retry here: re-delivery semantics are
channel specific and belong to the provider behind each channel.
"""

import asyncio
import time
from collections.abc import Iterable

from pricealerts.alerts.models import ChannelKind, TriggerEvent
from pricealerts.logging import get_logger
from pricealerts.notifications.channel import NotificationChannel
from pricealerts.notifications.models import DispatchOutcome, Recipient

logger = get_logger(__name__)


class NotificationDispatcher:
    """Fans one trigger event out to the channels an alert asked for.

    Args:
        channels: Registered channel implementations, at most one per kind.
        channel_timeout: Seconds allowed for each individual send.
    """

    def __init__(
        self,
        channels: Iterable[NotificationChannel],
        channel_timeout: float = 10.0,
    ) -> None:
        self._channels: dict[ChannelKind, NotificationChannel] = {}
        for channel in channels:
            self._channels[channel.kind] = channel
        self._channel_timeout = channel_timeout
        self._stats = {"events": 0, "delivered": 0, "failed": 0}

    @property
    def kinds(self) -> set[ChannelKind]:
        return set(self._channels)

    @property
    def stats(self) -> dict[str, int]:
        return dict(self._stats)

    def register(self, channel: NotificationChannel) -> None:
        self._channels[channel.kind] = channel

    async def dispatch(
        self,
        event: TriggerEvent,
        channels: Iterable[ChannelKind],
        recipient: Recipient,
    ) -> list[DispatchOutcome]:
        """Deliver an event to every requested channel concurrently.

        Never raises. Returns one outcome per requested channel, ordered by
        channel kind value.
        """
        kinds = sorted(set(channels), key=lambda kind: kind.value)
        self._stats["events"] += 1
        if not kinds:
            return []

        outcomes = await asyncio.gather(
            *(self._deliver(kind, event, recipient) for kind in kinds)
        )

        for outcome in outcomes:
            self._stats["delivered" if outcome.success else "failed"] += 1

        logger.info(
            "notification_dispatched",
            alert_id=event.alert_id,
            channels=[o.channel.value for o in outcomes],
            failed=[o.channel.value for o in outcomes if not o.success],
        )
        return list(outcomes)

    async def _deliver(
        self, kind: ChannelKind, event: TriggerEvent, recipient: Recipient
    ) -> DispatchOutcome:
        attempted_at = time.time()
        start = time.monotonic()
        channel = self._channels.get(kind)

        if channel is None:
            error: str | None = "channel not configured"
            success = False
        else:
            try:
                success = await asyncio.wait_for(
                    channel.send(event, recipient), timeout=self._channel_timeout
                )
                error = None if success else "delivery rejected"
            except asyncio.TimeoutError:
                success = False
                error = f"timed out after {self._channel_timeout}s"
            except Exception as e:
                success = False
                error = str(e) or type(e).__name__

        latency_ms = round((time.monotonic() - start) * 1000, 1)
        if not success:
            logger.warning(
                "notification_failed",
                channel=kind.value,
                alert_id=event.alert_id,
                error=error,
            )

        return DispatchOutcome(
            channel=kind,
            success=bool(success),
            attempted_at=attempted_at,
            error=error,
            latency_ms=latency_ms,
        )

    async def close(self) -> None:
        for channel in self._channels.values():
            try:
                await channel.close()
            except Exception as e:
                logger.warning(
                    "notification_channel_close_failed",
                    channel=channel.kind.value,
                    error=str(e),
                )
