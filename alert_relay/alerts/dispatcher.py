"""
dispatcher.py — Per-subscriber and broadcast transition dispatch.

This is the heart of the relay. Each subscriber cycle:
    1. Fetches one alert snapshot (cached adapter; failure skips the cycle)
    2. Loads every subscriber
    3. Evaluates each subscriber against that same snapshot
    4. Persists every detected transition, then delivers it
    5. Records the transition in the history log
    6. Produces a CycleReport

═══════════════════════════════════════════════════════════════════════════
CYCLE FLOW
═══════════════════════════════════════════════════════════════════════════

    ┌─────────────────────┐
    │  1. Fetch snapshot  │  AlertSource.fetch_active_alerts()
    │                     │  None → cycle skipped, stored state untouched
    └─────────┬───────────┘
              │
              ▼
    ┌─────────────────────┐
    │  2. Fan-out         │  asyncio.gather over subscribers,
    │                     │  bounded by DISPATCH_CONCURRENCY
    └─────────┬───────────┘
              │  per subscriber, under its own lock:
              ▼
    ┌─────────────────────┐
    │  3. Resolve + diff  │  resolver.is_active(snapshot, watched id)
    │                     │  detect_transition(stored, resolved)
    └─────────┬───────────┘
              │  transition only
              ▼
    ┌─────────────────────┐
    │  4. Persist state   │  SubscriberStore.set_last_known_state
    │                     │  failure → SKIPPED, nothing sent
    └─────────┬───────────┘
              │
              ▼
    ┌─────────────────────┐
    │  5. Deliver         │  photo + caption, one plain-text fallback
    │                     │  DELIVERED / FELL_BACK / FAILED
    └─────────┬───────────┘
              │
              ▼
    ┌─────────────────────┐
    │  6. History + report│  one history row per transition
    └─────────────────────┘

═══════════════════════════════════════════════════════════════════════════
ORDERING AND FAILURE POLICY
═══════════════════════════════════════════════════════════════════════════

State is persisted BEFORE delivery:

    persist fails           → no delivery; the stored state is unchanged so
                              the next cycle detects the same transition
    delivery fails          → state stays persisted; the notification is
                              not re-sent on later cycles
    crash between the two   → notification lost unless upstream still shows
                              the transition on restart (accepted)
    moved or removed after  → the state write is guarded by the evaluated
    being read                location, so it is refused and the recipient
                              is SKIPPED (resubscribed / unsubscribed)

A subscriber whose evaluation is still running when the next cycle
reaches it is skipped for that cycle, never evaluated twice at once.
One recipient's failure never affects another: every recipient gets its
own RecipientResult, and exceptions from a sink are contained per
recipient.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

from alert_relay.alerts.channels.base import NotificationSink, pick_media
from alert_relay.alerts.detector import AggregateWatch, detect_transition
from alert_relay.alerts.formatting import build_caption
from alert_relay.alerts.models import (
    AlertRecord,
    CountrySummary,
    CycleReport,
    DeliveryAttempt,
    DeliveryOutcome,
    DeliveryStatus,
    HistoryEntry,
    RecipientResult,
    Subscriber,
    Transition,
)
from alert_relay.alerts.resolver import AlertResolver
from alert_relay.core.config import settings
from alert_relay.core.errors import PersistenceError
from alert_relay.core.logging_config import log_scope
from alert_relay.directory import LocationDirectory
from alert_relay.ingestion.alert_source import AlertSource
from alert_relay.ingestion.weather_service import WeatherService
from alert_relay.storage.history import HistoryStore
from alert_relay.storage.subscribers import SubscriberStore

logger = logging.getLogger(__name__)


# ═══════════════════════════════════════════════════════════════════════════
# Delivery
# ═══════════════════════════════════════════════════════════════════════════

async def _safe_call(coro, recipient_id: str, channel: str) -> DeliveryAttempt:
    """Await a sink call; an exception becomes a FAILED attempt."""
    try:
        return await coro
    except Exception as exc:
        logger.exception(
            "Sink raised for %s on %s", recipient_id, channel,
            extra={"recipient_id": recipient_id},
        )
        return DeliveryAttempt(
            recipient_id=recipient_id,
            channel=channel,
            status=DeliveryStatus.FAILED,
            error_message=f"{type(exc).__name__}: {exc}",
        )


async def deliver_with_fallback(
    sink: NotificationSink,
    recipient_id: str,
    caption: str,
    media: Optional[str] = None,
) -> Tuple[DeliveryOutcome, List[DeliveryAttempt]]:
    """Rich delivery, then at most one plain-text fallback."""
    first = await _safe_call(sink.send(recipient_id, caption, media), recipient_id, "rich")
    if first.ok:
        return DeliveryOutcome.DELIVERED, [first]

    logger.warning(
        "Send failed for %s (%s); falling back to text",
        recipient_id, first.error_message,
        extra={"recipient_id": recipient_id},
    )
    fallback = await _safe_call(sink.send_text(recipient_id, caption), recipient_id, "text")
    if fallback.ok:
        return DeliveryOutcome.FELL_BACK, [first, fallback]

    logger.error(
        "Fallback failed for %s: %s", recipient_id, fallback.error_message,
        extra={"recipient_id": recipient_id, "outcome": DeliveryOutcome.FAILED.value},
    )
    return DeliveryOutcome.FAILED, [first, fallback]


# ═══════════════════════════════════════════════════════════════════════════
# Notification composition
# ═══════════════════════════════════════════════════════════════════════════

@dataclass
class Notification:
    caption: str
    media: Optional[str]
    history: HistoryEntry


class _NotificationComposer:
    """Builds captions and history rows shared by both dispatchers."""

    def __init__(
        self,
        directory: LocationDirectory,
        resolver: AlertResolver,
        weather: Optional[WeatherService],
        media_dir: Optional[str],
    ):
        self.directory = directory
        self.resolver = resolver
        self.weather = weather
        self.media_dir = media_dir

    async def compose(
        self,
        location_id: str,
        location_name: str,
        transition: Transition,
        alerts: Sequence[AlertRecord],
        country: CountrySummary,
        *,
        test: bool = False,
    ) -> Notification:
        summary = self.resolver.summarize_location(alerts, location_id)
        centre = self.directory.coordinates_for(location_id)
        report = None
        if self.weather is not None:
            report = await self.weather.fetch(centre.latitude, centre.longitude)

        caption = build_caption(
            transition, location_name, summary, country,
            weather=report, weather_city=centre.city, test=test,
        )
        history = HistoryEntry(
            location_uid=location_id,
            location_name=location_name,
            alert_type=transition,
            threat_types=list(summary.threat_type_counts),
            weather_temp=report.temp if report else None,
            weather_desc=report.description if report else None,
            weather_icon=report.icon if report else None,
            raions=list(summary.district_names),
            country_count=country.affected_subdivision_count,
        )
        return Notification(caption, pick_media(transition, self.media_dir), history)


async def _record_history(history: Optional[HistoryStore], entry: HistoryEntry) -> None:
    if history is None:
        return
    try:
        await history.record(entry)
    except PersistenceError as exc:
        logger.error("History not recorded: %s", exc.message,
                     extra={"location_uid": entry.location_uid})


def _log_report(report: CycleReport) -> None:
    transitions = len(report.transitions)
    level = logging.INFO if transitions else logging.DEBUG
    logger.log(
        level,
        "Cycle %s [%s] complete: %d evaluated, %d transitions "
        "(%d delivered, %d fell back, %d failed, %d skipped), %.0fms",
        report.cycle_id, report.kind, report.evaluated, transitions,
        report.count(DeliveryOutcome.DELIVERED),
        report.count(DeliveryOutcome.FELL_BACK),
        report.count(DeliveryOutcome.FAILED),
        report.count(DeliveryOutcome.SKIPPED),
        report.duration_ms,
        extra={"cycle": report.cycle_id, "duration_ms": report.duration_ms},
    )


def _skip(report: CycleReport, reason: str) -> CycleReport:
    report.skipped = True
    report.skip_reason = reason
    report.completed_at = datetime.now(timezone.utc)
    return report


# ═══════════════════════════════════════════════════════════════════════════
# Subscriber dispatcher
# ═══════════════════════════════════════════════════════════════════════════

class TransitionDispatcher:
    """
    Detects and delivers per-subscriber transitions.

    Parameters
    ----------
    source : AlertSource
        Shared caching adapter.
    store : SubscriberStore
        Owner of last-known states.
    sink : NotificationSink
        Delivery transport.
    directory, resolver
        Location lookup and containment.
    history : HistoryStore | None
        Transition log; None disables recording.
    weather : WeatherService | None
        Weather block in captions; None omits it.
    concurrency : int
        Maximum subscribers evaluated at once.
    """

    def __init__(
        self,
        source: AlertSource,
        store: SubscriberStore,
        sink: NotificationSink,
        directory: LocationDirectory,
        resolver: Optional[AlertResolver] = None,
        *,
        history: Optional[HistoryStore] = None,
        weather: Optional[WeatherService] = None,
        concurrency: Optional[int] = None,
        media_dir: Optional[str] = None,
    ):
        self.source = source
        self.store = store
        self.sink = sink
        self.directory = directory
        self.resolver = resolver or AlertResolver(directory)
        self.history = history
        self.concurrency = max(1, concurrency or settings.DISPATCH_CONCURRENCY)
        self._composer = _NotificationComposer(directory, self.resolver, weather, media_dir)
        self._locks: Dict[str, asyncio.Lock] = {}
        self.last_report: Optional[CycleReport] = None
        self.cycles_run = 0

    def _lock_for(self, recipient_id: str) -> asyncio.Lock:
        lock = self._locks.get(recipient_id)
        if lock is None:
            lock = self._locks[recipient_id] = asyncio.Lock()
        return lock

    def _prune_locks(self, live: Iterable[str]) -> None:
        """Forget locks of recipients that are no longer subscribed."""
        keep = set(live)
        for recipient_id in [r for r in self._locks if r not in keep]:
            if not self._locks[recipient_id].locked():
                del self._locks[recipient_id]

    async def run_cycle(self, alerts: Optional[Sequence[AlertRecord]] = None) -> CycleReport:
        """
        Evaluate every subscriber once.

        ``alerts`` overrides the fetch (the snapshot is still shared by
        every subscriber in the cycle).
        """
        report = CycleReport(kind="subscribers")
        self.cycles_run += 1
        with log_scope(cycle=report.cycle_id, kind=report.kind):
            self.last_report = await self._run(report, alerts)
        return self.last_report

    async def _run(
        self,
        report: CycleReport,
        alerts: Optional[Sequence[AlertRecord]],
    ) -> CycleReport:
        if alerts is None:
            alerts = await self.source.fetch_active_alerts()
            if alerts is None:
                logger.warning("No alert data; keeping stored state this cycle")
                return _skip(report, "alert source unavailable")

        try:
            subscribers = await self.store.list_all()
        except PersistenceError as exc:
            logger.error("Cannot load subscribers: %s", exc.message)
            return _skip(report, "subscriber store unavailable")

        self._prune_locks(s.recipient_id for s in subscribers)
        report.alert_count = len(alerts)
        report.evaluated = len(subscribers)
        country = self.resolver.summarize(alerts)
        semaphore = asyncio.Semaphore(self.concurrency)

        async def _bounded(subscriber: Subscriber) -> Optional[RecipientResult]:
            async with semaphore:
                return await self._evaluate(subscriber, alerts, country)

        results = await asyncio.gather(*(_bounded(s) for s in subscribers))
        report.results = [r for r in results if r is not None]
        report.completed_at = datetime.now(timezone.utc)
        _log_report(report)
        return report

    async def _evaluate(
        self,
        subscriber: Subscriber,
        alerts: Sequence[AlertRecord],
        country: CountrySummary,
    ) -> Optional[RecipientResult]:
        recipient_id = subscriber.recipient_id
        lock = self._lock_for(recipient_id)
        if lock.locked():
            logger.info("Subscriber %s still in flight; skipping this round", recipient_id,
                        extra={"recipient_id": recipient_id})
            return RecipientResult(
                recipient_id, subscriber.watched_location_id,
                DeliveryOutcome.SKIPPED, reason="busy",
            )

        async with lock:
            # The cycle's snapshot may predate a write by the previous cycle
            try:
                current = await self.store.get(recipient_id)
            except PersistenceError as exc:
                return RecipientResult(
                    recipient_id, subscriber.watched_location_id,
                    DeliveryOutcome.SKIPPED, reason=exc.message,
                )
            if current is None:
                return None

            node = self.directory.get(current.watched_location_id)
            if node is None:
                logger.warning(
                    "Subscriber %s watches unknown location %s; skipping",
                    recipient_id, current.watched_location_id,
                    extra={"recipient_id": recipient_id,
                           "location_uid": current.watched_location_id},
                )
                return RecipientResult(
                    recipient_id, current.watched_location_id,
                    DeliveryOutcome.SKIPPED, reason="unknown location",
                )

            active = self.resolver.is_active(alerts, node.id)
            transition = detect_transition(current.last_known_alert_state, active)
            if transition is None:
                return None

            return await self._apply(current, node.id, transition, alerts, country)

    async def _apply(
        self,
        subscriber: Subscriber,
        location_id: str,
        transition: Transition,
        alerts: Sequence[AlertRecord],
        country: CountrySummary,
    ) -> RecipientResult:
        recipient_id = subscriber.recipient_id
        log_extra = {
            "recipient_id": recipient_id,
            "location_uid": location_id,
            "transition": transition.value,
        }

        try:
            persisted = await self.store.set_last_known_state(
                recipient_id, transition.new_state, expected_location_id=location_id,
            )
        except PersistenceError as exc:
            logger.error("State not persisted for %s; not sending %s: %s",
                         recipient_id, transition.value, exc.message, extra=log_extra)
            return RecipientResult(
                recipient_id, location_id, DeliveryOutcome.SKIPPED,
                transition=transition, reason="persistence failed",
            )
        if not persisted:
            # Removed or moved to another location since it was read
            try:
                moved = await self.store.get(recipient_id) is not None
            except PersistenceError:
                moved = False
            reason = "resubscribed" if moved else "unsubscribed"
            logger.info("State for %s not written: %s", recipient_id, reason, extra=log_extra)
            return RecipientResult(
                recipient_id, location_id, DeliveryOutcome.SKIPPED,
                transition=transition, reason=reason,
            )

        location_name = subscriber.location_name or self.directory.require(location_id).display_name
        notification = await self._composer.compose(
            location_id, location_name, transition, alerts, country,
        )
        outcome, attempts = await deliver_with_fallback(
            self.sink, recipient_id, notification.caption, notification.media,
        )
        logger.info("%s sent to %s: %s", transition.value, recipient_id, outcome.value,
                    extra={**log_extra, "outcome": outcome.value})

        notification.history.recipient_id = recipient_id
        notification.history.delivery_status = outcome.value
        await _record_history(self.history, notification.history)

        return RecipientResult(
            recipient_id, location_id, outcome,
            transition=transition, attempts=attempts,
        )

    async def send_test(self, location_id: str, transition: Transition) -> int:
        """
        Send a test notification to every subscriber watching
        ``location_id`` or a location inside it. Stored state is not touched.

        Returns the number of recipients reached.
        """
        alerts = await self.source.fetch_active_alerts() or ()
        country = self.resolver.summarize(alerts)
        sent = 0

        for subscriber in await self.store.list_all():
            watched = subscriber.watched_location_id
            if location_id not in (watched, self.directory.subdivision_of(watched)):
                continue
            name = subscriber.location_name or watched
            notification = await self._composer.compose(
                watched, name, transition, alerts, country, test=True,
            )
            outcome, _ = await deliver_with_fallback(
                self.sink, subscriber.recipient_id, notification.caption, notification.media,
            )
            if outcome in (DeliveryOutcome.DELIVERED, DeliveryOutcome.FELL_BACK):
                sent += 1

        logger.info("Test %s completed: %d sent", transition.value, sent)
        return sent


# ═══════════════════════════════════════════════════════════════════════════
# Broadcast dispatcher
# ═══════════════════════════════════════════════════════════════════════════

class BroadcastDispatcher:
    """
    Aggregate watch on one target location, delivered to broadcast chats.

    Independent of subscriber records; its last-known state lives in an
    AggregateWatch and the first evaluation after start-up is a baseline.
    """

    def __init__(
        self,
        source: AlertSource,
        sink: NotificationSink,
        directory: LocationDirectory,
        resolver: Optional[AlertResolver] = None,
        *,
        chat_ids: Optional[Sequence[str]] = None,
        target_id: Optional[str] = None,
        target_name: Optional[str] = None,
        history: Optional[HistoryStore] = None,
        weather: Optional[WeatherService] = None,
        media_dir: Optional[str] = None,
    ):
        self.source = source
        self.sink = sink
        self.directory = directory
        self.resolver = resolver or AlertResolver(directory)
        self.chat_ids = [str(c) for c in (settings.TELEGRAM_CHAT_IDS if chat_ids is None else chat_ids)]
        target_id = target_id or settings.TARGET_REGION_UID
        self.watch = AggregateWatch(target_id, target_name or settings.TARGET_REGION_NAME)
        self.history = history
        self._composer = _NotificationComposer(directory, self.resolver, weather, media_dir)
        self._lock = asyncio.Lock()
        self.last_report: Optional[CycleReport] = None

    async def run_cycle(self, alerts: Optional[Sequence[AlertRecord]] = None) -> CycleReport:
        report = CycleReport(kind="broadcast")
        if not self.chat_ids:
            return _skip(report, "no broadcast chats")
        if self._lock.locked():
            return _skip(report, "previous broadcast cycle still running")

        async with self._lock:
            with log_scope(cycle=report.cycle_id, kind=report.kind):
                self.last_report = await self._run(report, alerts)
        return self.last_report

    async def _run(
        self,
        report: CycleReport,
        alerts: Optional[Sequence[AlertRecord]],
    ) -> CycleReport:
        if alerts is None:
            alerts = await self.source.fetch_active_alerts()
            if alerts is None:
                logger.warning("No alert data; broadcast watch unchanged")
                return _skip(report, "alert source unavailable")

        report.alert_count = len(alerts)
        report.evaluated = 1
        active = self.resolver.is_active(alerts, self.watch.location_id)
        transition = self.watch.observe(active)
        if transition is None:
            report.completed_at = datetime.now(timezone.utc)
            return report

        country = self.resolver.summarize(alerts)
        notification = await self._composer.compose(
            self.watch.location_id, self.watch.location_name,
            transition, alerts, country,
        )

        async def _one(chat_id: str) -> RecipientResult:
            outcome, attempts = await deliver_with_fallback(
                self.sink, chat_id, notification.caption, notification.media,
            )
            logger.info("Broadcast to %s: %s (%s)", chat_id, transition.value, outcome.value,
                        extra={"recipient_id": chat_id, "transition": transition.value,
                               "outcome": outcome.value})
            return RecipientResult(
                chat_id, self.watch.location_id, outcome,
                transition=transition, attempts=attempts,
            )

        report.results = list(await asyncio.gather(*(_one(c) for c in self.chat_ids)))

        failed = report.count(DeliveryOutcome.FAILED)
        if failed == 0:
            status = DeliveryOutcome.DELIVERED.value
        elif failed == len(report.results):
            status = DeliveryOutcome.FAILED.value
        else:
            status = "partial"
        notification.history.delivery_status = status
        await _record_history(self.history, notification.history)

        report.completed_at = datetime.now(timezone.utc)
        _log_report(report)
        return report
