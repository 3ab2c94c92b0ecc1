"""
test_dispatcher.py — Transition detection and delivery.

Covers:
    • Transition table and the aggregate watch baseline
    • Subscriber cycles (ALERT / END once per change, idempotent re-runs,
      one subscriber load per cycle)
    • Persist-then-deliver ordering and persistence failures
    • Per-recipient isolation, text fallback, busy recipients
    • Re-subscribing (also mid-cycle), history rows, test sends
    • Broadcast watch (baseline, partial delivery status)
    • Caption formatting (duration, notes)

Run with:
    pytest tests/test_dispatcher.py -v
"""

from __future__ import annotations

import asyncio
from datetime import datetime, timedelta, timezone
from typing import Awaitable, Callable, Iterable, List, Optional, Sequence

import pytest
from sqlalchemy import event

from alert_relay.alerts.channels import SimulatedSink
from alert_relay.alerts.detector import AggregateWatch, detect_transition
from alert_relay.alerts.dispatcher import (
    BroadcastDispatcher,
    TransitionDispatcher,
    deliver_with_fallback,
)
from alert_relay.alerts.formatting import build_caption, format_duration
from alert_relay.alerts.models import (
    AlertRecord,
    CountrySummary,
    DeliveryOutcome,
    LocationSummary,
    ThreatType,
    Transition,
)
from alert_relay.core.database import build_engine, build_session_factory, close_db, init_db
from alert_relay.core.errors import PersistenceError
from alert_relay.directory import LocationDirectory, LocationKind
from alert_relay.ingestion.weather_service import WeatherReport
from alert_relay.storage.history import HistoryStore
from alert_relay.storage.subscribers import SubscriberStore


# ═══════════════════════════════════════════════════════════════════════════
# Test Fixtures
# ═══════════════════════════════════════════════════════════════════════════

DIRECTORY = LocationDirectory()
CHERKASY = "24"
UMAN = "151"
KYIV_OBLAST = "14"


def _make_alert(uid: str = CHERKASY, kind: LocationKind = LocationKind.SUBDIVISION) -> AlertRecord:
    return AlertRecord(
        location_id=uid,
        location_type=kind,
        parent_subdivision_id=None,
        threat_type=ThreatType.AIR_RAID,
    )


ALERTED = (_make_alert(CHERKASY),)
CLEAR: tuple = ()


class _ScriptedSource:
    """Stands in for AlertSource: returns the queued snapshots in order."""

    def __init__(self, snapshots: Iterable[Optional[Sequence[AlertRecord]]] = ()):
        self.snapshots = list(snapshots)
        self.current: Optional[Sequence[AlertRecord]] = CLEAR

    async def fetch_active_alerts(self, force_refresh: bool = False):
        if self.snapshots:
            self.current = self.snapshots.pop(0)
        return self.current


class _FlakyStore(SubscriberStore):
    """
    Fails the next ``failures`` state writes; ``before_write`` (one-shot)
    runs just before the next write reaches the database.
    """

    failures = 0
    before_write: Optional[Callable[[], Awaitable[object]]] = None

    async def set_last_known_state(self, recipient_id, state, expected_location_id=None):
        if self.failures:
            self.failures -= 1
            raise PersistenceError("set_last_known_state", "disk full")
        if self.before_write is not None:
            hook, self.before_write = self.before_write, None
            await hook()
        return await super().set_last_known_state(recipient_id, state, expected_location_id)


class _Env:
    def __init__(self, engine, store, history, source, sink, dispatcher):
        self.engine = engine
        self.store = store
        self.history = history
        self.source = source
        self.sink = sink
        self.dispatcher = dispatcher

    async def close(self):
        await close_db(self.engine)


async def _make_env(
    subscribers: Iterable[tuple] = (("100", CHERKASY),),
    sink: Optional[SimulatedSink] = None,
    media_dir: Optional[str] = None,
) -> _Env:
    engine = build_engine("sqlite+aiosqlite:///:memory:", echo=False)
    await init_db(engine)
    sessions = build_session_factory(engine)
    store = _FlakyStore(sessions, DIRECTORY, cache_ttl=5)
    history = HistoryStore(sessions)
    source = _ScriptedSource()
    sink = sink or SimulatedSink()
    for recipient_id, location_id in subscribers:
        await store.upsert_watch(recipient_id, location_id)
    dispatcher = TransitionDispatcher(
        source, store, sink, DIRECTORY,
        history=history, weather=None, concurrency=4, media_dir=media_dir or "/nonexistent",
    )
    return _Env(engine, store, history, source, sink, dispatcher)


# ═══════════════════════════════════════════════════════════════════════════
# Section 1: Detection
# ═══════════════════════════════════════════════════════════════════════════

class TestDetectTransition:
    @pytest.mark.parametrize("previous,current,expected", [
        (False, False, None),
        (False, True, Transition.ALERT),
        (True, True, None),
        (True, False, Transition.END),
    ])
    def test_table(self, previous, current, expected):
        assert detect_transition(previous, current) is expected

    def test_new_state(self):
        assert Transition.ALERT.new_state is True
        assert Transition.END.new_state is False


class TestAggregateWatch:
    def test_first_observation_is_baseline(self):
        watch = AggregateWatch(CHERKASY, "Черкаська область")
        assert not watch.initialized
        assert watch.observe(True) is None
        assert watch.initialized
        assert watch.observe(True) is None
        assert watch.observe(False) is Transition.END
        assert watch.observe(True) is Transition.ALERT

    def test_reset_rebaselines(self):
        watch = AggregateWatch(CHERKASY)
        watch.observe(False)
        watch.reset()
        assert watch.observe(True) is None


# ═══════════════════════════════════════════════════════════════════════════
# Section 2: Subscriber cycles
# ═══════════════════════════════════════════════════════════════════════════

class TestSubscriberCycles:
    def test_one_notification_per_change(self):
        async def scenario():
            env = await _make_env()
            env.source.snapshots = [CLEAR, CLEAR, ALERTED, ALERTED, CLEAR]
            reports = [await env.dispatcher.run_cycle() for _ in range(5)]
            await env.close()
            return env, reports

        env, reports = asyncio.run(scenario())
        sent = env.sink.delivered_to("100")
        assert len(sent) == 2
        assert "ТРИВОГА" in sent[0].text
        assert "Відбій" in sent[1].text
        assert [len(r.transitions) for r in reports] == [0, 0, 1, 0, 1]

    def test_repeat_cycle_is_noop(self):
        async def scenario():
            env = await _make_env()
            first = await env.dispatcher.run_cycle(ALERTED)
            second = await env.dispatcher.run_cycle(ALERTED)
            state = (await env.store.get("100")).last_known_alert_state
            await env.close()
            return first, second, state, env

        first, second, state, env = asyncio.run(scenario())
        assert first.results[0].outcome is DeliveryOutcome.DELIVERED
        assert second.results == []
        assert state is True
        assert len(env.sink.sent) == 1

    def test_district_subscriber_alerted_by_oblast(self):
        async def scenario():
            env = await _make_env(subscribers=[("100", UMAN)])
            report = await env.dispatcher.run_cycle(ALERTED)
            await env.close()
            return report

        report = asyncio.run(scenario())
        assert report.results[0].transition is Transition.ALERT

    def test_source_down_skips_and_keeps_state(self):
        async def scenario():
            env = await _make_env()
            env.source.snapshots = [None]
            env.source.current = None
            report = await env.dispatcher.run_cycle()
            state = (await env.store.get("100")).last_known_alert_state
            await env.close()
            return report, state, env

        report, state, env = asyncio.run(scenario())
        assert report.skipped
        assert report.skip_reason == "alert source unavailable"
        assert state is False
        assert env.sink.sent == []

    def test_each_subscriber_sees_same_snapshot(self):
        async def scenario():
            env = await _make_env(subscribers=[("1", CHERKASY), ("2", UMAN), ("3", KYIV_OBLAST)])
            env.source.snapshots = [ALERTED, CLEAR]
            report = await env.dispatcher.run_cycle()
            await env.close()
            return report

        report = asyncio.run(scenario())
        alerted = sorted(r.recipient_id for r in report.results)
        assert alerted == ["1", "2"]
        assert report.evaluated == 3

    def test_mass_transition_loads_subscribers_once(self):
        async def scenario():
            env = await _make_env(subscribers=[(str(i), CHERKASY) for i in range(40)])
            selects: List[str] = []

            def _track(conn, cursor, statement, parameters, context, executemany):
                if statement.lstrip().upper().startswith("SELECT") and "FROM subscribers" in statement:
                    selects.append(statement)

            event.listen(env.engine.sync_engine, "before_cursor_execute", _track)
            report = await env.dispatcher.run_cycle(ALERTED)
            event.remove(env.engine.sync_engine, "before_cursor_execute", _track)
            await env.close()
            return report, selects

        report, selects = asyncio.run(scenario())
        assert len(report.transitions) == 40
        assert len(selects) == 1


# ═══════════════════════════════════════════════════════════════════════════
# Section 3: Failure handling
# ═══════════════════════════════════════════════════════════════════════════

class TestFailureHandling:
    def test_persistence_failure_sends_nothing_and_retries(self):
        async def scenario():
            env = await _make_env()
            env.store.failures = 1
            first = await env.dispatcher.run_cycle(ALERTED)
            sent_after_first = len(env.sink.sent)
            second = await env.dispatcher.run_cycle(ALERTED)
            await env.close()
            return first, sent_after_first, second, env

        first, sent_after_first, second, env = asyncio.run(scenario())
        assert first.results[0].outcome is DeliveryOutcome.SKIPPED
        assert first.results[0].reason == "persistence failed"
        assert sent_after_first == 0
        assert second.results[0].outcome is DeliveryOutcome.DELIVERED
        assert len(env.sink.sent) == 1

    def test_one_failed_recipient_does_not_affect_others(self):
        sink = SimulatedSink()
        sink.fail_everything_for("2")

        async def scenario():
            env = await _make_env(
                subscribers=[("1", CHERKASY), ("2", CHERKASY), ("3", CHERKASY)], sink=sink,
            )
            report = await env.dispatcher.run_cycle(ALERTED)
            states = {r: (await env.store.get(r)).last_known_alert_state for r in ("1", "2", "3")}
            again = await env.dispatcher.run_cycle(ALERTED)
            await env.close()
            return report, states, again

        report, states, again = asyncio.run(scenario())
        outcomes = {r.recipient_id: r.outcome for r in report.results}
        assert outcomes == {
            "1": DeliveryOutcome.DELIVERED,
            "2": DeliveryOutcome.FAILED,
            "3": DeliveryOutcome.DELIVERED,
        }
        # state persisted before delivery, so the failure is not re-sent
        assert states == {"1": True, "2": True, "3": True}
        assert again.results == []

    def test_rich_failure_falls_back_to_text(self):
        sink = SimulatedSink(fail_rich=["100"])

        async def scenario():
            env = await _make_env(sink=sink)
            report = await env.dispatcher.run_cycle(ALERTED)
            await env.close()
            return report

        report = asyncio.run(scenario())
        result = report.results[0]
        assert result.outcome is DeliveryOutcome.FELL_BACK
        assert len(result.attempts) == 2
        assert sink.sent[0].rich is False

    def test_busy_recipient_skipped(self):
        async def scenario():
            env = await _make_env(subscribers=[("1", CHERKASY), ("2", CHERKASY)])
            lock = env.dispatcher._lock_for("1")
            await lock.acquire()
            try:
                report = await env.dispatcher.run_cycle(ALERTED)
            finally:
                lock.release()
            await env.close()
            return report

        report = asyncio.run(scenario())
        outcomes = {r.recipient_id: (r.outcome, r.reason) for r in report.results}
        assert outcomes["1"] == (DeliveryOutcome.SKIPPED, "busy")
        assert outcomes["2"][0] is DeliveryOutcome.DELIVERED

    def test_sink_exception_contained(self):
        class _ExplodingSink(SimulatedSink):
            async def send(self, recipient_id, caption, media=None):
                raise RuntimeError("boom")

        async def scenario():
            return await deliver_with_fallback(_ExplodingSink(), "100", "hello")

        outcome, attempts = asyncio.run(scenario())
        assert outcome is DeliveryOutcome.FELL_BACK
        assert "RuntimeError" in attempts[0].error_message


# ═══════════════════════════════════════════════════════════════════════════
# Section 4: Re-subscribe, history, test sends
# ═══════════════════════════════════════════════════════════════════════════

class TestSubscriptionChanges:
    def test_resubscribe_treated_as_fresh(self):
        async def scenario():
            env = await _make_env()
            await env.dispatcher.run_cycle(ALERTED)
            await env.store.upsert_watch("100", KYIV_OBLAST)
            quiet = await env.dispatcher.run_cycle(ALERTED)
            kyiv = await env.dispatcher.run_cycle((_make_alert(KYIV_OBLAST),))
            await env.close()
            return quiet, kyiv

        quiet, kyiv = asyncio.run(scenario())
        assert quiet.results == []
        assert kyiv.results[0].transition is Transition.ALERT
        assert kyiv.results[0].location_id == KYIV_OBLAST

    def test_unsubscribed_recipient_ignored(self):
        async def scenario():
            env = await _make_env()
            await env.store.remove("100")
            report = await env.dispatcher.run_cycle(ALERTED)
            await env.close()
            return report

        report = asyncio.run(scenario())
        assert report.evaluated == 0
        assert report.results == []

    def test_resubscribe_during_cycle_wins(self):
        async def scenario():
            env = await _make_env()
            env.store.before_write = lambda: env.store.upsert_watch("100", KYIV_OBLAST)
            raced = await env.dispatcher.run_cycle(ALERTED)
            stored = await env.store.get("100")
            after = await env.dispatcher.run_cycle(ALERTED)
            await env.close()
            return raced, stored, after, env

        raced, stored, after, env = asyncio.run(scenario())
        assert raced.results[0].outcome is DeliveryOutcome.SKIPPED
        assert raced.results[0].reason == "resubscribed"
        assert stored.watched_location_id == KYIV_OBLAST
        assert stored.last_known_alert_state is False
        # Kyiv oblast was never alerted: no END for it
        assert after.results == []
        assert env.sink.sent == []

    def test_remove_during_cycle(self):
        async def scenario():
            env = await _make_env()
            env.store.before_write = lambda: env.store.remove("100")
            report = await env.dispatcher.run_cycle(ALERTED)
            await env.close()
            return report, env

        report, env = asyncio.run(scenario())
        assert report.results[0].reason == "unsubscribed"
        assert env.sink.sent == []

    def test_locks_dropped_for_removed_recipients(self):
        async def scenario():
            env = await _make_env(subscribers=[("1", CHERKASY), ("2", CHERKASY)])
            await env.dispatcher.run_cycle(ALERTED)
            before = set(env.dispatcher._locks)
            await env.store.remove("1")
            await env.dispatcher.run_cycle(CLEAR)
            after = set(env.dispatcher._locks)
            await env.close()
            return before, after

        before, after = asyncio.run(scenario())
        assert before == {"1", "2"}
        assert after == {"2"}

    def test_history_row_per_transition(self):
        async def scenario():
            env = await _make_env()
            await env.dispatcher.run_cycle(ALERTED)
            await env.dispatcher.run_cycle(CLEAR)
            page = await env.history.query()
            await env.close()
            return page

        page = asyncio.run(scenario())
        assert page.total == 2
        newest, oldest = page.data
        assert oldest.alert_type is Transition.ALERT
        assert newest.alert_type is Transition.END
        assert oldest.recipient_id == "100"
        assert oldest.delivery_status == "delivered"
        assert oldest.threat_types == ["air_raid"]

    def test_send_test_reaches_district_subscribers(self):
        async def scenario():
            env = await _make_env(subscribers=[("1", UMAN), ("2", KYIV_OBLAST)])
            sent = await env.dispatcher.send_test(CHERKASY, Transition.ALERT)
            state = (await env.store.get("1")).last_known_alert_state
            await env.close()
            return sent, state, env

        sent, state, env = asyncio.run(scenario())
        assert sent == 1
        assert state is False
        assert "ТЕСТ ТРИВОГА" in env.sink.sent[0].text
        assert "Тестове повідомлення" in env.sink.sent[0].text


# ═══════════════════════════════════════════════════════════════════════════
# Section 5: Broadcast watch
# ═══════════════════════════════════════════════════════════════════════════

def _make_broadcaster(sink: SimulatedSink, chat_ids: List[str], history=None) -> BroadcastDispatcher:
    return BroadcastDispatcher(
        _ScriptedSource(), sink, DIRECTORY,
        chat_ids=chat_ids, target_id=CHERKASY, target_name="Черкаська область",
        history=history, weather=None, media_dir="/nonexistent",
    )


class TestBroadcast:
    def test_baseline_then_transition(self):
        sink = SimulatedSink()
        broadcaster = _make_broadcaster(sink, ["-1001", "-1002"])

        async def scenario():
            baseline = await broadcaster.run_cycle(ALERTED)
            still = await broadcaster.run_cycle(ALERTED)
            end = await broadcaster.run_cycle(CLEAR)
            return baseline, still, end

        baseline, still, end = asyncio.run(scenario())
        assert baseline.results == [] and still.results == []
        assert {r.recipient_id for r in end.results} == {"-1001", "-1002"}
        assert all(m.text.startswith("🟢") for m in sink.sent)

    def test_no_chats_skips(self):
        report = asyncio.run(_make_broadcaster(SimulatedSink(), []).run_cycle(ALERTED))
        assert report.skipped

    def test_partial_delivery_recorded(self):
        sink = SimulatedSink()
        sink.fail_everything_for("-1002")

        async def scenario():
            engine = build_engine("sqlite+aiosqlite:///:memory:", echo=False)
            await init_db(engine)
            history = HistoryStore(build_session_factory(engine))
            broadcaster = _make_broadcaster(sink, ["-1001", "-1002"], history=history)
            await broadcaster.run_cycle(CLEAR)
            await broadcaster.run_cycle(ALERTED)
            page = await history.query()
            await close_db(engine)
            return page

        page = asyncio.run(scenario())
        assert page.total == 1
        assert page.data[0].recipient_id is None
        assert page.data[0].delivery_status == "partial"


# ═══════════════════════════════════════════════════════════════════════════
# Section 6: Captions
# ═══════════════════════════════════════════════════════════════════════════

class TestCaptions:
    def _country(self) -> CountrySummary:
        return CountrySummary(
            total_alerts=4,
            affected_subdivision_count=2,
            affected_subdivision_names=["Черкаська область", "Київська область"],
            threat_type_counts={"air_raid": 4},
        )

    def test_alert_caption(self):
        summary = LocationSummary(
            total=2, threat_type_counts={"air_raid": 2},
            district_names=["Уманський", "Черкаський"],
        )
        weather = WeatherReport(
            temp=18, feels_like=17, description="Хмарно", icon="☁️",
            wind_speed=4, wind_direction="Пд", humidity=60, pressure=1012, clouds=75,
        )
        caption = build_caption(
            Transition.ALERT, "Черкаська область", summary, self._country(),
            weather=weather, weather_city="Черкаси",
        )
        assert caption.startswith("🔴 <b>ТРИВОГА!</b>")
        assert "Уманський, Черкаський" in caption
        assert "Черкаси" in caption and "18°C" in caption
        assert "Вологість" in caption
        assert caption.rstrip().endswith("🚨 <b>Негайно в укриття!</b>")

    def test_end_caption_without_weather(self):
        caption = build_caption(Transition.END, "Черкаська область", LocationSummary(), self._country())
        assert caption.startswith("🟢 <b>Відбій тривоги</b>")
        assert "Можна виходити" in caption
        assert "Ще в тривозі" in caption
        assert "Погода" not in caption

    def test_location_name_escaped(self):
        caption = build_caption(Transition.END, "<script>", LocationSummary(), CountrySummary())
        assert "<script>" not in caption
        assert "&lt;script&gt;" in caption

    def test_alert_caption_duration_and_notes(self):
        started = datetime(2024, 5, 1, 10, 0, tzinfo=timezone.utc)
        summary = LocationSummary(
            total=1, threat_type_counts={"air_raid": 1},
            notes=["Загроза <БпЛА>"], started_at=started,
        )
        caption = build_caption(
            Transition.ALERT, "Черкаська область", summary, CountrySummary(),
            now=started + timedelta(hours=1, minutes=5, seconds=9),
        )
        assert "⏱️ Триває: <b>1год 5хв</b>" in caption
        assert "💬 <i>Загроза &lt;БпЛА&gt;</i>" in caption

    def test_end_caption_has_no_duration(self):
        summary = LocationSummary(started_at=datetime(2024, 5, 1, tzinfo=timezone.utc), notes=["x"])
        caption = build_caption(Transition.END, "Черкаська область", summary, CountrySummary())
        assert "Триває" not in caption
        assert "💬" not in caption

    @pytest.mark.parametrize("seconds,expected", [
        (45, "45с"),
        (450, "7хв 30с"),
        (7500, "2год 5хв"),
        (-3, "0с"),
    ])
    def test_format_duration(self, seconds, expected):
        assert format_duration(seconds) == expected
