from __future__ import annotations

from datetime import datetime

import pytest
from conftest import FakeChangeFeed, FakeRowStore, vehicle_row

from pyfleet._crypto.hashing import build_event_payload, generate_legal_hash
from pyfleet._realtime import ChangeKind
from pyfleet.exceptions import StoreFetchError
from pyfleet.models.location import Location
from pyfleet.models.security import AlertType
from pyfleet.models.user import UserProfile
from pyfleet.models.vehicle import VehicleStatus
from pyfleet.orchestrator import SubscriptionOrchestrator
from pyfleet.state.store import StateStore

USER = UserProfile(id="user-1", email="ops@example.com")
OTHER_USER = UserProfile(id="user-2")


def _orchestrator(
    row_store: FakeRowStore, change_feed: FakeChangeFeed, *, history: int = 50
) -> tuple[StateStore, SubscriptionOrchestrator]:
    store = StateStore()
    return store, SubscriptionOrchestrator(
        store.dispatch,
        row_store,
        change_feed,
        security_event_history_limit=history,
    )


def _seed(row_store: FakeRowStore) -> None:
    row_store.tables["vehicles"] = [vehicle_row("A", company_id="c1"), vehicle_row("B", company_id="c2")]
    row_store.tables["companies"] = [{"id": "c1", "name": "North"}, {"id": "c2", "name": "South"}]


def _security_row(event_id: str, severity: str, event_type: str = "SOS") -> dict[str, object]:
    timestamp = "2026-01-01T12:00:00.000Z"
    payload = build_event_payload(
        event_type=event_type,
        severity=severity,
        user_id="user-1",
        timestamp=datetime.fromisoformat(timestamp),
        details={},
        vehicle_id="A",
    )
    return {
        "id": event_id,
        "user_id": "user-1",
        "vehicle_id": "A",
        "type": event_type,
        "severity": severity,
        "timestamp": timestamp,
        "legal_hash": generate_legal_hash(payload),
        "details": {},
    }


@pytest.mark.asyncio
async def test_identity_present_loads_snapshot_and_opens_three_subscriptions(
    row_store: FakeRowStore, change_feed: FakeChangeFeed
) -> None:
    _seed(row_store)
    store, orchestrator = _orchestrator(row_store, change_feed)

    await orchestrator.set_identity(USER)

    state = store.state
    assert state.current_user == USER
    assert [v.id for v in state.vehicles] == ["A", "B"]
    assert [c.id for c in state.companies] == ["c1", "c2"]
    assert state.is_loading is False
    assert sorted((h.table, h.kind) for h in change_feed.open_handles) == [
        ("security_events", ChangeKind.INSERT),
        ("vehicle_locations", ChangeKind.INSERT),
        ("vehicles", ChangeKind.UPDATE),
    ]


@pytest.mark.asyncio
async def test_vehicle_fetch_failure_clears_loading(row_store: FakeRowStore, change_feed: FakeChangeFeed) -> None:
    row_store.select_errors["vehicles"] = StoreFetchError("connection refused", code="network", table="vehicles")
    store, orchestrator = _orchestrator(row_store, change_feed)

    await orchestrator.set_identity(USER)

    assert store.state.is_loading is False
    assert store.state.vehicles == ()


@pytest.mark.asyncio
async def test_companies_failure_does_not_block_vehicles(row_store: FakeRowStore, change_feed: FakeChangeFeed) -> None:
    _seed(row_store)
    row_store.select_errors["companies"] = StoreFetchError("boom", code="500", table="companies")
    store, orchestrator = _orchestrator(row_store, change_feed)

    await orchestrator.set_identity(USER)

    assert store.state.companies == ()
    assert len(store.state.vehicles) == 2


@pytest.mark.asyncio
async def test_malformed_snapshot_rows_are_skipped(row_store: FakeRowStore, change_feed: FakeChangeFeed) -> None:
    row_store.tables["vehicles"] = [vehicle_row("A"), vehicle_row("B", lat=None), {"plate": "no-id"}]
    store, orchestrator = _orchestrator(row_store, change_feed)

    await orchestrator.set_identity(USER)

    assert [v.id for v in store.state.vehicles] == ["A"]


@pytest.mark.asyncio
async def test_identity_loss_clears_collections_and_closes_subscriptions(
    row_store: FakeRowStore, change_feed: FakeChangeFeed
) -> None:
    _seed(row_store)
    store, orchestrator = _orchestrator(row_store, change_feed)
    await orchestrator.set_identity(USER)
    assert len(change_feed.open_handles) == 3

    await orchestrator.set_identity(None)

    assert store.state.vehicles == ()
    assert store.state.companies == ()
    assert store.state.current_user is None
    assert change_feed.open_handles == []
    assert all(h.closed for h in change_feed.handles)


@pytest.mark.asyncio
async def test_no_identity_opens_nothing(row_store: FakeRowStore, change_feed: FakeChangeFeed) -> None:
    store, orchestrator = _orchestrator(row_store, change_feed)
    await orchestrator.set_identity(None)

    assert change_feed.handles == []
    assert row_store.selects == []
    assert store.state.is_loading is False


@pytest.mark.asyncio
async def test_identity_change_replaces_subscriptions(row_store: FakeRowStore, change_feed: FakeChangeFeed) -> None:
    _seed(row_store)
    _store, orchestrator = _orchestrator(row_store, change_feed)
    await orchestrator.set_identity(USER)
    first = list(change_feed.handles)

    await orchestrator.set_identity(OTHER_USER)

    assert all(h.closed for h in first)
    assert len(change_feed.open_handles) == 3
    assert not set(map(id, change_feed.open_handles)) & set(map(id, first))


@pytest.mark.asyncio
async def test_same_identity_does_not_resubscribe(row_store: FakeRowStore, change_feed: FakeChangeFeed) -> None:
    _seed(row_store)
    _store, orchestrator = _orchestrator(row_store, change_feed)
    await orchestrator.set_identity(USER)
    await orchestrator.set_identity(USER)

    assert len(change_feed.handles) == 3


@pytest.mark.asyncio
async def test_teardown_is_idempotent(row_store: FakeRowStore, change_feed: FakeChangeFeed) -> None:
    _store, orchestrator = _orchestrator(row_store, change_feed)
    await orchestrator.set_identity(USER)

    orchestrator.teardown()
    orchestrator.teardown()

    assert change_feed.open_handles == []
    assert change_feed.close_calls == 3


@pytest.mark.asyncio
async def test_location_insert_patches_vehicle(row_store: FakeRowStore, change_feed: FakeChangeFeed) -> None:
    _seed(row_store)
    store, orchestrator = _orchestrator(row_store, change_feed)
    await orchestrator.set_identity(USER)

    change_feed.emit("vehicle_locations", ChangeKind.INSERT, {"vehicle_id": "A", "lat": 1.0, "lng": 2.0, "speed": 3})

    assert store.state.vehicle("A").location == Location(lat=1.0, lng=2.0)


@pytest.mark.asyncio
async def test_malformed_location_notification_is_dropped(row_store: FakeRowStore, change_feed: FakeChangeFeed) -> None:
    _seed(row_store)
    store, orchestrator = _orchestrator(row_store, change_feed)
    await orchestrator.set_identity(USER)
    before = store.state
    dispatched: list[object] = []
    store.subscribe(lambda _state, action: dispatched.append(action))

    change_feed.emit("vehicle_locations", ChangeKind.INSERT, {"vehicle_id": "A", "lat": 1.0})

    assert dispatched == []
    assert store.state is before


@pytest.mark.asyncio
async def test_vehicle_update_notification_replaces_vehicle(
    row_store: FakeRowStore, change_feed: FakeChangeFeed
) -> None:
    _seed(row_store)
    store, orchestrator = _orchestrator(row_store, change_feed)
    await orchestrator.set_identity(USER)

    change_feed.emit("vehicles", ChangeKind.UPDATE, vehicle_row("A", status="maintenance", speed=None))

    vehicle = store.state.vehicle("A")
    assert vehicle.status == VehicleStatus.MAINTENANCE
    assert vehicle.speed == 0
    assert store.state.vehicle("B").status == VehicleStatus.ACTIVE


@pytest.mark.asyncio
async def test_security_event_notification_adds_event_and_alert(
    row_store: FakeRowStore, change_feed: FakeChangeFeed
) -> None:
    store, orchestrator = _orchestrator(row_store, change_feed)
    await orchestrator.set_identity(USER)
    actions: list[object] = []
    store.subscribe(lambda _state, action: actions.append(action))

    change_feed.emit("security_events", ChangeKind.INSERT, _security_row("ev-1", "critical"))
    change_feed.emit("security_events", ChangeKind.INSERT, _security_row("ev-2", "low", "LOGIN"))

    state = store.state
    assert len(actions) == 2
    assert [e.id for e in state.security_events] == ["ev-2", "ev-1"]
    assert all(e.verified for e in state.security_events)
    assert len(state.alerts) == 1
    assert state.alerts[0].type == AlertType.SOS


@pytest.mark.asyncio
async def test_tampered_security_event_is_unverified(row_store: FakeRowStore, change_feed: FakeChangeFeed) -> None:
    store, orchestrator = _orchestrator(row_store, change_feed)
    await orchestrator.set_identity(USER)

    row = _security_row("ev-1", "high")
    row["severity"] = "critical"
    change_feed.emit("security_events", ChangeKind.INSERT, row)

    assert store.state.security_events[0].verified is False


@pytest.mark.asyncio
async def test_security_event_history_loaded_most_recent_first(
    row_store: FakeRowStore, change_feed: FakeChangeFeed
) -> None:
    row_store.tables["security_events"] = [_security_row("ev-2", "low"), _security_row("ev-1", "low")]
    store, orchestrator = _orchestrator(row_store, change_feed, history=10)

    await orchestrator.set_identity(USER)

    assert [e.id for e in store.state.security_events] == ["ev-2", "ev-1"]
    (_table, query), = [s for s in row_store.selects if s[0] == "security_events"]
    assert query == {"filters": None, "order": "timestamp.desc", "limit": 10}


@pytest.mark.asyncio
async def test_history_fetch_disabled(row_store: FakeRowStore, change_feed: FakeChangeFeed) -> None:
    _store, orchestrator = _orchestrator(row_store, change_feed, history=0)
    await orchestrator.set_identity(USER)
    assert [table for table, _ in row_store.selects] == ["companies", "vehicles"]


@pytest.mark.asyncio
async def test_callbacks_from_previous_identity_are_ignored(
    row_store: FakeRowStore, change_feed: FakeChangeFeed
) -> None:
    _seed(row_store)
    store, orchestrator = _orchestrator(row_store, change_feed)
    await orchestrator.set_identity(USER)
    stale_callback = change_feed.handles[1].callback

    await orchestrator.set_identity(OTHER_USER)
    before = store.state
    stale_callback({"vehicle_id": "A", "lat": 9.0, "lng": 9.0})

    assert store.state is before
