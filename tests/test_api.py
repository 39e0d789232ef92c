"""HTTP API tests: items, autocomplete, queue, operations, config and internal endpoints."""

import uuid
from datetime import datetime, timezone

import pytest
from httpx import AsyncClient
from sqlalchemy.orm import Session

from unified_index.core.config import settings
from unified_index.db.models import AggregatedItem, MContact, TwCompany, TwProject
from unified_index.services import hierarchy_service, identity_service, ingestion_queue_service

SECRET = "s3cret"


@pytest.fixture
def internal_secret(monkeypatch):
    monkeypatch.setattr(settings, "INTERNAL_SECRET", SECRET)
    return {"X-Internal-Secret": SECRET}


def _add_items(db: Session) -> None:
    when = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)
    db.add_all(
        [
            AggregatedItem(id="t1", type="task", name="Hang doors", status="open", sort_date=when),
            AggregatedItem(
                id="m1",
                type="email",
                name="Offer",
                involved_emails=["ann@example.com"],
                sort_date=when,
            ),
        ]
    )
    db.commit()


async def test_health(client: AsyncClient):
    response = await client.get("/health")

    assert response.status_code == 200
    assert response.json()["status"] == "ok"


# =============================================================================
# Items
# =============================================================================


async def test_query_items_hides_messages_from_uninvolved_callers(client: AsyncClient, db: Session):
    _add_items(db)

    anonymous = await client.post("/items/query", json={})
    involved = await client.post("/items/query", json={}, headers={"X-User-Email": "Ann@example.com"})

    assert [item["id"] for item in anonymous.json()["items"]] == ["t1"]
    assert sorted(item["id"] for item in involved.json()["items"]) == ["m1", "t1"]
    body = involved.json()
    assert (body["sort_field"], body["sort_order"], body["limit"]) == ("sort_date", "desc", 50)
    assert "search_text" not in body["items"][0]


async def test_query_items_with_filters(client: AsyncClient, db: Session):
    _add_items(db)

    response = await client.post(
        "/items/query",
        json={"filters": {"status_in": ["open"], "name_contains": "door"}, "sort_field": "name"},
        headers={"X-User-Is-Admin": "true"},
    )

    assert response.status_code == 200
    assert [item["id"] for item in response.json()["items"]] == ["t1"]


async def test_query_items_rejects_bad_page(client: AsyncClient):
    response = await client.post("/items/query", json={"limit": 0})

    assert response.status_code == 422


async def test_count_items(client: AsyncClient, db: Session):
    _add_items(db)

    response = await client.post("/items/count", json={}, headers={"X-User-Is-Admin": "1"})

    assert response.status_code == 200
    data = response.json()
    assert data["total_count"] == 2
    assert data["type_counts"] == {"task": 1, "email": 1, "craft": 0, "file": 0}
    assert data["nonempty_columns"] == ["status"]


# =============================================================================
# Autocomplete
# =============================================================================


async def test_autocomplete_projects(client: AsyncClient, db: Session):
    db.add(TwCompany(id="co1", name="Acme GmbH"))
    db.add_all(
        [
            TwProject(id="p1", name="Harbor Tower", company_id="co1", status="active"),
            TwProject(id="p2", name="Depot"),
        ]
    )
    db.commit()

    response = await client.get("/autocomplete/projects", params={"q": "acme"})

    assert response.json() == [
        {"id": "p1", "name": "Harbor Tower", "company_name": "Acme GmbH", "status": "active"}
    ]


async def test_autocomplete_hierarchies(client: AsyncClient, db: Session):
    hierarchy_service.get_or_create_cost_group(db, 456, "Doors")
    hierarchy_service.get_or_create_location(db, "Alpha", "1", "101")
    db.commit()

    cost_groups = await client.get("/autocomplete/cost-groups", params={"q": "45"})
    locations = await client.get("/autocomplete/locations", params={"q": "101"})

    assert [option["code"] for option in cost_groups.json()] == [450, 456]
    [room] = locations.json()
    assert (room["name"], room["type"], room["path"], room["depth"]) == ("101", "room", "Alpha / 1 / 101", 2)


async def test_autocomplete_persons_and_tags(client: AsyncClient, db: Session, make_task, make_conversation):
    db.add(MContact(id="c1", name="Ann Lee", email="ann@example.com"))
    db.flush()
    identity_service.link_person_from_external_identity(db, "missive_contact", "c1")
    make_task("t1", ["Urgent"])
    make_conversation("conv1", ["urgent", "Offer"])
    db.commit()

    persons = await client.get("/autocomplete/persons", params={"q": "ann"})
    tags = await client.get("/autocomplete/tags", params={"q": "urg"})

    [person] = persons.json()
    assert (person["display_name"], person["source_type"]) == ("Ann Lee", "missive_contact")
    assert [tag["name"].lower() for tag in tags.json()] == ["urgent"]


async def test_autocomplete_limit_is_validated(client: AsyncClient):
    response = await client.get("/autocomplete/tags", params={"limit": 500})

    assert response.status_code == 422


# =============================================================================
# Queue
# =============================================================================


async def test_enqueue(client: AsyncClient):
    response = await client.post(
        "/queue/enqueue",
        json={"source": "teamwork", "event_type": "task.upsert", "external_id": "42", "payload": {"name": "x"}},
    )

    assert response.status_code == 201
    data = response.json()
    assert (data["status"], data["retry_count"], data["external_id"]) == ("pending", 0, "42")


async def test_enqueue_rejects_unknown_source(client: AsyncClient):
    response = await client.post(
        "/queue/enqueue", json={"source": "jira", "event_type": "issue.upsert", "external_id": "1"}
    )

    assert response.status_code == 422


async def test_retry_dead_letter_endpoint(client: AsyncClient, db: Session):
    live = ingestion_queue_service.enqueue(db, "missive", "message.upsert", "1")
    dead = ingestion_queue_service.enqueue(db, "missive", "message.upsert", "2")
    ingestion_queue_service.mark_failed(db, dead.id, "bad", retry=False)

    missing = await client.post("/queue/items/9999/retry")
    conflict = await client.post(f"/queue/items/{live.id}/retry")
    retried = await client.post(f"/queue/items/{dead.id}/retry")

    assert missing.status_code == 404
    assert conflict.status_code == 409
    assert retried.status_code == 200
    assert retried.json()["status"] == "pending"


async def test_queue_stats_and_sync_status(client: AsyncClient, db: Session):
    ingestion_queue_service.enqueue(db, "craft", "document.upsert", "1")

    stats = await client.get("/queue/stats")
    sync = await client.get("/queue/sync-status")

    assert stats.json()["craft"]["pending"] == 1
    by_source = {row["source"]: row for row in sync.json()}
    assert set(by_source) == {"teamwork", "missive", "craft", "files"}
    assert by_source["craft"]["pending_count"] == 1


# =============================================================================
# Internal (scheduled) endpoints
# =============================================================================


async def test_internal_endpoints_disabled_without_secret(client: AsyncClient, monkeypatch):
    monkeypatch.setattr(settings, "INTERNAL_SECRET", "")

    response = await client.post("/internal/scheduled/refresh-stale")

    assert response.status_code == 501


async def test_internal_endpoints_reject_wrong_secret(client: AsyncClient, internal_secret):
    response = await client.post("/internal/scheduled/refresh-stale", headers={"X-Internal-Secret": "nope"})

    assert response.status_code == 403


async def test_refresh_all_endpoint(client: AsyncClient, db: Session, make_task, internal_secret):
    make_task("t1")
    db.commit()

    response = await client.post("/internal/scheduled/refresh-all", headers=internal_secret)

    assert response.status_code == 200
    assert response.json()["segments"] == [
        {"segment": "task", "refreshed": True},
        {"segment": "email", "refreshed": True},
        {"segment": "craft", "refreshed": True},
        {"segment": "file", "refreshed": True},
    ]
    assert db.get(AggregatedItem, ("t1", "task")) is not None


async def test_maintenance_endpoints(client: AsyncClient, internal_secret):
    queue = await client.post("/internal/scheduled/queue-maintenance", headers=internal_secret)
    content = await client.post("/internal/scheduled/content-maintenance", headers=internal_secret)

    assert queue.json() == {"stuck_reset": 0, "completed_purged": 0}
    assert content.status_code == 200
    assert content.json()["stats"]["upload"]["pending"] == 0


# =============================================================================
# Operations
# =============================================================================


async def test_run_operation_and_read_status(client: AsyncClient, db: Session):
    db.add(MContact(id="c1", email="ann@example.com"))
    db.commit()

    started = await client.post("/operations/person_linking")
    assert started.status_code == 201
    run_id = started.json()["run_id"]

    status = await client.get(f"/operations/{run_id}")
    latest = await client.get("/operations/latest/person_linking")

    assert status.json()["status"] == "completed"
    assert status.json()["created_count"] == 1
    assert status.json()["progress_percent"] == 100.0
    assert latest.json()["id"] == run_id


async def test_operation_errors(client: AsyncClient):
    unknown_start = await client.post("/operations/reindex")
    unknown_latest = await client.get("/operations/latest/reindex")
    no_runs = await client.get("/operations/latest/location_linking")
    missing = await client.get(f"/operations/{uuid.uuid4()}")

    assert unknown_start.status_code == 400
    assert unknown_latest.status_code == 400
    assert no_runs.status_code == 404
    assert missing.status_code == 404


# =============================================================================
# Config
# =============================================================================


async def test_read_config_defaults(client: AsyncClient):
    response = await client.get("/config")

    assert response.status_code == 200
    assert response.json() == {
        "version": 0,
        "cost_group_prefixes": ["KGR"],
        "location_prefix": "O-",
        "public_email_addresses": [],
    }


async def test_update_config_requires_admin(client: AsyncClient):
    response = await client.put("/config", json={"location_prefix": "LOC:"})

    assert response.status_code == 403


async def test_update_config_publishes_new_version(client: AsyncClient):
    response = await client.put(
        "/config",
        json={"location_prefix": "LOC:", "public_email_addresses": ["Info@Firm.test"]},
        headers={"X-User-Is-Admin": "true", "X-User-Email": "admin@firm.test"},
    )

    assert response.status_code == 200
    assert response.json()["version"] == 1
    current = (await client.get("/config")).json()
    assert current["location_prefix"] == "LOC:"
    assert current["cost_group_prefixes"] == ["KGR"]
    assert current["public_email_addresses"] == ["info@firm.test"]
