"""Tests for the secret value routes."""

from unittest.mock import patch

import pytest

from native_secrets.exceptions import Conflict, StoreUnavailable

ALICE = {"X-Auth-Request-Email": "alice@x.com"}
BOB = {"X-Auth-Request-Email": "bob@x.com"}

URL = "/api/namespaces/team-a/secrets"


async def _create(client, key="DB_PASS", value="s3cr3t", headers=ALICE):
    res = await client.post(URL, json={"key": key, "value": value}, headers=headers)
    assert res.status_code == 200, res.text
    return res


# ─── Identity ────────────────────────────────────────────────────────────


@pytest.mark.asyncio
async def test_list_requires_identity(test_client):
    res = await test_client.get(URL)
    assert res.status_code == 401
    assert res.json() == {"error": "Unauthorized"}


@pytest.mark.asyncio
async def test_blank_identity_rejected(test_client):
    res = await test_client.get(URL, headers={"X-Auth-Request-Email": "  "})
    assert res.status_code == 401


@pytest.mark.asyncio
async def test_correlation_id_echoed(test_client):
    res = await test_client.get(URL, headers={**ALICE, "X-Correlation-Id": "trace-123"})
    assert res.headers["x-correlation-id"] == "trace-123"


@pytest.mark.asyncio
async def test_correlation_id_generated(test_client):
    res = await test_client.get(URL, headers=ALICE)
    assert len(res.headers["x-correlation-id"]) == 32


# ─── Create / update ─────────────────────────────────────────────────────


@pytest.mark.asyncio
async def test_create_and_list(test_client):
    res = await _create(test_client)
    assert res.json() == {"success": True}

    res = await test_client.get(URL, headers=ALICE)
    assert res.status_code == 200
    data = res.json()
    entry = data["secrets"]["DB_PASS"]
    assert entry["value"] == "s3cr3t"
    assert entry["hasAccess"] is True
    assert entry["metadata"]["owner"] == "alice@x.com"
    assert entry["metadata"]["fingerprint"].startswith("sha256:")
    assert data["metadata"]["namespace"] == "team-a"


@pytest.mark.asyncio
async def test_list_redacted_for_other_user(test_client):
    await _create(test_client)

    res = await test_client.get(URL, headers=BOB)
    entry = res.json()["secrets"]["DB_PASS"]
    assert entry == {
        "value": None,
        "hasAccess": False,
        "metadata": {"owner": "alice@x.com", "hasAccess": False},
    }


@pytest.mark.asyncio
async def test_create_requires_key_and_value(test_client):
    res = await test_client.post(URL, json={"key": "DB_PASS"}, headers=ALICE)
    assert res.status_code == 400
    assert res.json() == {"error": "Key and value are required"}

    res = await test_client.post(URL, json={"value": "x"}, headers=ALICE)
    assert res.status_code == 400


@pytest.mark.asyncio
async def test_create_invalid_key(test_client):
    res = await test_client.post(URL, json={"key": "a b", "value": "x"}, headers=ALICE)
    assert res.status_code == 400


@pytest.mark.asyncio
async def test_update_by_non_owner_forbidden(test_client):
    await _create(test_client)
    res = await test_client.post(URL, json={"key": "DB_PASS", "value": "x"}, headers=BOB)
    assert res.status_code == 403
    assert "owner" in res.json()["error"]


@pytest.mark.asyncio
async def test_create_without_identity(test_client):
    res = await test_client.post(URL, json={"key": "DB_PASS", "value": "x"})
    assert res.status_code == 401


# ─── Delete ──────────────────────────────────────────────────────────────


@pytest.mark.asyncio
async def test_delete(test_client):
    await _create(test_client)
    res = await test_client.delete(URL, params={"key": "DB_PASS"}, headers=ALICE)
    assert res.status_code == 200
    assert res.json() == {"success": True}

    res = await test_client.get(URL, headers=ALICE)
    assert res.json()["secrets"] == {}


@pytest.mark.asyncio
async def test_delete_requires_key(test_client):
    res = await test_client.delete(URL, headers=ALICE)
    assert res.status_code == 400
    assert res.json() == {"error": "Key is required"}


@pytest.mark.asyncio
async def test_delete_missing(test_client):
    res = await test_client.delete(URL, params={"key": "NOPE"}, headers=ALICE)
    assert res.status_code == 404


@pytest.mark.asyncio
async def test_delete_by_non_owner(test_client):
    await _create(test_client)
    res = await test_client.delete(URL, params={"key": "DB_PASS"}, headers=BOB)
    assert res.status_code == 403


# ─── Store failures ──────────────────────────────────────────────────────


@pytest.mark.asyncio
async def test_conflict_maps_to_409(test_client, api_engine):
    with patch.object(
        api_engine, "upsert_secret", side_effect=Conflict("gave up", namespace="team-a")
    ):
        res = await test_client.post(URL, json={"key": "K", "value": "v"}, headers=ALICE)
    assert res.status_code == 409
    assert res.json() == {"error": "gave up"}


@pytest.mark.asyncio
async def test_store_unavailable_maps_to_503(test_client, api_engine):
    with patch.object(
        api_engine, "list_secrets", side_effect=StoreUnavailable("read secret failed")
    ):
        res = await test_client.get(URL, headers=ALICE)
    assert res.status_code == 503
    assert res.json() == {"error": "read secret failed"}


@pytest.mark.asyncio
async def test_corrupt_metadata_maps_to_503(test_client, store):
    store.put_raw_metadata("team-a", "{broken")
    res = await test_client.get(URL, headers=ALICE)
    assert res.status_code == 503
    assert "unreadable" in res.json()["error"]


# ─── Malformed bodies ────────────────────────────────────────────────────


@pytest.mark.asyncio
async def test_upsert_empty_body_is_bad_request(test_client):
    res = await test_client.post(URL, headers=ALICE)
    assert res.status_code == 400
    assert res.json() == {"error": "Request body must be a JSON object"}


@pytest.mark.asyncio
async def test_upsert_unparseable_body_is_bad_request(test_client):
    res = await test_client.post(
        URL, content=b"{not json", headers={**ALICE, "Content-Type": "application/json"}
    )
    assert res.status_code == 400
    assert "error" in res.json()


@pytest.mark.asyncio
async def test_upsert_wrong_field_type_names_field(test_client):
    res = await test_client.post(URL, json={"key": ["DB_PASS"], "value": "x"}, headers=ALICE)
    assert res.status_code == 400
    assert res.json() == {"error": "key required"}
