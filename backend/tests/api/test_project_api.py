"""
Tests for the project API endpoints.

Covers CRUD, per-project scan and result listings, and that deleting a
project removes its scans.
"""

from __future__ import annotations

import pytest
from httpx import AsyncClient

from reconsuite.models.scan import ScanStatus


async def _create_project(client: AsyncClient, name: str = "Acme external") -> dict:
    response = await client.post(
        "/api/projects",
        json={"name": name, "description": "Quarterly test", "scope": "acme.test, 10.0.0.0/24"},
    )
    assert response.status_code == 201, response.text
    return response.json()


@pytest.mark.asyncio
async def test_create_and_get_project(client: AsyncClient) -> None:
    project = await _create_project(client)

    assert project["name"] == "Acme external"
    assert project["scope"] == "acme.test, 10.0.0.0/24"
    assert project["created_at"] is not None

    response = await client.get(f"/api/projects/{project['id']}")
    assert response.status_code == 200
    assert response.json() == project


@pytest.mark.asyncio
@pytest.mark.parametrize("payload", [{}, {"name": ""}, {"name": "   "}])
async def test_create_project_requires_name(client: AsyncClient, payload: dict) -> None:
    response = await client.post("/api/projects", json=payload)

    assert response.status_code == 422


@pytest.mark.asyncio
async def test_list_projects(client: AsyncClient) -> None:
    first = await _create_project(client, "First")
    second = await _create_project(client, "Second")

    response = await client.get("/api/projects")

    assert response.status_code == 200
    assert [p["id"] for p in response.json()] == [second["id"], first["id"]]


@pytest.mark.asyncio
async def test_update_project(client: AsyncClient) -> None:
    project = await _create_project(client)

    response = await client.put(
        f"/api/projects/{project['id']}",
        json={"name": "  Renamed  ", "scope": "acme.test"},
    )

    assert response.status_code == 200
    data = response.json()
    assert data["name"] == "Renamed"
    assert data["scope"] == "acme.test"
    assert data["description"] == "Quarterly test"


@pytest.mark.asyncio
async def test_project_not_found(client: AsyncClient) -> None:
    for method, path in (
        ("GET", "/api/projects/999"),
        ("PUT", "/api/projects/999"),
        ("DELETE", "/api/projects/999"),
        ("GET", "/api/projects/999/scans"),
        ("GET", "/api/projects/999/results"),
    ):
        response = await client.request(method, path, json={} if method == "PUT" else None)
        assert response.status_code == 404, path
        assert response.json()["detail"] == "Project with id '999' not found."


@pytest.mark.asyncio
async def test_project_scans_and_results(client: AsyncClient, wait_for_status) -> None:
    project = await _create_project(client)
    created = await client.post(
        "/api/scans",
        json={"target": "acme.test", "tool": "osint_aggregator", "project_id": project["id"]},
    )
    scan_id = created.json()["id"]
    await client.post("/api/scans", json={"target": "other.test", "tool": "osint_aggregator"})
    await wait_for_status(scan_id, ScanStatus.COMPLETED)

    scans = await client.get(f"/api/projects/{project['id']}/scans")
    results = await client.get(f"/api/projects/{project['id']}/results")

    assert [s["id"] for s in scans.json()] == [scan_id]
    assert scans.json()[0]["project_id"] == project["id"]
    assert len(results.json()) == 7
    assert {r["scan_id"] for r in results.json()} == {scan_id}


@pytest.mark.asyncio
async def test_delete_project_removes_scans(client: AsyncClient, wait_for_status) -> None:
    project = await _create_project(client)
    created = await client.post(
        "/api/scans",
        json={"target": "acme.test", "tool": "google_dorking", "project_id": project["id"]},
    )
    scan_id = created.json()["id"]
    await wait_for_status(scan_id, ScanStatus.COMPLETED)

    response = await client.delete(f"/api/projects/{project['id']}")

    assert response.status_code == 200
    assert response.json() == {"status": "deleted"}
    assert (await client.get(f"/api/projects/{project['id']}")).status_code == 404
    assert (await client.get(f"/api/scans/{scan_id}")).status_code == 404
    stats = await client.get("/api/stats")
    assert stats.json() == {"project_count": 0, "scan_count": 0, "result_count": 0}
