"""
API Integration Tests — Intelligence feed, health report and simulations.
"""

import uuid

import pytest
from httpx import ASGITransport, AsyncClient

from api.deps import get_db, get_tenant_db
from api.main import app
from core.security import create_access_token


@pytest.mark.asyncio
class TestFeedEndpoint:
    async def test_feed_for_branch(self, client: AsyncClient, seeded_db):
        branch_id = str(seeded_db["centro"].branch_id)
        resp = await client.get(f"/api/v1/intelligence/feed?branch_id={branch_id}")
        assert resp.status_code == 200
        data = resp.json()
        assert [a["event_type"] for a in data["alerts"]] == ["low_stock", "fridge_door-open", "idle_inventory_capital"]
        assert [s["event_type"] for s in data["suggestions"]] == ["expense_anomaly", "margin_drift"]
        assert data["loading"] is False
        assert len(data["raw_events"]) == 5

    async def test_alert_shape(self, client: AsyncClient, seeded_db):
        branch_id = str(seeded_db["centro"].branch_id)
        data = (await client.get(f"/api/v1/intelligence/feed?branch_id={branch_id}")).json()
        unknown = data["alerts"][1]
        assert unknown["severity"] == "info"
        assert unknown["type"] == "ADMIN"
        assert unknown["title"] == "FRIDGE DOOR OPEN"
        assert unknown["message"] == "Anomalía detectada."
        assert unknown["metadata"] == {}

        idle = data["alerts"][2]
        assert idle["notice_only"] is True
        assert idle["action_label"] == "Revisar"

    async def test_suggestion_shape(self, client: AsyncClient, seeded_db):
        data = (await client.get("/api/v1/intelligence/feed")).json()
        margin = next(s for s in data["suggestions"] if s["event_type"] == "margin_drift")
        assert margin["title"] == "Desviación de Margen en Hamburguesa"
        assert margin["impact_financial"] == "$120.50"
        assert margin["action_label"] == "Ver Simulación"
        assert margin["source_record_id"] == str(seeded_db["burger"].id)

    async def test_global_feed(self, client: AsyncClient, seeded_db):
        resp = await client.get("/api/v1/intelligence/feed?branch_id=GLOBAL")
        assert resp.status_code == 200
        event_types = [a["event_type"] for a in resp.json()["alerts"]]
        assert "void_spike" in event_types
        assert "cash_shortage" not in event_types

    async def test_invalid_branch(self, client: AsyncClient, seeded_db):
        resp = await client.get("/api/v1/intelligence/feed?branch_id=centro")
        assert resp.status_code == 422

    async def test_empty_feed(self, client: AsyncClient):
        resp = await client.get("/api/v1/intelligence/feed")
        assert resp.status_code == 200
        data = resp.json()
        assert data["alerts"] == []
        assert data["suggestions"] == []
        assert data["health_report"] is None


@pytest.mark.asyncio
class TestHealthReportEndpoint:
    async def test_report(self, client: AsyncClient, seeded_db):
        resp = await client.get("/api/v1/intelligence/health-report")
        assert resp.status_code == 200
        data = resp.json()
        assert data["event_type"] == "margin_drift"
        assert data["title"] == "Margen crítico detectado en: Hamburguesa."
        assert data["impact_label"] == "IMPACTO ESTIMADO"

    async def test_no_report(self, client: AsyncClient):
        resp = await client.get("/api/v1/intelligence/health-report")
        assert resp.status_code == 200
        assert resp.json() is None


@pytest.mark.asyncio
class TestSimulateEndpoint:
    async def test_margin_simulation(self, client: AsyncClient, seeded_db):
        event_id = seeded_db["events"]["margin_drift"].id
        branch_id = seeded_db["centro"].branch_id
        resp = await client.post(f"/api/v1/intelligence/suggestions/{event_id}/simulate?branch_id={branch_id}")
        assert resp.status_code == 200
        data = resp.json()

        assert data["read_only"] is True
        assert data["badge"] == "100% READ-ONLY • LEDGER SAFE"
        assert "no aplica cambios reales" in data["disclaimer_title"]
        assert "manualmente" in data["disclaimer"]

        result = data["result"]
        assert result["strategy"] == "margin_adjustment"
        assert result["dish"] == "Hamburguesa"
        assert result["branch"] == "Sucursal: Centro"
        assert result["simulated_price"] == pytest.approx(8.0)
        assert result["monthly_impact"] == pytest.approx(-180.0)
        assert result["cost_source"] == "branch_snapshot"
        assert result["table_rows"][0] == {"label": "Precio Venta", "actual": "$10.00", "simulated": "$8.00"}

    async def test_expense_simulation(self, client: AsyncClient, seeded_db):
        event_id = seeded_db["events"]["expense_anomaly"].id
        resp = await client.post(f"/api/v1/intelligence/suggestions/{event_id}/simulate")
        assert resp.status_code == 200
        result = resp.json()["result"]
        assert result["strategy"] == "expense_reduction"
        assert result["branch"] == "Global Multi-Sucursal"
        assert result["monthly_impact"] == pytest.approx(300.0)

    async def test_unknown_event(self, client: AsyncClient, seeded_db):
        resp = await client.post(f"/api/v1/intelligence/suggestions/{uuid.uuid4()}/simulate")
        assert resp.status_code == 404

    async def test_alert_cannot_be_simulated(self, client: AsyncClient, seeded_db):
        event_id = seeded_db["events"]["low_stock"].id
        resp = await client.post(f"/api/v1/intelligence/suggestions/{event_id}/simulate")
        assert resp.status_code == 422

    async def test_invalid_branch(self, client: AsyncClient, seeded_db):
        event_id = seeded_db["events"]["margin_drift"].id
        resp = await client.post(f"/api/v1/intelligence/suggestions/{event_id}/simulate?branch_id=nope")
        assert resp.status_code == 422


@pytest.mark.asyncio
class TestAuth:
    async def test_health_check(self, client: AsyncClient):
        resp = await client.get("/health")
        assert resp.status_code == 200
        assert resp.json()["status"] == "healthy"

    async def test_missing_token_rejected(self):
        async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
            resp = await ac.get("/api/v1/intelligence/feed")
        assert resp.status_code in (401, 403)

    async def test_bearer_token_scopes_tenant(self, test_db, seeded_db):
        async def override_get_db():
            yield test_db

        async def override_get_tenant_db():
            return test_db

        app.dependency_overrides[get_db] = override_get_db
        app.dependency_overrides[get_tenant_db] = override_get_tenant_db
        try:
            token = create_access_token({"sub": "owner", "tenant_id": str(uuid.uuid4())})
            async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
                resp = await ac.get(
                    "/api/v1/intelligence/feed", headers={"Authorization": f"Bearer {token}"}
                )
        finally:
            app.dependency_overrides.clear()

        assert resp.status_code == 200
        assert resp.json()["alerts"] == []
