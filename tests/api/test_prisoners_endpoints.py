"""Tests for the prisoner merge and booking move endpoints, plus health."""

from unittest.mock import AsyncMock, patch

import pytest
from fastapi.testclient import TestClient

from mapping_service.core.database import db_client
from mapping_service.core.dependencies import get_reconciliation_service
from mapping_service.core.exceptions import StorageError, ValidationError
from mapping_service.main import app
from mapping_service.schemas.mappings import MovedMapping
from mapping_service.services.reconciliation_service import ReconciliationService

BASE = "/api/v1/mapping/prisoners"


@pytest.fixture
def mock_service() -> AsyncMock:
    service = AsyncMock(spec=ReconciliationService)
    app.dependency_overrides[get_reconciliation_service] = lambda: service
    return service


def moved_alert(dps_id: str, offender_no: str) -> MovedMapping:
    return MovedMapping(
        kind="alerts",
        mapping={"nomis_booking_id": 1, "nomis_alert_sequence": 1, "dps_alert_id": dps_id, "offender_no": offender_no},
    )


class TestPrisonerEndpoints:
    """Tests for prisoner level reconciliation."""

    def test_merge(self, test_client: TestClient, mock_service: AsyncMock) -> None:
        mock_service.merge_group.return_value = [moved_alert("alert-1", "B5678KT")]

        response = test_client.put(f"{BASE}/merge/from/A1234KT/to/B5678KT")

        assert response.status_code == 200
        body = response.json()
        assert body["data"]["items"][0]["mapping"]["offender_no"] == "B5678KT"
        mock_service.merge_group.assert_awaited_once_with("A1234KT", "B5678KT")

    def test_merge_into_itself_returns_400(self, test_client: TestClient, mock_service: AsyncMock) -> None:
        mock_service.merge_group.side_effect = ValidationError("Cannot merge A1234KT into itself")

        response = test_client.put(f"{BASE}/merge/from/A1234KT/to/A1234KT")

        assert response.status_code == 400
        assert response.json()["detail"]["detail"] == "Cannot merge A1234KT into itself"

    def test_list_booking_mappings(self, test_client: TestClient, mock_service: AsyncMock) -> None:
        mock_service.find_by_parent_id.return_value = [moved_alert("alert-1", "A1234KT")]

        response = test_client.get(f"{BASE}/move-booking/1")

        assert response.status_code == 200
        assert len(response.json()["data"]["items"]) == 1
        mock_service.find_by_parent_id.assert_awaited_once_with(1)

    def test_move_booking(self, test_client: TestClient, mock_service: AsyncMock) -> None:
        mock_service.move_by_parent_id.return_value = [moved_alert("alert-1", "B5678KT")]

        response = test_client.put(f"{BASE}/move-booking/1/from/A1234KT/to/B5678KT")

        assert response.status_code == 200
        mock_service.move_by_parent_id.assert_awaited_once_with(1, "B5678KT", from_group="A1234KT")

    def test_move_booking_from_wrong_prisoner(self, test_client: TestClient, mock_service: AsyncMock) -> None:
        mock_service.move_by_parent_id.side_effect = ValidationError(
            "Booking 1 mappings belong to A1234KT, not C0000CC"
        )

        response = test_client.put(f"{BASE}/move-booking/1/from/C0000CC/to/B5678KT")

        assert response.status_code == 400

    def test_move_booking_needs_numeric_id(self, test_client: TestClient, mock_service: AsyncMock) -> None:
        response = test_client.put(f"{BASE}/move-booking/abc/from/A1234KT/to/B5678KT")

        assert response.status_code == 400
        mock_service.move_by_parent_id.assert_not_called()

    def test_store_failure_returns_500(self, test_client: TestClient, mock_service: AsyncMock) -> None:
        mock_service.merge_group.side_effect = StorageError("Mapping store failure")

        response = test_client.put(f"{BASE}/merge/from/A1234KT/to/B5678KT")

        assert response.status_code == 500
        assert response.json()["detail"]["title"] == "Internal Server Error"


class TestHealthEndpoint:
    """Tests for /health."""

    def test_healthy(self, test_client: TestClient) -> None:
        with patch.object(db_client, "health_check", AsyncMock(return_value={"status": "healthy"})):
            response = test_client.get("/health/")

        assert response.status_code == 200
        assert response.json()["status"] == "healthy"
        assert response.json()["database"] == "healthy"

    def test_degraded_when_database_down(self, test_client: TestClient) -> None:
        with patch.object(db_client, "health_check", AsyncMock(return_value={"status": "unhealthy"})):
            response = test_client.get("/health/")

        assert response.status_code == 200
        assert response.json()["status"] == "degraded"

    def test_missing_tables_reported(self, test_client: TestClient) -> None:
        report = {"status": "degraded", "dialect": "postgresql", "missing_tables": ["alert_mappings"]}
        with patch.object(db_client, "health_check", AsyncMock(return_value=report)):
            response = test_client.get("/health/")

        assert response.json()["status"] == "degraded"
        assert response.json()["missing_tables"] == ["alert_mappings"]

    def test_root(self, test_client: TestClient) -> None:
        response = test_client.get("/")

        assert response.status_code == 200
        assert response.json()["health"] == "/health"
        assert "csras" in response.json()["kinds"]
