"""Tests for the generic mapping endpoints."""

from datetime import datetime, timezone
from unittest.mock import AsyncMock

import pytest
from fastapi.testclient import TestClient

from mapping_service.core.dependencies import get_kind_reconciliation_service, get_mapping_service
from mapping_service.core.exceptions import DuplicateMappingError, NotFoundError
from mapping_service.main import app
from mapping_service.schemas.common import GroupCount, Page
from mapping_service.schemas.mappings import MovedMapping
from mapping_service.services.kinds import CSRAS
from mapping_service.services.mapping_service import MappingService
from mapping_service.services.reconciliation_service import ReconciliationService

BASE = "/api/v1/mapping/csras"
DPS_ID = "edcd118c-41ba-42ea-b5c4-404b453ad58b"


@pytest.fixture
def mock_service() -> AsyncMock:
    service = AsyncMock(spec=MappingService)
    service.kind = CSRAS
    app.dependency_overrides[get_mapping_service] = lambda: service
    return service


@pytest.fixture
def stored(csra):
    return csra(when_created=datetime(2024, 3, 1, 10, 0, tzinfo=timezone.utc))


class TestCreateEndpoints:
    """Tests for POST /mapping/{kind} and its batch variant."""

    def test_create_mapping(self, test_client: TestClient, mock_service: AsyncMock, stored) -> None:
        mock_service.create.return_value = stored

        response = test_client.post(BASE, json={
            "nomis_booking_id": 54321,
            "nomis_sequence": 2,
            "dps_csra_id": DPS_ID,
            "offender_no": "A1234KT",
            "mapping_type": "MIGRATED",
        })

        assert response.status_code == 201
        body = response.json()
        assert body["data"]["dps_csra_id"] == DPS_ID
        sent = mock_service.create.call_args.args[0]
        assert sent.nomis_booking_id == 54321
        assert sent.mapping_type.value == "MIGRATED"

    def test_create_duplicate_returns_409_with_both_mappings(
        self, test_client: TestClient, mock_service: AsyncMock, stored, csra
    ) -> None:
        duplicate = csra(dps_id="e52d7268-6e10-41a8-a0b9-2319b32520d6")
        mock_service.create.side_effect = DuplicateMappingError(
            "Conflict: csras mapping already exists for NOMIS id",
            existing=stored,
            duplicate=duplicate,
            kind="csras",
        )

        response = test_client.post(BASE, json=duplicate.model_dump(mode="json"))

        assert response.status_code == 409
        detail = response.json()["detail"]
        assert detail["status"] == 409
        assert detail["error_code"] == 1409
        assert detail["more_info"]["existing"]["dps_csra_id"] == DPS_ID
        assert detail["more_info"]["duplicate"]["dps_csra_id"] == "e52d7268-6e10-41a8-a0b9-2319b32520d6"

    def test_create_invalid_body_returns_400(self, test_client: TestClient, mock_service: AsyncMock) -> None:
        response = test_client.post(BASE, json={"nomis_booking_id": 54321})

        assert response.status_code == 400
        mock_service.create.assert_not_called()

    def test_create_batch(self, test_client: TestClient, mock_service: AsyncMock, stored, csra) -> None:
        mock_service.create_batch.return_value = [stored]

        response = test_client.post(f"{BASE}/batch", json=[csra().model_dump(mode="json")])

        assert response.status_code == 201
        assert len(response.json()["data"]["items"]) == 1


class TestReadEndpoints:
    """Tests for lookups and listings."""

    def test_get_by_nomis_id_parses_key(self, test_client: TestClient, mock_service: AsyncMock, stored) -> None:
        mock_service.get_by_legacy_key.return_value = stored

        response = test_client.get(f"{BASE}/nomis/54321/2")

        assert response.status_code == 200
        mock_service.get_by_legacy_key.assert_awaited_once_with((54321, 2))

    def test_get_by_nomis_id_with_wrong_arity(self, test_client: TestClient, mock_service: AsyncMock) -> None:
        response = test_client.get(f"{BASE}/nomis/54321")

        assert response.status_code == 400
        mock_service.get_by_legacy_key.assert_not_called()

    def test_get_by_dps_id_not_found(self, test_client: TestClient, mock_service: AsyncMock) -> None:
        mock_service.get_by_modern_key.side_effect = NotFoundError("No csras mapping found")

        response = test_client.get(f"{BASE}/dps/missing")

        assert response.status_code == 404
        assert response.json()["detail"]["title"] == "Mapping Not Found"

    def test_list_by_migration_id(self, test_client: TestClient, mock_service: AsyncMock, stored) -> None:
        mock_service.list_by_label.return_value = Page(items=[stored], total=1, page=0, size=5, total_pages=1)

        response = test_client.get(f"{BASE}/migration-id/2024-03-01T10:00:00", params={"page": 0, "size": 5})

        assert response.status_code == 200
        assert response.json()["data"]["total"] == 1
        mock_service.list_by_label.assert_awaited_once_with("2024-03-01T10:00:00", page=0, size=5)

    def test_list_grouped_by_prisoner(self, test_client: TestClient, mock_service: AsyncMock) -> None:
        mock_service.list_by_label_grouped.return_value = Page(
            items=[GroupCount(group_key="A1234KT", count=3)], total=1, page=0, size=20, total_pages=1
        )

        response = test_client.get(f"{BASE}/migration-id/2024-03-01T10:00:00/grouped-by-prisoner")

        assert response.status_code == 200
        assert response.json()["data"]["items"][0] == {
            "group_key": "A1234KT", "count": 3, "earliest_when_created": None
        }

    def test_invalid_page_size_returns_400(self, test_client: TestClient, mock_service: AsyncMock) -> None:
        response = test_client.get(f"{BASE}/migration-id/2024-03-01T10:00:00", params={"size": 0})

        assert response.status_code == 400
        mock_service.list_by_label.assert_not_called()

    def test_latest_migrated_not_found(self, test_client: TestClient, mock_service: AsyncMock) -> None:
        mock_service.get_latest_migrated.side_effect = NotFoundError("No migrated csras mapping found")

        response = test_client.get(f"{BASE}/migrated/latest")

        assert response.status_code == 404

    def test_unknown_kind_returns_404(self, test_client: TestClient) -> None:
        response = test_client.get("/api/v1/mapping/visits/dps/123")

        assert response.status_code == 404
        assert "visits" in response.json()["detail"]["detail"]


class TestWriteEndpoints:
    """Tests for group replace and deletes."""

    def test_replace_group(self, test_client: TestClient, mock_service: AsyncMock, stored, csra) -> None:
        mock_service.create_or_replace_for_group.return_value = [stored]

        response = test_client.put(f"{BASE}/groups/A1234KT", json={
            "label": "2024-03-01T10:00:00",
            "mappings": [csra().model_dump(mode="json")],
        })

        assert response.status_code == 200
        args, kwargs = mock_service.create_or_replace_for_group.call_args
        assert args[0] == "A1234KT"
        assert kwargs["label"] == "2024-03-01T10:00:00"

    def test_replace_group_after_merge(self, test_client: TestClient, mock_service: AsyncMock, stored, csra) -> None:
        mock_service.replace_for_group_after_merge.return_value = [stored]

        response = test_client.put(f"{BASE}/groups/A1234KT/merge", json={
            "removed_group_key": "B5678KT",
            "label": "2024-05-01T10:00:00",
            "mappings": [csra().model_dump(mode="json")],
        })

        assert response.status_code == 200
        args, kwargs = mock_service.replace_for_group_after_merge.call_args
        assert args[:2] == ("A1234KT", "B5678KT")
        assert [dto.dps_csra_id for dto in args[2]] == [DPS_ID]
        assert kwargs["label"] == "2024-05-01T10:00:00"

    def test_replace_group_after_merge_needs_removed_prisoner(
        self, test_client: TestClient, mock_service: AsyncMock
    ) -> None:
        response = test_client.put(f"{BASE}/groups/A1234KT/merge", json={"mappings": []})

        assert response.status_code == 400
        mock_service.replace_for_group_after_merge.assert_not_called()

    def test_delete_by_nomis_id(self, test_client: TestClient, mock_service: AsyncMock) -> None:
        mock_service.delete_by_legacy_key.return_value = 0

        response = test_client.delete(f"{BASE}/nomis/54321/2")

        assert response.status_code == 204
        mock_service.delete_by_legacy_key.assert_awaited_once_with((54321, 2))

    def test_delete_by_dps_id(self, test_client: TestClient, mock_service: AsyncMock) -> None:
        mock_service.delete_by_modern_key.return_value = 1

        response = test_client.delete(f"{BASE}/dps/{DPS_ID}")

        assert response.status_code == 204

    def test_delete_all(self, test_client: TestClient, mock_service: AsyncMock) -> None:
        mock_service.delete_all.return_value = 3

        response = test_client.delete(BASE)

        assert response.status_code == 204
        mock_service.delete_all.assert_awaited_once()


class TestKindMergeEndpoints:
    """Tests for merges limited to one kind."""

    def test_merge_within_kind(self, test_client: TestClient) -> None:
        service = AsyncMock(spec=ReconciliationService)
        service.merge_group.return_value = [MovedMapping(kind="csras", mapping={"dps_csra_id": DPS_ID})]
        app.dependency_overrides[get_kind_reconciliation_service] = lambda: service

        response = test_client.put(f"{BASE}/merge/from/A1234KT/to/B5678KT")

        assert response.status_code == 200
        assert response.json()["data"]["items"][0]["kind"] == "csras"
        service.merge_group.assert_awaited_once_with("A1234KT", "B5678KT")

    def test_move_booking_within_kind(self, test_client: TestClient) -> None:
        service = AsyncMock(spec=ReconciliationService)
        service.move_by_parent_id.return_value = []
        app.dependency_overrides[get_kind_reconciliation_service] = lambda: service

        response = test_client.put(f"{BASE}/merge/booking-id/54321/to/B5678KT")

        assert response.status_code == 200
        assert response.json()["data"]["items"] == []
        service.move_by_parent_id.assert_awaited_once_with(54321, "B5678KT")


def test_correlation_id_is_echoed(test_client: TestClient, mock_service: AsyncMock) -> None:
    mock_service.get_by_modern_key.side_effect = NotFoundError("No csras mapping found")

    response = test_client.get(f"{BASE}/dps/missing", headers={"X-Correlation-ID": "abc-123"})

    assert response.headers["X-Correlation-ID"] == "abc-123"
    assert response.json()["detail"]["request_id"] == "abc-123"
