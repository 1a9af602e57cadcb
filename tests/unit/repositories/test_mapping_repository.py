"""Unit tests for the generic mapping repository against SQLite."""

import pytest
from sqlalchemy.exc import IntegrityError

from mapping_service.database.models import MappingType
from mapping_service.repositories.mapping_repository import MappingRepository
from mapping_service.services.kinds import ALERTS, COURT_CASES, CSRAS


@pytest.fixture
def csra_repository(db_session):
    return MappingRepository(db_session, CSRAS)


class TestMappingRepository:
    """Tests for MappingRepository."""

    async def test_insert_and_find_by_either_key(self, csra_repository, csra):
        await csra_repository.insert(CSRAS.to_model(csra()))

        by_legacy = await csra_repository.find_by_legacy_key((54321, 2))
        by_modern = await csra_repository.find_by_modern_key("edcd118c-41ba-42ea-b5c4-404b453ad58b")

        assert by_legacy is by_modern
        assert by_legacy.offender_no == "A1234KT"
        assert by_legacy.when_created is not None
        assert await csra_repository.find_by_legacy_key((54321, 3)) is None

    async def test_unique_legacy_key_enforced_by_database(self, csra_repository, db_session, csra):
        await csra_repository.insert(CSRAS.to_model(csra()))

        with pytest.raises(IntegrityError):
            await csra_repository.insert(CSRAS.to_model(csra(dps_id="another")))
        await db_session.rollback()

    async def test_find_by_label_lists_migrated_rows_in_order(self, csra_repository, csra):
        for booking_id, sequence in [(2, 1), (1, 2), (1, 1)]:
            await csra_repository.insert(CSRAS.to_model(
                csra(booking_id=booking_id, sequence=sequence, dps_id=f"dps-{booking_id}-{sequence}",
                     label="2024-03-01T10:00:00", mapping_type=MappingType.MIGRATED)
            ))
        await csra_repository.insert(CSRAS.to_model(csra(
            booking_id=9, sequence=9, dps_id="synchronised", label="2024-03-01T10:00:00",
            mapping_type=MappingType.NOMIS_CREATED,
        )))

        first_page = await csra_repository.find_by_label("2024-03-01T10:00:00", skip=0, limit=2)
        second_page = await csra_repository.find_by_label("2024-03-01T10:00:00", skip=2, limit=2)

        assert [CSRAS.legacy_key(row) for row in first_page] == [(1, 1), (1, 2)]
        assert [CSRAS.legacy_key(row) for row in second_page] == [(2, 1)]
        assert await csra_repository.count_by_label("2024-03-01T10:00:00") == 3
        assert await csra_repository.count_by_label("unknown") == 0

    async def test_count_by_label_grouped(self, csra_repository, csra):
        rows = [(1, 1, "A1111AA"), (1, 2, "A1111AA"), (2, 1, "B2222BB")]
        for booking_id, sequence, offender_no in rows:
            await csra_repository.insert(CSRAS.to_model(
                csra(booking_id=booking_id, sequence=sequence, dps_id=f"dps-{booking_id}-{sequence}",
                     offender_no=offender_no, label="2024-03-01T10:00:00")
            ))

        grouped = await csra_repository.count_by_label_grouped("2024-03-01T10:00:00")

        assert [(group, count) for group, count, _ in grouped] == [("A1111AA", 2), ("B2222BB", 1)]
        assert all(earliest is not None for _, _, earliest in grouped)
        assert await csra_repository.count_groups_by_label("2024-03-01T10:00:00") == 2

    async def test_find_latest_migrated_skips_organic_rows(self, csra_repository, csra):
        assert await csra_repository.find_latest_migrated() is None

        await csra_repository.insert(CSRAS.to_model(
            csra(booking_id=1, sequence=1, dps_id="migrated", mapping_type=MappingType.MIGRATED)
        ))
        await csra_repository.insert(CSRAS.to_model(
            csra(booking_id=1, sequence=2, dps_id="organic", mapping_type=MappingType.NOMIS_CREATED)
        ))

        latest = await csra_repository.find_latest_migrated()
        assert latest.dps_csra_id == "migrated"

    async def test_delete_by_keys_is_idempotent(self, csra_repository, csra):
        await csra_repository.insert(CSRAS.to_model(csra()))

        assert await csra_repository.delete_by_legacy_key((54321, 2)) == 1
        assert await csra_repository.delete_by_legacy_key((54321, 2)) == 0
        assert await csra_repository.delete_by_modern_key("edcd118c-41ba-42ea-b5c4-404b453ad58b") == 0

    async def test_rewrite_legacy_key(self, db_session):
        repository = MappingRepository(db_session, COURT_CASES)
        await repository.insert(COURT_CASES.to_model(
            COURT_CASES.dto(nomis_court_case_id=1, dps_court_case_id="dps-1")
        ))

        assert await repository.rewrite_legacy_key((1,), (2,)) == 1
        assert await repository.rewrite_legacy_key((1,), (3,)) == 0
        assert (await repository.find_by_modern_key("dps-1")).nomis_court_case_id == 2

    async def test_rewrite_legacy_keys_swaps_ids(self, db_session):
        repository = MappingRepository(db_session, COURT_CASES)
        for nomis_id in (1, 2):
            await repository.insert(COURT_CASES.to_model(
                COURT_CASES.dto(nomis_court_case_id=nomis_id, dps_court_case_id=f"dps-{nomis_id}")
            ))

        assert await repository.rewrite_legacy_keys([((1,), (2,)), ((2,), (1,))]) == 2
        assert (await repository.find_by_modern_key("dps-1")).nomis_court_case_id == 2
        assert (await repository.find_by_modern_key("dps-2")).nomis_court_case_id == 1

    async def test_rewrite_group_by_parent_only_touches_that_parent(self, db_session, alert):
        repository = MappingRepository(db_session, ALERTS)
        for booking_id, sequence in [(1, 1), (1, 2), (2, 1)]:
            await repository.insert(ALERTS.to_model(
                alert(booking_id, sequence, f"alert-{booking_id}-{sequence}", offender_no="A")
            ))

        moved = await repository.rewrite_group_by_parent(1, "B")

        assert sorted(row.dps_alert_id for row in moved) == ["alert-1-1", "alert-1-2"]
        assert [row.offender_no for row in await repository.find_by_parent(2)] == ["A"]
        assert len(await repository.find_by_group("B")) == 2
        assert await repository.rewrite_group_by_parent(1, "B") == []

    async def test_rewrite_group(self, db_session, alert):
        repository = MappingRepository(db_session, ALERTS)
        await repository.insert(ALERTS.to_model(alert(1, 1, "alert-1", offender_no="A")))
        await repository.insert(ALERTS.to_model(alert(2, 1, "alert-2", offender_no="C")))

        moved = await repository.rewrite_group("A", "B")

        assert [row.dps_alert_id for row in moved] == ["alert-1"]
        assert await repository.find_by_group("A") == []
        assert [row.dps_alert_id for row in await repository.find_by_group("C")] == ["alert-2"]
