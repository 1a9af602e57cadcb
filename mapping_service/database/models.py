"""SQLAlchemy models for all mapping tables.

Every mapping table pairs a legacy (NOMIS) key, one or more columns under a
unique constraint, with a modern (DPS) key that is the primary key.
"""

from datetime import datetime, timezone
from enum import Enum

from sqlalchemy import (
    BigInteger,
    Enum as SAEnum,
    Integer,
    String,
    TIMESTAMP,
    UniqueConstraint,
    func,
)
from sqlalchemy.orm import Mapped, mapped_column

from mapping_service.core.database import Base


class MappingType(str, Enum):
    """Which side a mapping originated from."""

    MIGRATED = "MIGRATED"
    NOMIS_CREATED = "NOMIS_CREATED"
    DPS_CREATED = "DPS_CREATED"


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class MappingMixin:
    """Columns shared by every mapping table."""

    label: Mapped[str | None] = mapped_column(String(20), nullable=True, index=True)
    mapping_type: Mapped[MappingType] = mapped_column(
        SAEnum(MappingType, name="mapping_type", native_enum=False, length=20),
        nullable=False,
        default=MappingType.DPS_CREATED,
    )
    # Set once on insert, never updated
    when_created: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True), nullable=False, default=utc_now, server_default=func.now()
    )


class CourtCaseMapping(MappingMixin, Base):
    """Court case mapping, the root of the court sentencing tree."""

    __tablename__ = "court_case_mappings"

    dps_court_case_id: Mapped[str] = mapped_column(String(64), primary_key=True)
    nomis_court_case_id: Mapped[int] = mapped_column(BigInteger, nullable=False, unique=True)


class CourtAppearanceMapping(MappingMixin, Base):
    """Court appearance mapping owned by a court case."""

    __tablename__ = "court_appearance_mappings"

    dps_court_appearance_id: Mapped[str] = mapped_column(String(64), primary_key=True)
    nomis_court_appearance_id: Mapped[int] = mapped_column(BigInteger, nullable=False, unique=True)
    dps_court_case_id: Mapped[str | None] = mapped_column(String(64), nullable=True, index=True)


class CourtChargeMapping(MappingMixin, Base):
    """Court charge (offender charge) mapping owned by a court case."""

    __tablename__ = "court_charge_mappings"

    dps_court_charge_id: Mapped[str] = mapped_column(String(64), primary_key=True)
    nomis_court_charge_id: Mapped[int] = mapped_column(BigInteger, nullable=False, unique=True)
    dps_court_case_id: Mapped[str | None] = mapped_column(String(64), nullable=True, index=True)


class SentenceMapping(MappingMixin, Base):
    """Sentence mapping keyed by booking and sentence sequence."""

    __tablename__ = "sentence_mappings"
    __table_args__ = (
        UniqueConstraint("nomis_booking_id", "nomis_sentence_sequence", name="uq_sentence_mappings_nomis"),
    )

    dps_sentence_id: Mapped[str] = mapped_column(String(64), primary_key=True)
    nomis_booking_id: Mapped[int] = mapped_column(BigInteger, nullable=False)
    nomis_sentence_sequence: Mapped[int] = mapped_column(Integer, nullable=False)
    dps_court_case_id: Mapped[str | None] = mapped_column(String(64), nullable=True, index=True)


class SentenceTermMapping(MappingMixin, Base):
    """Sentence term mapping keyed by booking, sentence and term sequence."""

    __tablename__ = "sentence_term_mappings"
    __table_args__ = (
        UniqueConstraint(
            "nomis_booking_id",
            "nomis_sentence_sequence",
            "nomis_term_sequence",
            name="uq_sentence_term_mappings_nomis",
        ),
    )

    dps_term_id: Mapped[str] = mapped_column(String(64), primary_key=True)
    nomis_booking_id: Mapped[int] = mapped_column(BigInteger, nullable=False)
    nomis_sentence_sequence: Mapped[int] = mapped_column(Integer, nullable=False)
    nomis_term_sequence: Mapped[int] = mapped_column(Integer, nullable=False)
    dps_court_case_id: Mapped[str | None] = mapped_column(String(64), nullable=True, index=True)


class CsraMapping(MappingMixin, Base):
    """CSRA (cell sharing risk assessment) mapping."""

    __tablename__ = "csra_mappings"
    __table_args__ = (
        UniqueConstraint("nomis_booking_id", "nomis_sequence", name="uq_csra_mappings_nomis"),
    )

    dps_csra_id: Mapped[str] = mapped_column(String(64), primary_key=True)
    nomis_booking_id: Mapped[int] = mapped_column(BigInteger, nullable=False, index=True)
    nomis_sequence: Mapped[int] = mapped_column(Integer, nullable=False)
    offender_no: Mapped[str] = mapped_column(String(10), nullable=False, index=True)


class AlertMapping(MappingMixin, Base):
    """Alert mapping keyed by booking and alert sequence."""

    __tablename__ = "alert_mappings"
    __table_args__ = (
        UniqueConstraint("nomis_booking_id", "nomis_alert_sequence", name="uq_alert_mappings_nomis"),
    )

    dps_alert_id: Mapped[str] = mapped_column(String(64), primary_key=True)
    nomis_booking_id: Mapped[int] = mapped_column(BigInteger, nullable=False, index=True)
    nomis_alert_sequence: Mapped[int] = mapped_column(Integer, nullable=False)
    offender_no: Mapped[str] = mapped_column(String(10), nullable=False, index=True)


class TransactionMapping(MappingMixin, Base):
    """Financial transaction mapping."""

    __tablename__ = "transaction_mappings"

    dps_transaction_id: Mapped[str] = mapped_column(String(64), primary_key=True)
    nomis_transaction_id: Mapped[int] = mapped_column(BigInteger, nullable=False, unique=True)
    offender_no: Mapped[str] = mapped_column(String(10), nullable=False, index=True)
    nomis_booking_id: Mapped[int | None] = mapped_column(BigInteger, nullable=True, index=True)


class GroupMigration(Base):
    """Records which migration run last replaced a group's mappings."""

    __tablename__ = "group_migrations"

    kind: Mapped[str] = mapped_column(String(40), primary_key=True)
    group_key: Mapped[str] = mapped_column(String(40), primary_key=True)
    label: Mapped[str] = mapped_column(String(20), nullable=False)
    mappings_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    when_created: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True), nullable=False, default=utc_now, server_default=func.now()
    )
