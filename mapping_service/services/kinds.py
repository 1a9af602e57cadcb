"""Entity kind declarations.

A ``MappingKind`` tells the generic store and services which model, DTO and
columns make up one kind of mapping. Adding a kind means adding a model, a DTO
and one entry in ``KINDS``; no operation is written per kind.
"""

from dataclasses import dataclass
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple, Type

from pydantic import ValidationError as PydanticValidationError

from mapping_service.core.exceptions import NotFoundError, ValidationError
from mapping_service.database.models import (
    AlertMapping,
    CourtAppearanceMapping,
    CourtCaseMapping,
    CourtChargeMapping,
    CsraMapping,
    SentenceMapping,
    SentenceTermMapping,
    TransactionMapping,
)
from mapping_service.schemas.mappings import (
    AlertMappingDto,
    CourtAppearanceMappingDto,
    CourtCaseMappingDto,
    CourtChargeMappingDto,
    CsraMappingDto,
    MappingDto,
    SentenceMappingDto,
    SentenceTermMappingDto,
    TransactionMappingDto,
)

LegacyKey = Tuple[Any, ...]


@dataclass(frozen=True)
class MappingKind:
    """Declaration of one mapping table.

    Attributes:
        name: URL name of the kind, e.g. ``csras``
        model: SQLAlchemy model backing the store
        dto: Pydantic model used on the wire
        legacy_fields: Columns forming the legacy key, in key order
        modern_field: Column holding the modern key
        group_field: Column holding the natural grouping key (prisoner number)
        parent_field: Column holding the coarser id used to move rows (booking id)
        owner_field: Column linking a composite child row to its parent
    """

    name: str
    model: Type[Any]
    dto: Type[MappingDto]
    legacy_fields: Tuple[str, ...]
    modern_field: str
    group_field: Optional[str] = None
    parent_field: Optional[str] = None
    owner_field: Optional[str] = None

    @property
    def columns(self) -> List[str]:
        return [column.key for column in self.model.__table__.columns]

    def legacy_key(self, obj: Any) -> LegacyKey:
        return tuple(getattr(obj, field) for field in self.legacy_fields)

    def modern_key(self, obj: Any) -> str:
        return getattr(obj, self.modern_field)

    def group_key(self, obj: Any) -> Optional[str]:
        return getattr(obj, self.group_field) if self.group_field else None

    def describe_legacy_key(self, key: Sequence[Any]) -> str:
        return ", ".join(f"{field}={value}" for field, value in zip(self.legacy_fields, key))

    def parse_legacy_key(self, parts: Sequence[str]) -> LegacyKey:
        """Convert path segments into a typed legacy key."""
        if len(parts) != len(self.legacy_fields):
            raise ValidationError(
                f"{self.name} legacy key needs {len(self.legacy_fields)} component(s) "
                f"({', '.join(self.legacy_fields)}), got {len(parts)}"
            )
        key = []
        for part, field in zip(parts, self.legacy_fields):
            python_type = self.model.__table__.c[field].type.python_type
            try:
                key.append(python_type(part))
            except ValueError as e:
                raise ValidationError(f"Invalid value '{part}' for {field}", original_error=e) from e
        return tuple(key)

    def validate(self, payload: Mapping[str, Any]) -> MappingDto:
        """Validate a raw request body into this kind's DTO."""
        try:
            return self.dto.model_validate(payload)
        except PydanticValidationError as e:
            raise ValidationError(f"Invalid {self.name} mapping: {e}", original_error=e) from e

    def check_dto(self, dto: MappingDto) -> MappingDto:
        if not isinstance(dto, self.dto):
            raise ValidationError(f"Expected a {self.dto.__name__} for {self.name}")
        return dto

    def to_model(self, dto: MappingDto) -> Any:
        # when_created is always assigned by the store
        values = {column: getattr(dto, column) for column in self.columns if column != "when_created"}
        return self.model(**values)

    def to_dto(self, row: Any) -> MappingDto:
        return self.dto.model_validate(row)

    def require_group(self) -> str:
        if not self.group_field:
            raise ValidationError(f"{self.name} mappings are not grouped by prisoner")
        return self.group_field


COURT_CASES = MappingKind(
    name="court-cases",
    model=CourtCaseMapping,
    dto=CourtCaseMappingDto,
    legacy_fields=("nomis_court_case_id",),
    modern_field="dps_court_case_id",
)
COURT_APPEARANCES = MappingKind(
    name="court-appearances",
    model=CourtAppearanceMapping,
    dto=CourtAppearanceMappingDto,
    legacy_fields=("nomis_court_appearance_id",),
    modern_field="dps_court_appearance_id",
    owner_field="dps_court_case_id",
)
COURT_CHARGES = MappingKind(
    name="court-charges",
    model=CourtChargeMapping,
    dto=CourtChargeMappingDto,
    legacy_fields=("nomis_court_charge_id",),
    modern_field="dps_court_charge_id",
    owner_field="dps_court_case_id",
)
SENTENCES = MappingKind(
    name="sentences",
    model=SentenceMapping,
    dto=SentenceMappingDto,
    legacy_fields=("nomis_booking_id", "nomis_sentence_sequence"),
    modern_field="dps_sentence_id",
    owner_field="dps_court_case_id",
)
SENTENCE_TERMS = MappingKind(
    name="sentence-terms",
    model=SentenceTermMapping,
    dto=SentenceTermMappingDto,
    legacy_fields=("nomis_booking_id", "nomis_sentence_sequence", "nomis_term_sequence"),
    modern_field="dps_term_id",
    owner_field="dps_court_case_id",
)
CSRAS = MappingKind(
    name="csras",
    model=CsraMapping,
    dto=CsraMappingDto,
    legacy_fields=("nomis_booking_id", "nomis_sequence"),
    modern_field="dps_csra_id",
    group_field="offender_no",
    parent_field="nomis_booking_id",
)
ALERTS = MappingKind(
    name="alerts",
    model=AlertMapping,
    dto=AlertMappingDto,
    legacy_fields=("nomis_booking_id", "nomis_alert_sequence"),
    modern_field="dps_alert_id",
    group_field="offender_no",
    parent_field="nomis_booking_id",
)
TRANSACTIONS = MappingKind(
    name="transactions",
    model=TransactionMapping,
    dto=TransactionMappingDto,
    legacy_fields=("nomis_transaction_id",),
    modern_field="dps_transaction_id",
    group_field="offender_no",
    parent_field="nomis_booking_id",
)

KINDS: Dict[str, MappingKind] = {
    kind.name: kind
    for kind in (
        COURT_CASES,
        COURT_APPEARANCES,
        COURT_CHARGES,
        SENTENCES,
        SENTENCE_TERMS,
        CSRAS,
        ALERTS,
        TRANSACTIONS,
    )
}

# Kinds that take part in prisoner merges and booking moves
GROUPED_KINDS: List[MappingKind] = [kind for kind in KINDS.values() if kind.group_field]


def get_kind(name: str) -> MappingKind:
    kind = KINDS.get(name)
    if kind is None:
        raise NotFoundError(f"Unknown mapping kind '{name}'")
    return kind


@dataclass(frozen=True)
class CompositeKind:
    """A parent kind plus the named child collections it owns."""

    name: str
    parent: MappingKind
    parent_collection: str
    children: Tuple[Tuple[str, MappingKind], ...]

    @property
    def collections(self) -> Dict[str, MappingKind]:
        return dict(self.children)


COURT_CASE_TREE = CompositeKind(
    name="court-sentencing",
    parent=COURT_CASES,
    parent_collection="court_cases",
    children=(
        ("court_appearances", COURT_APPEARANCES),
        ("court_charges", COURT_CHARGES),
        ("sentences", SENTENCES),
        ("sentence_terms", SENTENCE_TERMS),
    ),
)
