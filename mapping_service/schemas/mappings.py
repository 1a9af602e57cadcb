"""Mapping DTOs, one per entity kind, plus request/response bodies around them."""

from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field, field_validator

from mapping_service.database.models import MappingType


class MappingDto(BaseModel):
    """Fields every mapping carries besides its keys."""

    model_config = ConfigDict(from_attributes=True)

    label: Optional[str] = Field(
        None, max_length=20, description="Migration run label (ISO timestamp); empty for organic mappings"
    )
    mapping_type: MappingType = Field(
        MappingType.DPS_CREATED, description="Where the mapping originated"
    )
    when_created: Optional[datetime] = Field(
        None, description="Server assigned creation time, ignored on input"
    )

    @field_validator("when_created")
    @classmethod
    def assume_utc(cls, v: Optional[datetime]) -> Optional[datetime]:
        """Stores without zone support hand back naive UTC times."""
        if v is not None and v.tzinfo is None:
            return v.replace(tzinfo=timezone.utc)
        return v


class CourtCaseMappingDto(MappingDto):
    nomis_court_case_id: int
    dps_court_case_id: str = Field(..., min_length=1)


class CourtAppearanceMappingDto(MappingDto):
    nomis_court_appearance_id: int
    dps_court_appearance_id: str = Field(..., min_length=1)
    dps_court_case_id: Optional[str] = Field(None, description="Owning court case; defaults to the parent")


class CourtChargeMappingDto(MappingDto):
    nomis_court_charge_id: int
    dps_court_charge_id: str = Field(..., min_length=1)
    dps_court_case_id: Optional[str] = Field(None, description="Owning court case; defaults to the parent")


class SentenceMappingDto(MappingDto):
    nomis_booking_id: int
    nomis_sentence_sequence: int
    dps_sentence_id: str = Field(..., min_length=1)
    dps_court_case_id: Optional[str] = Field(None, description="Owning court case; defaults to the parent")


class SentenceTermMappingDto(MappingDto):
    nomis_booking_id: int
    nomis_sentence_sequence: int
    nomis_term_sequence: int
    dps_term_id: str = Field(..., min_length=1)
    dps_court_case_id: Optional[str] = Field(None, description="Owning court case; defaults to the parent")


class CsraMappingDto(MappingDto):
    nomis_booking_id: int
    nomis_sequence: int
    dps_csra_id: str = Field(..., min_length=1)
    offender_no: str = Field(..., min_length=1, max_length=10)


class AlertMappingDto(MappingDto):
    nomis_booking_id: int
    nomis_alert_sequence: int
    dps_alert_id: str = Field(..., min_length=1)
    offender_no: str = Field(..., min_length=1, max_length=10)


class TransactionMappingDto(MappingDto):
    nomis_transaction_id: int
    dps_transaction_id: str = Field(..., min_length=1)
    offender_no: str = Field(..., min_length=1, max_length=10)
    nomis_booking_id: Optional[int] = None


class GroupMappingsRequest(BaseModel):
    """Body of a group replace: every mapping the group should hold afterwards."""

    label: Optional[str] = Field(None, max_length=20, description="Migration run label recorded for the group")
    mappings: List[Dict[str, Any]] = Field(default_factory=list)


class MergedGroupMappingsRequest(GroupMappingsRequest):
    """Group replace for a retained prisoner after NOMIS merged another record into it."""

    removed_group_key: str = Field(..., min_length=1, description="Prisoner record removed by the merge")


class GroupMigrationDto(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    kind: str
    group_key: str
    label: str
    mappings_count: int
    when_created: Optional[datetime] = None


class MovedMapping(BaseModel):
    """A mapping rewritten by a merge or move, tagged with its kind."""

    kind: str
    mapping: Dict[str, Any]


# Court sentencing composite

class CourtCaseAllMappingDto(CourtCaseMappingDto):
    """A court case mapping with every child mapping it owns."""

    court_appearances: List[CourtAppearanceMappingDto] = Field(default_factory=list)
    court_charges: List[CourtChargeMappingDto] = Field(default_factory=list)
    sentences: List[SentenceMappingDto] = Field(default_factory=list)
    sentence_terms: List[SentenceTermMappingDto] = Field(default_factory=list)


class CourtCaseBatchMappingDto(BaseModel):
    """Flat lists of court sentencing mappings created together."""

    court_cases: List[CourtCaseMappingDto] = Field(default_factory=list)
    court_appearances: List[CourtAppearanceMappingDto] = Field(default_factory=list)
    court_charges: List[CourtChargeMappingDto] = Field(default_factory=list)
    sentences: List[SentenceMappingDto] = Field(default_factory=list)
    sentence_terms: List[SentenceTermMappingDto] = Field(default_factory=list)
    label: Optional[str] = Field(None, max_length=20)
    mapping_type: MappingType = MappingType.MIGRATED


class SimpleIdPair(BaseModel):
    from_nomis_id: int
    to_nomis_id: int

    def legacy_keys(self) -> Tuple[tuple, tuple]:
        return (self.from_nomis_id,), (self.to_nomis_id,)


class SentenceId(BaseModel):
    nomis_booking_id: int
    nomis_sentence_sequence: int

    def as_key(self) -> tuple:
        return self.nomis_booking_id, self.nomis_sentence_sequence


class SentenceIdPair(BaseModel):
    from_nomis_id: SentenceId
    to_nomis_id: SentenceId

    def legacy_keys(self) -> Tuple[tuple, tuple]:
        return self.from_nomis_id.as_key(), self.to_nomis_id.as_key()


class SentenceTermId(BaseModel):
    nomis_booking_id: int
    nomis_sentence_sequence: int
    nomis_term_sequence: int

    def as_key(self) -> tuple:
        return self.nomis_booking_id, self.nomis_sentence_sequence, self.nomis_term_sequence


class SentenceTermIdPair(BaseModel):
    from_nomis_id: SentenceTermId
    to_nomis_id: SentenceTermId

    def legacy_keys(self) -> Tuple[tuple, tuple]:
        return self.from_nomis_id.as_key(), self.to_nomis_id.as_key()


class CourtCaseIdPairs(BaseModel):
    """Legacy ids that changed in NOMIS, per collection."""

    court_cases: List[SimpleIdPair] = Field(default_factory=list)
    court_appearances: List[SimpleIdPair] = Field(default_factory=list)
    court_charges: List[SimpleIdPair] = Field(default_factory=list)
    sentences: List[SentenceIdPair] = Field(default_factory=list)
    sentence_terms: List[SentenceTermIdPair] = Field(default_factory=list)


class CourtCaseUpdateAndCreateDto(BaseModel):
    mappings_to_update: CourtCaseIdPairs = Field(default_factory=CourtCaseIdPairs)
    mappings_to_create: CourtCaseBatchMappingDto = Field(default_factory=CourtCaseBatchMappingDto)
