"""Decide whether a candidate mapping may be inserted."""

from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Optional

from mapping_service.core.exceptions import DuplicateMappingError
from mapping_service.repositories.mapping_repository import MappingRepository
from mapping_service.schemas.mappings import MappingDto
from mapping_service.utils.logging import get_logger

LOGGER = get_logger(__name__)


class ConflictType(str, Enum):
    LEGACY_KEY = "LEGACY_KEY"
    MODERN_KEY = "MODERN_KEY"


@dataclass(frozen=True)
class Conflict:
    """A stored mapping that already owns one of the candidate's keys."""

    kind: str
    conflict_type: ConflictType
    existing: MappingDto
    duplicate: MappingDto

    def to_error(self, level: Optional[str] = None) -> DuplicateMappingError:
        key_name = "NOMIS" if self.conflict_type == ConflictType.LEGACY_KEY else "DPS"
        return DuplicateMappingError(
            f"Conflict: {self.kind} mapping already exists for {key_name} id",
            existing=self.existing,
            duplicate=self.duplicate,
            kind=self.kind,
            level=level,
        )


@dataclass(frozen=True)
class ConflictCheck:
    conflict: Optional[Conflict] = None
    # Row holding exactly the candidate's legacy and modern keys
    already_mapped: Optional[Any] = None


class ConflictDetector:
    """Checks a candidate against the store before insert.

    The legacy key is checked first, so when both keys collide the legacy key
    conflict is the one reported.
    """

    def __init__(self, repository: MappingRepository):
        self.repository = repository
        self.kind = repository.kind

    async def check(
        self, candidate: MappingDto, ignore: Optional[Callable[[Any], bool]] = None
    ) -> ConflictCheck:
        """Check both keys of ``candidate``.

        Args:
            candidate: Mapping about to be inserted
            ignore: Rows for which this returns True are treated as absent
        """
        legacy_key = self.kind.legacy_key(candidate)
        modern_key = self.kind.modern_key(candidate)

        existing = await self.repository.find_by_legacy_key(legacy_key)
        if existing is not None and ignore is not None and ignore(existing):
            existing = None
        if existing is not None:
            if self.kind.modern_key(existing) == modern_key:
                return ConflictCheck(already_mapped=existing)
            return ConflictCheck(conflict=self._conflict(ConflictType.LEGACY_KEY, existing, candidate))

        existing = await self.repository.find_by_modern_key(modern_key)
        if existing is not None and ignore is not None and ignore(existing):
            existing = None
        if existing is not None:
            return ConflictCheck(conflict=self._conflict(ConflictType.MODERN_KEY, existing, candidate))

        return ConflictCheck()

    async def detect(
        self, candidate: MappingDto, ignore: Optional[Callable[[Any], bool]] = None
    ) -> Optional[Conflict]:
        return (await self.check(candidate, ignore)).conflict

    def _conflict(self, conflict_type: ConflictType, existing: Any, candidate: MappingDto) -> Conflict:
        LOGGER.debug(
            f"{self.kind.name} {conflict_type.value} conflict",
            extra={"legacy_key": self.kind.legacy_key(candidate), "modern_key": self.kind.modern_key(candidate)},
        )
        return Conflict(
            kind=self.kind.name,
            conflict_type=conflict_type,
            existing=self.kind.to_dto(existing),
            duplicate=candidate,
        )
