"""Composite (tree) mappings: a parent mapping plus the child mappings it owns."""

from typing import Any, Dict, List, Mapping, Optional, Sequence, Set, Tuple

from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from mapping_service.core.database import unit_of_work
from mapping_service.core.exceptions import DuplicateMappingError, NotFoundError, ValidationError
from mapping_service.database.models import MappingType
from mapping_service.schemas.mappings import MappingDto
from mapping_service.services.kinds import COURT_CASE_TREE, CompositeKind, LegacyKey, MappingKind
from mapping_service.services.mapping_service import MappingService, Replaced, explain_integrity_error
from mapping_service.utils.logging import get_logger

LOGGER = get_logger(__name__)

PARENT_LEVEL = "parent"

Children = Mapping[str, Sequence[MappingDto]]


class CompositeMappingService:
    """Creates, replaces, extends and deletes a parent mapping with its children.

    Each operation runs in one transaction over the parent store and every
    child store, so a conflict anywhere leaves all of them untouched.
    """

    def __init__(self, session: AsyncSession, composite: CompositeKind = COURT_CASE_TREE):
        self.session = session
        self.composite = composite
        self.parent = MappingService(session, composite.parent)
        self.children: Dict[str, MappingService] = {
            name: MappingService(session, kind) for name, kind in composite.children
        }

    def _service_for(self, collection: str) -> MappingService:
        if collection == self.composite.parent_collection:
            return self.parent
        service = self.children.get(collection)
        if service is None:
            raise ValidationError(f"Unknown {self.composite.name} collection '{collection}'")
        return service

    @staticmethod
    def _inherit(
        dto: MappingDto,
        label: Optional[str],
        mapping_type: Optional[MappingType],
        owner_field: Optional[str] = None,
        owner: Optional[str] = None,
    ) -> MappingDto:
        """Fill in the label, type and owner a child did not set itself."""
        updates: Dict[str, Any] = {}
        if dto.label is None and label is not None:
            updates["label"] = label
        if "mapping_type" not in dto.model_fields_set and mapping_type is not None:
            updates["mapping_type"] = mapping_type
        if owner_field and owner is not None and getattr(dto, owner_field) is None:
            updates[owner_field] = owner
        return dto.model_copy(update=updates) if updates else dto

    def _prepare_children(self, parent: MappingDto, children: Children) -> Dict[str, List[MappingDto]]:
        owner = self.composite.parent.modern_key(parent)
        prepared = {}
        for name, dtos in children.items():
            service = self._service_for(name)
            if service is self.parent:
                raise ValidationError(f"{name} cannot be a child collection")
            prepared[name] = [
                self._inherit(
                    service.kind.check_dto(dto),
                    parent.label,
                    parent.mapping_type,
                    service.kind.owner_field,
                    owner,
                )
                for dto in dtos
            ]
        return prepared

    def _groups(
        self, parent: Optional[MappingDto], children: Mapping[str, Sequence[MappingDto]]
    ) -> List[Tuple[MappingService, Sequence[MappingDto], Optional[str]]]:
        groups = []
        if parent is not None:
            groups.append((self.parent, [parent], PARENT_LEVEL))
        for name, dtos in children.items():
            service = self._service_for(name)
            level = PARENT_LEVEL if service is self.parent else name
            groups.append((service, dtos, level))
        return groups

    @staticmethod
    def _dump(created: Dict[str, List[MappingDto]]) -> Dict[str, int]:
        return {name: len(dtos) for name, dtos in created.items()}

    async def create_composite(self, parent: MappingDto, children: Children) -> Dict[str, Any]:
        """Create a parent mapping and all of its children atomically.

        Raises:
            DuplicateMappingError: naming the level (``parent`` or a collection) that clashed
        """
        parent = self.parent.kind.check_dto(parent)
        prepared = self._prepare_children(parent, children)

        try:
            async with unit_of_work(self.session):
                created_parent = await self.parent.stage_insert(parent, level=PARENT_LEVEL)
                created: Dict[str, List[MappingDto]] = {}
                for name, dtos in prepared.items():
                    service = self.children[name]
                    created[name] = [await service.stage_insert(dto, level=name) for dto in dtos]
        except IntegrityError as e:
            raise await explain_integrity_error(self._groups(parent, prepared), e) from e

        LOGGER.info(
            f"{self.composite.name} mappings created",
            extra={
                "modern_key": self.parent.kind.modern_key(created_parent),
                "counts": self._dump(created),
            },
        )
        return {"parent": created_parent, **created}

    async def _delete_tree(self, owner: str) -> int:
        deleted = 0
        for service in self.children.values():
            deleted += await service.repository.delete_by_owner(owner)
        deleted += await self.parent.repository.delete_by_modern_key(owner)
        return deleted

    def _replaced_by(
        self, parent: MappingDto, prepared: Mapping[str, Sequence[MappingDto]], owners: Set[str]
    ) -> Replaced:
        """Rows a replace deletes: the old trees plus any row holding an incoming key."""
        incoming: Dict[str, Set[Tuple[str, Any]]] = {}
        for service, dtos, _ in self._groups(parent, prepared):
            keys = incoming.setdefault(service.kind.name, set())
            for dto in dtos:
                keys.add(("legacy", service.kind.legacy_key(dto)))
                keys.add(("modern", service.kind.modern_key(dto)))

        def replaced(kind: MappingKind, row: Any) -> bool:
            if kind.owner_field and getattr(row, kind.owner_field) in owners:
                return True
            if kind is self.parent.kind and kind.modern_key(row) in owners:
                return True
            keys = incoming.get(kind.name, set())
            return ("legacy", kind.legacy_key(row)) in keys or ("modern", kind.modern_key(row)) in keys

        return replaced

    async def replace_composite(self, parent: MappingDto, children: Children) -> Dict[str, Any]:
        """Replace whatever is mapped under the request's keys with the request's mappings.

        Removes the parent rows holding either parent key with every child
        they own, plus any child row holding a key of an incoming child, then
        inserts the new set. Running it twice leaves the same state.
        """
        parent = self.parent.kind.check_dto(parent)
        prepared = self._prepare_children(parent, children)
        parent_kind = self.parent.kind
        owners: Set[str] = set()

        try:
            async with unit_of_work(self.session):
                deleted = 0
                existing_parents = [
                    await self.parent.repository.find_by_legacy_key(parent_kind.legacy_key(parent)),
                    await self.parent.repository.find_by_modern_key(parent_kind.modern_key(parent)),
                ]
                owners.update(parent_kind.modern_key(row) for row in existing_parents if row is not None)
                for owner in sorted(owners):
                    deleted += await self._delete_tree(owner)

                for name, dtos in prepared.items():
                    service = self.children[name]
                    for dto in dtos:
                        deleted += await service.repository.delete_by_legacy_key(service.kind.legacy_key(dto))
                        deleted += await service.repository.delete_by_modern_key(service.kind.modern_key(dto))

                created_parent = await self.parent.stage_insert_unchecked(parent)
                created: Dict[str, List[MappingDto]] = {}
                for name, dtos in prepared.items():
                    service = self.children[name]
                    created[name] = [await service.stage_insert_unchecked(dto) for dto in dtos]
        except IntegrityError as e:
            raise await explain_integrity_error(
                self._groups(parent, prepared), e, self._replaced_by(parent, prepared, owners)
            ) from e

        LOGGER.info(
            f"{self.composite.name} mappings replaced",
            extra={
                "modern_key": parent_kind.modern_key(created_parent),
                "deleted": deleted,
                "counts": self._dump(created),
            },
        )
        return {"parent": created_parent, **created}

    def _prepare_creates(
        self, creates: Children, label: Optional[str], mapping_type: Optional[MappingType]
    ) -> Dict[str, List[MappingDto]]:
        """Check created mappings and give every child the court case that owns it.

        A child without an owner is given the court case created in the same
        request; when there is not exactly one, the owner cannot be inferred.
        """
        parents = [
            self.parent.kind.check_dto(dto) for dto in creates.get(self.composite.parent_collection, [])
        ]
        default_owner = self.parent.kind.modern_key(parents[0]) if len(parents) == 1 else None

        prepared: Dict[str, List[MappingDto]] = {}
        for name, dtos in creates.items():
            service = self._service_for(name)
            owner_field = service.kind.owner_field
            prepared[name] = []
            for dto in dtos:
                dto = self._inherit(service.kind.check_dto(dto), label, mapping_type, owner_field, default_owner)
                if owner_field and getattr(dto, owner_field) is None:
                    raise ValidationError(
                        f"{service.kind.name} mapping {service.kind.modern_key(dto)} needs {owner_field}: "
                        f"{len(parents)} {self.composite.parent_collection} created alongside it"
                    )
                prepared[name].append(dto)
        return prepared

    async def _check_owners(self, prepared: Mapping[str, Sequence[MappingDto]]) -> None:
        created_owners = {
            self.parent.kind.modern_key(dto) for dto in prepared.get(self.composite.parent_collection, [])
        }
        for name, dtos in prepared.items():
            owner_field = self._service_for(name).kind.owner_field
            if not owner_field:
                continue
            for owner in sorted({getattr(dto, owner_field) for dto in dtos} - created_owners):
                if await self.parent.repository.find_by_modern_key(owner) is None:
                    raise ValidationError(f"No {self.parent.kind.name} mapping found for {owner}")
                created_owners.add(owner)

    async def update_and_create(
        self,
        updates: Mapping[str, Sequence[Any]],
        creates: Children,
        label: Optional[str] = None,
        mapping_type: Optional[MappingType] = None,
    ) -> Dict[str, Any]:
        """Rewrite changed legacy ids, then add new mappings, in one transaction.

        Args:
            updates: Per collection, id pairs exposing ``legacy_keys() -> (from, to)``
            creates: Per collection (parent collection included), mappings to add
            label: Label applied to created mappings that carry none
            mapping_type: Type applied to created mappings that do not set one

        Raises:
            ValidationError: when a created child has no owner that is mapped or
                created in the same request
        """
        prepared = self._prepare_creates(creates, label, mapping_type)
        for name in updates:
            self._service_for(name)

        try:
            async with unit_of_work(self.session):
                rewritten: Dict[str, int] = {}
                for name, pairs in updates.items():
                    service = self._service_for(name)
                    level = PARENT_LEVEL if service is self.parent else name
                    rewritten[name] = await self._rewrite(
                        service, [pair.legacy_keys() for pair in pairs], level
                    )

                await self._check_owners(prepared)
                created: Dict[str, List[MappingDto]] = {}
                for name, dtos in prepared.items():
                    service = self._service_for(name)
                    level = PARENT_LEVEL if service is self.parent else name
                    created[name] = [await service.stage_insert(dto, level=level) for dto in dtos]
        except IntegrityError as e:
            raise await explain_integrity_error(self._groups(None, prepared), e) from e

        LOGGER.info(
            f"{self.composite.name} mappings updated and created",
            extra={"rewritten": rewritten, "counts": self._dump(created)},
        )
        return {"updated": rewritten, "created": created}

    async def _rewrite(
        self, service: MappingService, pairs: Sequence[Tuple[LegacyKey, LegacyKey]], level: str
    ) -> int:
        """Apply one collection's id changes together.

        A target id held by a row that moves away in the same request is free,
        so swaps and shifts of ids are accepted.
        """
        moving: Dict[LegacyKey, Tuple[Any, LegacyKey]] = {}
        for old_key, new_key in pairs:
            if old_key == new_key:
                continue
            row = await service.repository.find_by_legacy_key(old_key)
            if row is None:
                LOGGER.info(
                    f"No {service.kind.name} mapping for {service.kind.describe_legacy_key(old_key)} to update"
                )
                continue
            moving[old_key] = (row, new_key)

        targets: Dict[LegacyKey, Any] = {}
        for row, new_key in moving.values():
            holder = targets.get(new_key)
            if holder is None and new_key not in moving:
                holder = await service.repository.find_by_legacy_key(new_key)
            if holder is not None:
                raise DuplicateMappingError(
                    f"Conflict: {service.kind.name} mapping already exists for NOMIS id",
                    existing=service.kind.to_dto(holder),
                    duplicate=service.kind.to_dto(row),
                    kind=service.kind.name,
                    level=level,
                )
            targets[new_key] = row

        if not moving:
            return 0
        return await service.repository.rewrite_legacy_keys(
            [(old_key, new_key) for old_key, (_, new_key) in moving.items()]
        )

    async def _find_parent(
        self, legacy_key: Optional[LegacyKey] = None, modern_key: Optional[str] = None
    ):
        if legacy_key is not None:
            return await self.parent.repository.find_by_legacy_key(legacy_key)
        return await self.parent.repository.find_by_modern_key(modern_key)

    async def delete_composite(
        self, legacy_key: Optional[LegacyKey] = None, modern_key: Optional[str] = None
    ) -> int:
        """Delete a parent mapping and every child it owns; nothing mapped is not an error."""
        if (legacy_key is None) == (modern_key is None):
            raise ValidationError("Exactly one of the NOMIS or DPS parent id is required")

        async with unit_of_work(self.session):
            row = await self._find_parent(legacy_key, modern_key)
            if row is None:
                deleted = 0
            else:
                deleted = await self._delete_tree(self.parent.kind.modern_key(row))

        LOGGER.info(
            f"{self.composite.name} mappings deleted",
            extra={"legacy_key": legacy_key, "modern_key": modern_key, "deleted": deleted},
        )
        return deleted

    async def get_composite(self, modern_key: str) -> Dict[str, Any]:
        row = await self.parent.repository.find_by_modern_key(modern_key)
        if row is None:
            raise NotFoundError(f"No {self.parent.kind.name} mapping found for {modern_key}")
        result: Dict[str, Any] = {"parent": self.parent.kind.to_dto(row)}
        for name, service in self.children.items():
            rows = await service.repository.find_by_owner(modern_key)
            result[name] = [service.kind.to_dto(child) for child in rows]
        return result
