"""Mapping endpoints shared by every entity kind.

``{kind}`` selects the store (``csras``, ``court-cases`` ...). Legacy keys are
passed as path segments in key order, e.g. ``/csras/nomis/54321/2``.
"""

from typing import Annotated, Any, Dict, List

from fastapi import APIRouter, Body, Depends, Query, Request, Response, status

from mapping_service.core.config import settings
from mapping_service.core.dependencies import get_kind_reconciliation_service, get_mapping_service
from mapping_service.schemas.common import ApiResponse
from mapping_service.schemas.mappings import GroupMappingsRequest, MergedGroupMappingsRequest
from mapping_service.services.mapping_service import MappingService
from mapping_service.services.reconciliation_service import ReconciliationService
from mapping_service.utils.responses import create_api_response

router = APIRouter()

PageQuery = Annotated[int, Query(ge=0, description="Zero based page number")]
SizeQuery = Annotated[
    int, Query(ge=1, le=settings.max_page_size, description="Page size")
]


@router.post(
    "/{kind}",
    response_model=ApiResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Create a mapping",
    description="Creates a mapping; 409 with the existing and duplicate mappings when either id is taken",
    operation_id="create_mapping",
)
async def create_mapping(
    request: Request,
    mapping_service: Annotated[MappingService, Depends(get_mapping_service)],
    payload: Dict[str, Any] = Body(...),
) -> ApiResponse:
    created = await mapping_service.create(mapping_service.kind.validate(payload))
    return create_api_response(
        data=created,
        message=f"{mapping_service.kind.name} mapping created",
        request=request,
    )


@router.post(
    "/{kind}/batch",
    response_model=ApiResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Create mappings in one transaction",
    description="Either every mapping is created or none is",
    operation_id="create_mappings_batch",
)
async def create_mappings_batch(
    request: Request,
    mapping_service: Annotated[MappingService, Depends(get_mapping_service)],
    payload: List[Dict[str, Any]] = Body(...),
) -> ApiResponse:
    dtos = [mapping_service.kind.validate(item) for item in payload]
    created = await mapping_service.create_batch(dtos)
    return create_api_response(
        data=created,
        message=f"{len(created)} {mapping_service.kind.name} mappings created",
        request=request,
    )


@router.get(
    "/{kind}/migrated/latest",
    response_model=ApiResponse,
    summary="Get the most recently migrated mapping",
    operation_id="get_latest_migrated_mapping",
)
async def get_latest_migrated_mapping(
    request: Request,
    mapping_service: Annotated[MappingService, Depends(get_mapping_service)],
) -> ApiResponse:
    mapping = await mapping_service.get_latest_migrated()
    return create_api_response(data=mapping, message="Latest migrated mapping retrieved", request=request)


@router.get(
    "/{kind}/migration-id/{label}",
    response_model=ApiResponse,
    summary="List mappings created by a migration run",
    operation_id="list_mappings_by_migration",
)
async def list_mappings_by_migration(
    request: Request,
    label: str,
    mapping_service: Annotated[MappingService, Depends(get_mapping_service)],
    page: PageQuery = 0,
    size: SizeQuery = settings.default_page_size,
) -> ApiResponse:
    result = await mapping_service.list_by_label(label, page=page, size=size)
    return create_api_response(data=result, message="Mappings retrieved successfully", request=request)


@router.get(
    "/{kind}/migration-id/{label}/grouped-by-prisoner",
    response_model=ApiResponse,
    summary="Count a migration run's mappings per prisoner",
    operation_id="list_mapping_counts_by_prisoner",
)
async def list_mapping_counts_by_prisoner(
    request: Request,
    label: str,
    mapping_service: Annotated[MappingService, Depends(get_mapping_service)],
    page: PageQuery = 0,
    size: SizeQuery = settings.default_page_size,
) -> ApiResponse:
    result = await mapping_service.list_by_label_grouped(label, page=page, size=size)
    return create_api_response(data=result, message="Mapping counts retrieved successfully", request=request)


@router.get(
    "/{kind}/groups/{group_key}/migration-summary",
    response_model=ApiResponse,
    summary="Get the migration run that last replaced a prisoner's mappings",
    operation_id="get_group_migration",
)
async def get_group_migration(
    request: Request,
    group_key: str,
    mapping_service: Annotated[MappingService, Depends(get_mapping_service)],
) -> ApiResponse:
    summary = await mapping_service.get_group_migration(group_key)
    return create_api_response(data=summary, message="Migration summary retrieved", request=request)


@router.delete(
    "/{kind}/groups/{group_key}/migration-summary",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Forget a prisoner's migration summary",
    operation_id="delete_group_migration",
)
async def delete_group_migration(
    group_key: str,
    mapping_service: Annotated[MappingService, Depends(get_mapping_service)],
) -> Response:
    await mapping_service.delete_group_migration(group_key)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.get(
    "/{kind}/groups/{group_key}",
    response_model=ApiResponse,
    summary="List a prisoner's mappings",
    operation_id="list_group_mappings",
)
async def list_group_mappings(
    request: Request,
    group_key: str,
    mapping_service: Annotated[MappingService, Depends(get_mapping_service)],
) -> ApiResponse:
    mappings = await mapping_service.list_by_group(group_key)
    return create_api_response(data=mappings, message="Mappings retrieved successfully", request=request)


@router.put(
    "/{kind}/groups/{group_key}",
    response_model=ApiResponse,
    summary="Replace all of a prisoner's mappings",
    description="Deletes every mapping held by the prisoner then stores the given ones",
    operation_id="replace_group_mappings",
)
async def replace_group_mappings(
    request: Request,
    group_key: str,
    body: GroupMappingsRequest,
    mapping_service: Annotated[MappingService, Depends(get_mapping_service)],
) -> ApiResponse:
    dtos = [mapping_service.kind.validate(item) for item in body.mappings]
    created = await mapping_service.create_or_replace_for_group(group_key, dtos, label=body.label)
    return create_api_response(
        data=created,
        message=f"{len(created)} {mapping_service.kind.name} mappings stored for {group_key}",
        request=request,
    )


@router.put(
    "/{kind}/groups/{group_key}/merge",
    response_model=ApiResponse,
    summary="Replace a retained prisoner's mappings after a merge",
    description="Stores the given mappings for the retained prisoner and deletes the removed prisoner's mappings",
    operation_id="replace_group_mappings_after_merge",
)
async def replace_group_mappings_after_merge(
    request: Request,
    group_key: str,
    body: MergedGroupMappingsRequest,
    mapping_service: Annotated[MappingService, Depends(get_mapping_service)],
) -> ApiResponse:
    dtos = [mapping_service.kind.validate(item) for item in body.mappings]
    created = await mapping_service.replace_for_group_after_merge(
        group_key, body.removed_group_key, dtos, label=body.label
    )
    return create_api_response(
        data=created,
        message=f"{len(created)} {mapping_service.kind.name} mappings stored for {group_key}, "
        f"{body.removed_group_key} cleared",
        request=request,
    )


@router.get(
    "/{kind}/nomis/{legacy_key:path}",
    response_model=ApiResponse,
    summary="Get a mapping by NOMIS id",
    operation_id="get_mapping_by_nomis_id",
)
async def get_mapping_by_nomis_id(
    request: Request,
    legacy_key: str,
    mapping_service: Annotated[MappingService, Depends(get_mapping_service)],
) -> ApiResponse:
    key = mapping_service.kind.parse_legacy_key(legacy_key.strip("/").split("/"))
    mapping = await mapping_service.get_by_legacy_key(key)
    return create_api_response(data=mapping, message="Mapping retrieved successfully", request=request)


@router.delete(
    "/{kind}/nomis/{legacy_key:path}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Delete a mapping by NOMIS id",
    description="Succeeds whether or not the mapping exists",
    operation_id="delete_mapping_by_nomis_id",
)
async def delete_mapping_by_nomis_id(
    legacy_key: str,
    mapping_service: Annotated[MappingService, Depends(get_mapping_service)],
) -> Response:
    key = mapping_service.kind.parse_legacy_key(legacy_key.strip("/").split("/"))
    await mapping_service.delete_by_legacy_key(key)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.get(
    "/{kind}/dps/{dps_id}",
    response_model=ApiResponse,
    summary="Get a mapping by DPS id",
    operation_id="get_mapping_by_dps_id",
)
async def get_mapping_by_dps_id(
    request: Request,
    dps_id: str,
    mapping_service: Annotated[MappingService, Depends(get_mapping_service)],
) -> ApiResponse:
    mapping = await mapping_service.get_by_modern_key(dps_id)
    return create_api_response(data=mapping, message="Mapping retrieved successfully", request=request)


@router.delete(
    "/{kind}/dps/{dps_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Delete a mapping by DPS id",
    description="Succeeds whether or not the mapping exists",
    operation_id="delete_mapping_by_dps_id",
)
async def delete_mapping_by_dps_id(
    dps_id: str,
    mapping_service: Annotated[MappingService, Depends(get_mapping_service)],
) -> Response:
    await mapping_service.delete_by_modern_key(dps_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.delete(
    "/{kind}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Delete every mapping of a kind",
    operation_id="delete_all_mappings",
)
async def delete_all_mappings(
    mapping_service: Annotated[MappingService, Depends(get_mapping_service)],
) -> Response:
    await mapping_service.delete_all()
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.put(
    "/{kind}/merge/from/{from_group}/to/{to_group}",
    response_model=ApiResponse,
    summary="Move a prisoner's mappings to another prisoner",
    description="Used when NOMIS merges two prisoner records; returns the mappings moved",
    operation_id="merge_group_mappings",
)
async def merge_group_mappings(
    request: Request,
    from_group: str,
    to_group: str,
    reconciliation_service: Annotated[ReconciliationService, Depends(get_kind_reconciliation_service)],
) -> ApiResponse:
    moved = await reconciliation_service.merge_group(from_group, to_group)
    return create_api_response(
        data=moved,
        message=f"{len(moved)} mappings moved from {from_group} to {to_group}",
        request=request,
    )


@router.put(
    "/{kind}/merge/booking-id/{booking_id}/to/{to_group}",
    response_model=ApiResponse,
    summary="Move a booking's mappings to another prisoner",
    operation_id="move_booking_mappings",
)
async def move_booking_mappings(
    request: Request,
    booking_id: int,
    to_group: str,
    reconciliation_service: Annotated[ReconciliationService, Depends(get_kind_reconciliation_service)],
) -> ApiResponse:
    moved = await reconciliation_service.move_by_parent_id(booking_id, to_group)
    return create_api_response(
        data=moved,
        message=f"{len(moved)} mappings of booking {booking_id} moved to {to_group}",
        request=request,
    )
