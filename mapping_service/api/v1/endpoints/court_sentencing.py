"""Court sentencing endpoints: a court case mapping with the mappings it owns."""

from typing import Annotated, Dict, List

from fastapi import APIRouter, Depends, Request, Response, status

from mapping_service.core.dependencies import get_court_sentencing_service
from mapping_service.schemas.common import ApiResponse
from mapping_service.schemas.mappings import (
    CourtCaseAllMappingDto,
    CourtCaseIdPairs,
    CourtCaseMappingDto,
    CourtCaseUpdateAndCreateDto,
    MappingDto,
)
from mapping_service.services.composite_service import CompositeMappingService
from mapping_service.services.kinds import COURT_CASE_TREE
from mapping_service.utils.responses import create_api_response

router = APIRouter()


def split_court_case(dto: CourtCaseAllMappingDto):
    """Separate the court case mapping from its child collections."""
    parent = CourtCaseMappingDto(**dto.model_dump(include=set(CourtCaseMappingDto.model_fields)))
    children: Dict[str, List[MappingDto]] = {
        name: getattr(dto, name) for name in COURT_CASE_TREE.collections
    }
    return parent, children


@router.post(
    "/court-cases",
    response_model=ApiResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Create a court case mapping with its children",
    description="All mappings are created or none; 409 names the collection holding the duplicate",
    operation_id="create_court_case_mappings",
)
async def create_court_case_mappings(
    request: Request,
    body: CourtCaseAllMappingDto,
    service: Annotated[CompositeMappingService, Depends(get_court_sentencing_service)],
) -> ApiResponse:
    parent, children = split_court_case(body)
    created = await service.create_composite(parent, children)
    return create_api_response(data=created, message="Court case mappings created", request=request)


@router.put(
    "/court-cases/replace",
    response_model=ApiResponse,
    summary="Replace a court case mapping and its children",
    description="Removes the mappings held under the request's ids and stores the request's mappings",
    operation_id="replace_court_case_mappings",
)
async def replace_court_case_mappings(
    request: Request,
    body: CourtCaseAllMappingDto,
    service: Annotated[CompositeMappingService, Depends(get_court_sentencing_service)],
) -> ApiResponse:
    parent, children = split_court_case(body)
    replaced = await service.replace_composite(parent, children)
    return create_api_response(data=replaced, message="Court case mappings replaced", request=request)


@router.put(
    "/court-cases/update-create",
    response_model=ApiResponse,
    summary="Update changed NOMIS ids and create new mappings",
    operation_id="update_and_create_court_case_mappings",
)
async def update_and_create_court_case_mappings(
    request: Request,
    body: CourtCaseUpdateAndCreateDto,
    service: Annotated[CompositeMappingService, Depends(get_court_sentencing_service)],
) -> ApiResponse:
    to_update = body.mappings_to_update
    to_create = body.mappings_to_create
    updates = {name: getattr(to_update, name) for name in CourtCaseIdPairs.model_fields}
    creates = {
        name: getattr(to_create, name)
        for name in [COURT_CASE_TREE.parent_collection, *COURT_CASE_TREE.collections]
    }
    result = await service.update_and_create(
        updates, creates, label=to_create.label, mapping_type=to_create.mapping_type
    )
    return create_api_response(data=result, message="Court case mappings updated", request=request)


@router.get(
    "/court-cases/dps-court-case-id/{dps_court_case_id}",
    response_model=ApiResponse,
    summary="Get a court case mapping with its children",
    operation_id="get_court_case_mappings",
)
async def get_court_case_mappings(
    request: Request,
    dps_court_case_id: str,
    service: Annotated[CompositeMappingService, Depends(get_court_sentencing_service)],
) -> ApiResponse:
    mappings = await service.get_composite(dps_court_case_id)
    return create_api_response(data=mappings, message="Court case mappings retrieved", request=request)


@router.delete(
    "/court-cases/dps-court-case-id/{dps_court_case_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Delete a court case mapping and its children by DPS id",
    operation_id="delete_court_case_mappings_by_dps_id",
)
async def delete_court_case_mappings_by_dps_id(
    dps_court_case_id: str,
    service: Annotated[CompositeMappingService, Depends(get_court_sentencing_service)],
) -> Response:
    await service.delete_composite(modern_key=dps_court_case_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.delete(
    "/court-cases/nomis-court-case-id/{nomis_court_case_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Delete a court case mapping and its children by NOMIS id",
    operation_id="delete_court_case_mappings_by_nomis_id",
)
async def delete_court_case_mappings_by_nomis_id(
    nomis_court_case_id: int,
    service: Annotated[CompositeMappingService, Depends(get_court_sentencing_service)],
) -> Response:
    await service.delete_composite(legacy_key=(nomis_court_case_id,))
    return Response(status_code=status.HTTP_204_NO_CONTENT)
