"""Prisoner level reconciliation across every prisoner keyed mapping kind."""

from typing import Annotated

from fastapi import APIRouter, Depends, Request

from mapping_service.core.dependencies import get_reconciliation_service
from mapping_service.schemas.common import ApiResponse
from mapping_service.services.reconciliation_service import ReconciliationService
from mapping_service.utils.responses import create_api_response

router = APIRouter()


@router.put(
    "/merge/from/{from_group}/to/{to_group}",
    response_model=ApiResponse,
    summary="Merge two prisoners' mappings",
    description="Moves every prisoner keyed mapping of the old prisoner number to the new one",
    operation_id="merge_prisoner_mappings",
)
async def merge_prisoner_mappings(
    request: Request,
    from_group: str,
    to_group: str,
    reconciliation_service: Annotated[ReconciliationService, Depends(get_reconciliation_service)],
) -> ApiResponse:
    moved = await reconciliation_service.merge_group(from_group, to_group)
    return create_api_response(
        data=moved,
        message=f"{len(moved)} mappings moved from {from_group} to {to_group}",
        request=request,
    )


@router.get(
    "/move-booking/{booking_id}",
    response_model=ApiResponse,
    summary="List the mappings a booking move would affect",
    operation_id="get_booking_mappings",
)
async def get_booking_mappings(
    request: Request,
    booking_id: int,
    reconciliation_service: Annotated[ReconciliationService, Depends(get_reconciliation_service)],
) -> ApiResponse:
    mappings = await reconciliation_service.find_by_parent_id(booking_id)
    return create_api_response(data=mappings, message="Booking mappings retrieved", request=request)


@router.put(
    "/move-booking/{booking_id}/from/{from_group}/to/{to_group}",
    response_model=ApiResponse,
    summary="Move a booking's mappings to another prisoner",
    description="400 when the booking's mappings belong to a prisoner other than from_group",
    operation_id="move_booking_between_prisoners",
)
async def move_booking_between_prisoners(
    request: Request,
    booking_id: int,
    from_group: str,
    to_group: str,
    reconciliation_service: Annotated[ReconciliationService, Depends(get_reconciliation_service)],
) -> ApiResponse:
    moved = await reconciliation_service.move_by_parent_id(booking_id, to_group, from_group=from_group)
    return create_api_response(
        data=moved,
        message=f"{len(moved)} mappings of booking {booking_id} moved to {to_group}",
        request=request,
    )
