from datetime import datetime
from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from loginguard.dependencies import get_db, get_threshold_config
from loginguard.exceptions import DeviceNotFoundError, ThresholdValidationError
from loginguard.schemas.base_schema import RiskLevel
from loginguard.schemas.device import (
    DeviceFilters,
    DeviceTrustRequest,
    DeviceTrustResult,
    UserDeviceResponse,
)
from loginguard.schemas.login_attempt import LoginAttemptFilters, LoginAttemptResponse
from loginguard.schemas.overview import FingerprintingOverview
from loginguard.schemas.thresholds import Thresholds, ThresholdsResponse
from loginguard.services.admin_reports import FingerprintingReportService
from loginguard.services.device_trust import DeviceTrustStore
from loginguard.services.threshold_config import ThresholdConfig
from loginguard.utils.logging_config import get_logger, log_function_call
from loginguard.utils.pagination import (
    DataWrapper,
    PaginatedResponse,
    PaginationParams,
    get_pagination_params,
)
from loginguard.utils.security import require_admin

logger = get_logger(__name__)

router = APIRouter(prefix="/admin/fingerprinting", tags=["fingerprinting admin"])


@router.get("/login-attempts", response_model=PaginatedResponse[LoginAttemptResponse])
async def list_login_attempts(
    user_id: Optional[UUID] = Query(None),
    ip_address: Optional[str] = Query(None),
    success: Optional[bool] = Query(None),
    since: Optional[datetime] = Query(None),
    until: Optional[datetime] = Query(None),
    hours_back: Optional[int] = Query(None, ge=1, le=24 * 365),
    min_risk_score: Optional[float] = Query(None, ge=0.0, le=1.0),
    pagination: PaginationParams = Depends(get_pagination_params),
    admin: str = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    """Audit history, newest first unless sort_by says otherwise"""
    filters = LoginAttemptFilters(
        user_id=user_id,
        ip_address=ip_address,
        success=success,
        since=since,
        until=until,
        hours_back=hours_back,
        min_risk_score=min_risk_score,
    )
    page = await FingerprintingReportService(db).list_login_attempts(filters, pagination)

    return PaginatedResponse(
        items=[LoginAttemptResponse.model_validate(row) for row in page.items],
        total_items=page.total_items,
        total_pages=page.total_pages,
        current_page=page.current_page,
        page_size=page.page_size,
        has_next=page.has_next,
        has_prev=page.has_prev,
    )


@router.get("/devices", response_model=PaginatedResponse[UserDeviceResponse])
async def list_devices(
    user_id: Optional[UUID] = Query(None),
    is_trusted: Optional[bool] = Query(None),
    risk_level: Optional[RiskLevel] = Query(None),
    pagination: PaginationParams = Depends(get_pagination_params),
    admin: str = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    filters = DeviceFilters(user_id=user_id, is_trusted=is_trusted, risk_level=risk_level)
    page = await DeviceTrustStore(db).list_devices(filters, pagination)

    return PaginatedResponse(
        items=[UserDeviceResponse.model_validate(device) for device in page.items],
        total_items=page.total_items,
        total_pages=page.total_pages,
        current_page=page.current_page,
        page_size=page.page_size,
        has_next=page.has_next,
        has_prev=page.has_prev,
    )


@router.get("/overview", response_model=DataWrapper[FingerprintingOverview])
async def fingerprinting_overview(
    hours_back: Optional[int] = Query(None, ge=1, le=24 * 365),
    admin: str = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
    thresholds: ThresholdConfig = Depends(get_threshold_config),
):
    """Dashboard totals; high risk counts attempts at or above the medium cutover"""
    overview = await FingerprintingReportService(db).overview(
        high_risk_threshold=thresholds.get().medium, hours_back=hours_back
    )
    return DataWrapper(data=overview)


@router.post("/devices/trust", response_model=DataWrapper[DeviceTrustResult])
@log_function_call(level="INFO")
async def trust_device(
    payload: DeviceTrustRequest,
    admin: str = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    try:
        result = await DeviceTrustStore(db).trust(
            payload.device_fingerprint, actor=admin, user_id=payload.user_id
        )
    except DeviceNotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))
    return DataWrapper(data=result)


@router.post("/devices/untrust", response_model=DataWrapper[DeviceTrustResult])
@log_function_call(level="INFO")
async def untrust_device(
    payload: DeviceTrustRequest,
    admin: str = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    try:
        result = await DeviceTrustStore(db).untrust(
            payload.device_fingerprint, actor=admin, user_id=payload.user_id
        )
    except DeviceNotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))
    return DataWrapper(data=result)


@router.get("/thresholds", response_model=DataWrapper[ThresholdsResponse])
async def get_thresholds(
    admin: str = Depends(require_admin),
    thresholds: ThresholdConfig = Depends(get_threshold_config),
):
    return DataWrapper(data=thresholds.get())


@router.put("/thresholds", response_model=DataWrapper[ThresholdsResponse])
@log_function_call(level="INFO")
async def update_thresholds(
    payload: Thresholds,
    admin: str = Depends(require_admin),
    thresholds: ThresholdConfig = Depends(get_threshold_config),
):
    """Replace all four cutovers at once; any ordering problem rejects the update"""
    try:
        updated = await thresholds.set(payload.as_dict(), actor=admin)
    except ThresholdValidationError as e:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail={"problems": e.problems},
        )
    return DataWrapper(data=updated)
