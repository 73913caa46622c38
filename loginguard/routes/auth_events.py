from fastapi import APIRouter, Depends, Request

from loginguard.dependencies import get_login_recorder, get_threshold_config
from loginguard.schemas.login_attempt import LoginAttemptCreate, RecordedAttemptResponse
from loginguard.services.geolocation import format_location_for_display
from loginguard.services.login_recorder import LoginAttemptRecorder
from loginguard.services.threshold_config import ThresholdConfig
from loginguard.utils.ip_address_finder import extract_request_context
from loginguard.utils.logging_config import get_logger, log_function_call
from loginguard.utils.pagination import DataWrapper

logger = get_logger(__name__)

router = APIRouter(prefix="/auth-events", tags=["auth events"])


@router.post("/login-attempts", response_model=DataWrapper[RecordedAttemptResponse])
@log_function_call(level="INFO")
async def record_login_attempt(
    request: Request,
    attempt: LoginAttemptCreate,
    recorder: LoginAttemptRecorder = Depends(get_login_recorder),
    thresholds: ThresholdConfig = Depends(get_threshold_config),
):
    """
    Record an authentication attempt made by the calling client.

    The IP and headers of this request are the signals that get scored.
    Bookkeeping failures are logged and never change the response.
    """
    context = extract_request_context(request)
    recorded = await recorder.record(
        user_id=attempt.user_id,
        context=context,
        success=attempt.success,
        failure_reason=attempt.failure_reason,
        login_method=attempt.login_method,
        client_report=attempt.client_fingerprint,
    )
    assessment = recorded.assessment
    decision = thresholds.decide(assessment.score)

    if decision.decision != "allow":
        logger.info(
            f"Login attempt decision: {decision.decision}",
            extra={
                "extra_fields": {
                    "user_id": str(attempt.user_id) if attempt.user_id else None,
                    "client_ip": context.ip_address,
                    "risk_score": assessment.score,
                    "decision": decision.decision,
                    "action": "login_attempt_scored",
                }
            },
        )

    return DataWrapper(
        data=RecordedAttemptResponse(
            attempt_id=recorded.attempt_id,
            device_fingerprint=recorded.device_fingerprint,
            is_trusted_device=recorded.is_trusted_device,
            location_display=format_location_for_display(recorded.geolocation),
            risk_score=assessment.score,
            risk_level=assessment.level,
            security_flags=assessment.flags,
            decision=decision.decision,
            recommended_actions=decision.recommended_actions,
        )
    )
