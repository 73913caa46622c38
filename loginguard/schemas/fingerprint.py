from typing import Optional

from pydantic import Field

from loginguard.schemas.base_schema import BaseSchema


class FingerprintComponentSummary(BaseSchema):
    """Selected component values that travel with the fingerprint id"""

    screen_width: Optional[int] = Field(default=None, ge=0)
    screen_height: Optional[int] = Field(default=None, ge=0)
    viewport_width: Optional[int] = Field(default=None, ge=0)
    viewport_height: Optional[int] = Field(default=None, ge=0)
    color_depth: Optional[int] = Field(default=None, ge=0)
    timezone_offset: Optional[int] = None
    timezone: Optional[str] = Field(default=None, max_length=64)
    language: Optional[str] = Field(default=None, max_length=35)
    platform: Optional[str] = Field(default=None, max_length=100)
    hardware_concurrency: Optional[int] = Field(default=None, ge=0)
    device_memory: Optional[float] = Field(default=None, ge=0)
    cookies_enabled: Optional[bool] = None
    do_not_track: Optional[bool] = None
    font_count: Optional[int] = Field(default=None, ge=0)
    canvas_blocked: bool = False
    webgl_blocked: bool = False
    audio_blocked: bool = False


class ClientFingerprintReport(BaseSchema):
    """
    Fingerprint submitted by the client alongside an auth request.

    Advisory only: the server never keys devices on it, but its anomalies
    feed the risk score.
    """

    id: str = Field(..., pattern=r"^[0-9a-f]{8,64}$")
    fallback: bool = False
    components: FingerprintComponentSummary = Field(
        default_factory=FingerprintComponentSummary
    )
