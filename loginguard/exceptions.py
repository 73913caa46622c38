"""
Domain errors raised by the risk engine.

Only threshold validation and device lookups surface to callers (admins).
Probe and geolocation errors are handled inside their components.
"""

from typing import List, Optional


class LoginGuardError(Exception):
    """Base class for engine errors"""


class ThresholdValidationError(LoginGuardError):
    """Rejected threshold update; the active configuration is unchanged"""

    def __init__(self, problems: List[str]):
        self.problems = problems
        super().__init__("; ".join(problems))


class DeviceNotFoundError(LoginGuardError):
    def __init__(self, fingerprint: str, user_id: Optional[str] = None):
        self.fingerprint = fingerprint
        self.user_id = user_id
        target = f"{fingerprint} for user {user_id}" if user_id else fingerprint
        super().__init__(f"No device found with fingerprint {target}")


class GeoLocationError(LoginGuardError):
    """Provider failure; converted to an unknown location by the resolver"""


class ProbeUnavailableError(LoginGuardError):
    """A single fingerprint probe could not produce a value"""


class ProbeBlockedError(ProbeUnavailableError):
    """A whole probe subsystem (canvas, WebGL, audio) is disabled"""
