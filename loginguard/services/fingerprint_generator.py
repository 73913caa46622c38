"""
Fingerprint Generator

Composes a stable device identifier from a snapshot of passively
observable browser characteristics. A client-side collector (or a test)
fills a ClientEnvironment; an ordered list of probes turns it into a
component map which is canonicalised and hashed.

Failure handling:
- a probe that cannot produce a value degrades only its own component
  (sentinel "<name>_unavailable") and marks the result as fallback
- a blocked probe subsystem (canvas, WebGL, audio) switches to a reduced
  whole-fingerprint fallback built from a handful of basic signals
- an unavailable hash primitive switches to a non-cryptographic hash
"""

import hashlib
import json
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple

from loginguard.exceptions import ProbeBlockedError, ProbeUnavailableError
from loginguard.schemas.fingerprint import (
    ClientFingerprintReport,
    FingerprintComponentSummary,
)
from loginguard.utils.logging_config import get_logger

logger = get_logger(__name__)

# Fonts every platform renders; detection compares widths against these
BASELINE_FONTS = ("monospace", "sans-serif", "serif")

# Range of samples used for the audio signature
AUDIO_SIGNATURE_WINDOW = (4500, 5000)


@dataclass
class ClientEnvironment:
    """Raw values a browser exposes to scripts. None means not exposed."""

    user_agent: str = ""
    language: Optional[str] = None
    languages: List[str] = field(default_factory=list)
    platform: Optional[str] = None

    screen_width: Optional[int] = None
    screen_height: Optional[int] = None
    color_depth: Optional[int] = None
    pixel_ratio: Optional[float] = None
    viewport_width: Optional[int] = None
    viewport_height: Optional[int] = None

    timezone_offset: Optional[int] = None
    timezone: Optional[str] = None

    canvas_data: Optional[str] = None
    canvas_blocked: bool = False

    webgl_vendor: Optional[str] = None
    webgl_renderer: Optional[str] = None
    webgl_extensions: Optional[List[str]] = None
    webgl_blocked: bool = False

    audio_samples: Optional[Sequence[float]] = None
    audio_blocked: bool = False

    # Rendered text width per candidate font, measured with each baseline
    # family as the fallback: {"Arial": {"monospace": 512.0, ...}}
    font_widths: Optional[Dict[str, Dict[str, float]]] = None
    baseline_widths: Optional[Dict[str, float]] = None

    hardware_concurrency: Optional[int] = None
    device_memory: Optional[float] = None
    cookies_enabled: Optional[bool] = None
    do_not_track: Optional[bool] = None
    max_touch_points: Optional[int] = None


@dataclass(frozen=True)
class DeviceFingerprint:
    id: str
    components: Dict[str, Any]
    fallback: bool = False
    # Probe subsystems that were blocked; informational, not hashed
    blocked: Tuple[str, ...] = ()

    @property
    def unavailable_components(self) -> List[str]:
        return [
            name
            for name, value in self.components.items()
            if value == unavailable_marker(name)
        ]

    def to_report(self) -> ClientFingerprintReport:
        """Summary that travels to the server with an auth request"""
        components = self.components
        screen = components.get("screen")
        viewport = components.get("viewport")
        fonts = components.get("fonts")
        timezone = components.get("timezone")

        summary = FingerprintComponentSummary(
            screen_width=screen.get("width") if isinstance(screen, dict) else None,
            screen_height=screen.get("height") if isinstance(screen, dict) else None,
            color_depth=screen.get("color_depth") if isinstance(screen, dict) else None,
            viewport_width=(
                viewport.get("width") if isinstance(viewport, dict) else None
            ),
            viewport_height=(
                viewport.get("height") if isinstance(viewport, dict) else None
            ),
            timezone_offset=(
                timezone.get("offset")
                if isinstance(timezone, dict)
                else components.get("timezone_offset")
            ),
            timezone=timezone.get("name") if isinstance(timezone, dict) else None,
            language=_plain(components.get("language")),
            platform=_plain(components.get("platform")),
            hardware_concurrency=_number(components.get("hardware_concurrency")),
            device_memory=_number(components.get("device_memory")),
            cookies_enabled=_flag(components.get("cookies_enabled")),
            do_not_track=_flag(components.get("do_not_track")),
            font_count=len(fonts) if isinstance(fonts, list) else None,
            canvas_blocked="canvas" in self.blocked,
            webgl_blocked="webgl" in self.blocked,
            audio_blocked="audio" in self.blocked,
        )
        return ClientFingerprintReport(
            id=self.id, fallback=self.fallback, components=summary
        )


def unavailable_marker(name: str) -> str:
    return f"{name}_unavailable"


def _plain(value):
    if isinstance(value, str) and not value.endswith("_unavailable"):
        return value
    return None


def _number(value):
    if isinstance(value, bool):
        return None
    return value if isinstance(value, (int, float)) else None


def _flag(value):
    return value if isinstance(value, bool) else None


# Probes. Each takes the environment and returns a JSON-serialisable value,
# raising ProbeUnavailableError (or ProbeBlockedError) when it cannot.


def _require(value, what: str):
    if value is None:
        raise ProbeUnavailableError(f"{what} not exposed")
    return value


def probe_screen(env: ClientEnvironment) -> Dict[str, Any]:
    return {
        "width": _require(env.screen_width, "screen width"),
        "height": _require(env.screen_height, "screen height"),
        "color_depth": env.color_depth,
        "pixel_ratio": env.pixel_ratio,
    }


def probe_viewport(env: ClientEnvironment) -> Dict[str, int]:
    return {
        "width": _require(env.viewport_width, "viewport width"),
        "height": _require(env.viewport_height, "viewport height"),
    }


def probe_timezone(env: ClientEnvironment) -> Dict[str, Any]:
    return {
        "offset": _require(env.timezone_offset, "timezone offset"),
        "name": env.timezone,
    }


def probe_canvas(env: ClientEnvironment) -> str:
    if env.canvas_blocked:
        raise ProbeBlockedError("canvas readback blocked")
    data = _require(env.canvas_data, "canvas data")
    return hashlib.sha256(data.encode("utf-8")).hexdigest()


def probe_webgl(env: ClientEnvironment) -> Dict[str, Any]:
    if env.webgl_blocked:
        raise ProbeBlockedError("webgl context unavailable")
    return {
        "vendor": _require(env.webgl_vendor, "webgl vendor"),
        "renderer": _require(env.webgl_renderer, "webgl renderer"),
        "extensions": sorted(env.webgl_extensions or []),
    }


def probe_audio(env: ClientEnvironment) -> float:
    if env.audio_blocked:
        raise ProbeBlockedError("audio context unavailable")
    samples = _require(env.audio_samples, "audio samples")
    start, end = AUDIO_SIGNATURE_WINDOW
    window = list(samples[start:end]) or list(samples)
    if not window:
        raise ProbeUnavailableError("audio buffer empty")
    return round(sum(abs(sample) for sample in window), 6)


def probe_fonts(env: ClientEnvironment) -> List[str]:
    """A font is installed when any baseline measurement differs from it"""
    font_widths = _require(env.font_widths, "font measurements")
    baseline = _require(env.baseline_widths, "baseline widths")
    detected = []
    for font, widths in font_widths.items():
        for base in BASELINE_FONTS:
            if base in widths and base in baseline and widths[base] != baseline[base]:
                detected.append(font)
                break
    return sorted(detected)


def probe_hardware_concurrency(env: ClientEnvironment) -> int:
    return _require(env.hardware_concurrency, "hardware concurrency")


def probe_device_memory(env: ClientEnvironment) -> float:
    return _require(env.device_memory, "device memory")


def primary_language(env: ClientEnvironment) -> Optional[str]:
    return env.language or (env.languages[0] if env.languages else None)


def probe_language(env: ClientEnvironment) -> str:
    return _require(primary_language(env), "language")


def probe_platform(env: ClientEnvironment) -> str:
    return _require(env.platform, "platform")


def probe_cookies_enabled(env: ClientEnvironment) -> bool:
    return _require(env.cookies_enabled, "cookie flag")


def probe_do_not_track(env: ClientEnvironment) -> bool:
    return bool(env.do_not_track)


Probe = Callable[[ClientEnvironment], Any]

DEFAULT_PROBES: Tuple[Tuple[str, Probe], ...] = (
    ("screen", probe_screen),
    ("viewport", probe_viewport),
    ("timezone", probe_timezone),
    ("canvas", probe_canvas),
    ("webgl", probe_webgl),
    ("audio", probe_audio),
    ("fonts", probe_fonts),
    ("hardware_concurrency", probe_hardware_concurrency),
    ("device_memory", probe_device_memory),
    ("language", probe_language),
    ("platform", probe_platform),
    ("cookies_enabled", probe_cookies_enabled),
    ("do_not_track", probe_do_not_track),
)


def sha256_hex(payload: str) -> str:
    return hashlib.sha256(payload.encode("utf-8")).hexdigest()


def simple_hash(payload: str) -> str:
    """Deterministic 32-bit djb2 hash; no collision resistance"""
    value = 5381
    for char in payload:
        value = ((value << 5) + value + ord(char)) & 0xFFFFFFFF
    return f"{value:08x}"


def canonicalize(components: Dict[str, Any]) -> str:
    return json.dumps(components, sort_keys=True, separators=(",", ":"), default=str)


class FingerprintGenerator:
    """Runs the probes over a ClientEnvironment and hashes the result"""

    def __init__(
        self,
        probes: Sequence[Tuple[str, Probe]] = DEFAULT_PROBES,
        hasher: Callable[[str], str] = sha256_hex,
    ):
        self.probes = tuple(probes)
        self.hasher = hasher

    def generate(self, env: ClientEnvironment) -> DeviceFingerprint:
        components: Dict[str, Any] = {}
        blocked: List[str] = []
        degraded = False

        for name, probe in self.probes:
            try:
                components[name] = probe(env)
            except ProbeBlockedError as e:
                logger.info(
                    f"Probe subsystem blocked: {name}",
                    extra={"extra_fields": {"probe": name, "reason": str(e)}},
                )
                blocked.append(name)
            except Exception as e:
                # Probes touch browser APIs; any failure only costs its component
                logger.debug(
                    f"Probe unavailable: {name}",
                    extra={
                        "extra_fields": {
                            "probe": name,
                            "error_type": type(e).__name__,
                            "reason": str(e),
                        }
                    },
                )
                components[name] = unavailable_marker(name)
                degraded = True

        if blocked:
            return self._whole_fallback(env, tuple(blocked))

        fingerprint_id, hash_fallback = self._hash(components)
        return DeviceFingerprint(
            id=fingerprint_id,
            components=components,
            fallback=degraded or hash_fallback,
        )

    def _whole_fallback(
        self, env: ClientEnvironment, blocked: Tuple[str, ...]
    ) -> DeviceFingerprint:
        screen = (
            f"{env.screen_width}x{env.screen_height}"
            if env.screen_width is not None and env.screen_height is not None
            else unavailable_marker("screen")
        )
        components = {
            "user_agent": env.user_agent or unavailable_marker("user_agent"),
            "language": primary_language(env) or unavailable_marker("language"),
            "platform": env.platform or unavailable_marker("platform"),
            "screen": screen,
            "timezone_offset": (
                env.timezone_offset
                if env.timezone_offset is not None
                else unavailable_marker("timezone_offset")
            ),
            "cookies_enabled": bool(env.cookies_enabled),
        }
        fingerprint_id, _ = self._hash(components)
        logger.info(
            "Generated reduced fallback fingerprint",
            extra={"extra_fields": {"blocked_probes": list(blocked)}},
        )
        return DeviceFingerprint(
            id=fingerprint_id, components=components, fallback=True, blocked=blocked
        )

    def _hash(self, components: Dict[str, Any]) -> Tuple[str, bool]:
        canonical = canonicalize(components)
        try:
            digest = self.hasher(canonical)
            if not digest:
                raise ValueError("hasher returned an empty digest")
            return digest, False
        except Exception:
            logger.warning(
                "Hash primitive unavailable, using non-cryptographic fallback",
                exc_info=True,
            )
            return simple_hash(canonical), True
