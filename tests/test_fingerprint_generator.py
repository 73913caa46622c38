import hashlib

import pytest

from loginguard.exceptions import ProbeUnavailableError
from loginguard.services.fingerprint_generator import (
    DEFAULT_PROBES,
    ClientEnvironment,
    FingerprintGenerator,
    canonicalize,
    simple_hash,
    unavailable_marker,
)


def full_environment(**overrides) -> ClientEnvironment:
    values = dict(
        user_agent="Mozilla/5.0 (X11; Linux x86_64) Firefox/121.0",
        language="en-US",
        platform="Linux x86_64",
        screen_width=1920,
        screen_height=1080,
        color_depth=24,
        pixel_ratio=1.0,
        viewport_width=1800,
        viewport_height=950,
        timezone_offset=-60,
        timezone="Europe/Berlin",
        canvas_data="data:image/png;base64,iVBORw0KGgo",
        webgl_vendor="Mozilla",
        webgl_renderer="ANGLE (Intel HD Graphics 630)",
        webgl_extensions=["OES_texture_float", "ANGLE_instanced_arrays"],
        audio_samples=[0.001 * (i % 7) for i in range(6000)],
        font_widths={
            "Arial": {"monospace": 410.0, "sans-serif": 398.0, "serif": 401.0},
            "Comic Sans MS": {"monospace": 520.0, "sans-serif": 400.0, "serif": 402.0},
            "Missing Font": {"monospace": 500.0, "sans-serif": 400.0, "serif": 402.0},
        },
        baseline_widths={"monospace": 500.0, "sans-serif": 400.0, "serif": 402.0},
        hardware_concurrency=8,
        device_memory=8,
        cookies_enabled=True,
        do_not_track=False,
    )
    values.update(overrides)
    return ClientEnvironment(**values)


class TestFingerprintGenerator:
    """Probe execution, canonical hashing and fallback handling"""

    def test_same_environment_yields_same_id(self):
        generator = FingerprintGenerator()
        env = full_environment()

        first = generator.generate(env)
        second = generator.generate(env)

        assert first.id == second.id
        assert first.fallback is False
        assert len(first.id) == 64

    def test_id_is_sha256_of_canonical_components(self):
        fingerprint = FingerprintGenerator().generate(full_environment())

        expected = hashlib.sha256(
            canonicalize(fingerprint.components).encode("utf-8")
        ).hexdigest()
        assert fingerprint.id == expected

    def test_components_follow_probe_order(self):
        fingerprint = FingerprintGenerator().generate(full_environment())

        assert list(fingerprint.components) == [name for name, _ in DEFAULT_PROBES]

    def test_font_detection_compares_against_baselines(self):
        fingerprint = FingerprintGenerator().generate(full_environment())

        assert fingerprint.components["fonts"] == ["Arial", "Comic Sans MS"]

    def test_different_environment_yields_different_id(self):
        generator = FingerprintGenerator()

        a = generator.generate(full_environment())
        b = generator.generate(full_environment(screen_width=2560, screen_height=1440))

        assert a.id != b.id

    def test_unavailable_probe_degrades_one_component(self):
        fingerprint = FingerprintGenerator().generate(
            full_environment(device_memory=None)
        )

        assert fingerprint.fallback is True
        assert fingerprint.id
        assert fingerprint.components["device_memory"] == unavailable_marker(
            "device_memory"
        )
        assert fingerprint.unavailable_components == ["device_memory"]
        # Other components are untouched
        assert fingerprint.components["hardware_concurrency"] == 8

    def test_probe_raising_unexpected_error_is_contained(self):
        def exploding_probe(env):
            raise RuntimeError("API missing")

        probes = DEFAULT_PROBES + (("battery", exploding_probe),)
        fingerprint = FingerprintGenerator(probes=probes).generate(full_environment())

        assert fingerprint.fallback is True
        assert fingerprint.id
        assert fingerprint.components["battery"] == "battery_unavailable"

    def test_degraded_fingerprint_is_still_deterministic(self):
        generator = FingerprintGenerator()
        env = full_environment(canvas_data=None, audio_samples=None)

        assert generator.generate(env).id == generator.generate(env).id

    @pytest.mark.parametrize(
        "blocked_flag, blocked_probe",
        [
            ("canvas_blocked", "canvas"),
            ("webgl_blocked", "webgl"),
            ("audio_blocked", "audio"),
        ],
    )
    def test_blocked_subsystem_uses_reduced_fallback(self, blocked_flag, blocked_probe):
        env = full_environment(**{blocked_flag: True})
        fingerprint = FingerprintGenerator().generate(env)

        assert fingerprint.fallback is True
        assert blocked_probe in fingerprint.blocked
        assert set(fingerprint.components) == {
            "user_agent",
            "language",
            "platform",
            "screen",
            "timezone_offset",
            "cookies_enabled",
        }
        assert fingerprint.components["screen"] == "1920x1080"

    def test_reduced_fallback_ignores_deep_probe_values(self):
        generator = FingerprintGenerator()
        a = generator.generate(full_environment(canvas_blocked=True))
        b = generator.generate(
            full_environment(canvas_blocked=True, webgl_renderer="Something else")
        )

        assert a.id == b.id

    def test_reduced_fallback_reads_language_list_like_full_probe(self):
        generator = FingerprintGenerator()
        single = generator.generate(full_environment(canvas_blocked=True))
        listed = generator.generate(
            full_environment(canvas_blocked=True, language=None, languages=["en-US", "de"])
        )

        assert listed.components["language"] == "en-US"
        assert single.id == listed.id

    def test_missing_hash_primitive_falls_back_to_simple_hash(self):
        def broken_hasher(payload):
            raise ProbeUnavailableError("crypto.subtle unavailable")

        fingerprint = FingerprintGenerator(hasher=broken_hasher).generate(
            full_environment()
        )

        assert fingerprint.fallback is True
        assert fingerprint.id == simple_hash(canonicalize(fingerprint.components))
        assert len(fingerprint.id) == 8

    def test_empty_digest_counts_as_unavailable_hasher(self):
        fingerprint = FingerprintGenerator(hasher=lambda payload: "").generate(
            full_environment()
        )

        assert fingerprint.fallback is True
        assert fingerprint.id


class TestClientReport:
    """Summary the client sends alongside an auth request"""

    def test_report_carries_summary_values(self):
        report = FingerprintGenerator().generate(full_environment()).to_report()

        assert report.fallback is False
        assert report.components.screen_width == 1920
        assert report.components.viewport_height == 950
        assert report.components.font_count == 2
        assert report.components.timezone == "Europe/Berlin"
        assert report.components.canvas_blocked is False

    def test_report_from_blocked_environment(self):
        report = (
            FingerprintGenerator()
            .generate(full_environment(canvas_blocked=True, webgl_blocked=True))
            .to_report()
        )

        assert report.fallback is True
        assert report.components.canvas_blocked is True
        assert report.components.webgl_blocked is True
        # The reduced fallback only keeps the screen as a "WxH" string
        assert report.components.screen_width is None
        assert report.components.cookies_enabled is True

    def test_simple_hash_is_deterministic(self):
        assert simple_hash("abc") == simple_hash("abc")
        assert simple_hash("abc") != simple_hash("abd")
