"""
Request signals: the per-call input bundle of the scoring engine.

The client SDK posts loosely-typed JSON (camelCase). Everything is parsed
here, once, into explicit optional fields:

  - absent field      → None (extractors treat it as "missing signal")
  - wrong-typed field → None (malformed: contributes nothing, never raises)

Extractors downstream never poke at raw dicts.
"""

import math
from dataclasses import dataclass, field
from typing import Any


# --- Defensive coercion helpers ---

def _as_float(value: Any) -> float | None:
    # bool is an int subclass; a boolean count is malformed
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    try:
        number = float(value)
    except OverflowError:
        # JSON integers are unbounded
        return None
    return number if math.isfinite(number) else None


def _as_int(value: Any) -> int | None:
    number = _as_float(value)
    if number is None:
        return None
    return value if isinstance(value, int) else int(number)


def _as_str(value: Any) -> str | None:
    if isinstance(value, str):
        return value
    return None


def _as_bool(value: Any) -> bool | None:
    if isinstance(value, bool):
        return value
    return None


def _as_float_list(value: Any) -> list[float] | None:
    if not isinstance(value, (list, tuple)):
        return None
    out = [v for v in (_as_float(item) for item in value) if v is not None]
    return out


def _as_points(value: Any) -> list[tuple[float, float, float]] | None:
    """Mouse samples: [{"x":..,"y":..,"t":..}, ...] or [[x, y, t], ...]."""
    if not isinstance(value, (list, tuple)):
        return None
    points = []
    for item in value:
        if isinstance(item, dict):
            x, y = _as_float(item.get("x")), _as_float(item.get("y"))
            t = _as_float(item.get("t", item.get("timestamp")))
        elif isinstance(item, (list, tuple)) and len(item) >= 3:
            x, y, t = _as_float(item[0]), _as_float(item[1]), _as_float(item[2])
        else:
            continue
        if x is None or y is None or t is None:
            continue
        points.append((x, y, t))
    return points


# --- Signal types ---

@dataclass(frozen=True)
class BehaviorData:
    """Behavioral telemetry aggregated by the client SDK."""
    mouse_movements: int | None = None
    clicks: int | None = None
    keystrokes: int | None = None
    scroll_events: int | None = None
    avg_click_speed: float | None = None  # ms between clicks
    mouse_variation: float | None = None  # px range, x + y
    scroll_pattern: str | None = None     # normal, too_fast, too_slow, too_uniform, insufficient_data
    time_on_page: float | None = None     # ms
    page_interactions: int | None = None

    # Raw samples, when the SDK ships them
    mouse_path: list[tuple[float, float, float]] | None = None  # (x, y, t_ms)
    click_times: list[float] | None = None                      # t_ms
    scroll_deltas: list[float] | None = None                    # px per scroll event

    @classmethod
    def from_payload(cls, raw: Any) -> "BehaviorData | None":
        if not isinstance(raw, dict):
            return None

        # The SDK sometimes ships raw event arrays instead of counts
        def count(key: str) -> int | None:
            value = raw.get(key)
            if isinstance(value, list):
                return len(value)
            return _as_int(value)

        return cls(
            mouse_movements=count("mouseMovements"),
            clicks=count("clicks"),
            keystrokes=count("keystrokes"),
            scroll_events=count("scrollEvents"),
            avg_click_speed=_as_float(raw.get("avgClickSpeed")),
            mouse_variation=_as_float(raw.get("mouseVariation")),
            scroll_pattern=_as_str(raw.get("scrollPattern")),
            time_on_page=_as_float(raw.get("timeOnPage")),
            page_interactions=_as_int(raw.get("pageInteractions")),
            mouse_path=_as_points(raw.get("mousePath")),
            click_times=_as_float_list(raw.get("clickTimes")),
            scroll_deltas=_as_float_list(raw.get("scrollDeltas")),
        )


@dataclass(frozen=True)
class DeviceFingerprint:
    webdriver: bool | None = None
    plugins: list[str] | None = None
    device_memory: float | None = None
    hardware_concurrency: int | None = None
    timezone: str | None = None
    language: str | None = None
    screen_width: int | None = None
    screen_height: int | None = None
    viewport_width: int | None = None
    viewport_height: int | None = None
    local_storage: bool | None = None
    session_storage: bool | None = None

    @classmethod
    def from_payload(cls, raw: Any) -> "DeviceFingerprint | None":
        if not isinstance(raw, dict):
            return None

        plugins = raw.get("plugins")
        if isinstance(plugins, list):
            plugins = [str(p) for p in plugins]
        else:
            plugins = None

        screen_width = _as_int(raw.get("screenWidth"))
        screen_height = _as_int(raw.get("screenHeight"))
        resolution = _as_str(raw.get("screenResolution"))
        if resolution and (screen_width is None or screen_height is None):
            w, _, h = resolution.partition("x")
            if w.isdigit() and h.isdigit():
                screen_width, screen_height = int(w), int(h)

        return cls(
            webdriver=_as_bool(raw.get("webdriver")),
            plugins=plugins,
            device_memory=_as_float(raw.get("deviceMemory")),
            hardware_concurrency=_as_int(raw.get("hardwareConcurrency")),
            timezone=_as_str(raw.get("timezone")),
            language=_as_str(raw.get("language")),
            screen_width=screen_width,
            screen_height=screen_height,
            viewport_width=_as_int(raw.get("viewportWidth")),
            viewport_height=_as_int(raw.get("viewportHeight")),
            local_storage=_as_bool(raw.get("localStorage")),
            session_storage=_as_bool(raw.get("sessionStorage")),
        )


@dataclass(frozen=True)
class RequestSignal:
    """Everything the engine knows about one inbound analysis call."""
    session_id: str
    ip_address: str
    user_agent: str | None = None
    headers: dict[str, str] = field(default_factory=dict)
    behavior_data: BehaviorData | None = None
    device_fingerprint: DeviceFingerprint | None = None
    country_code: str | None = None

    @classmethod
    def from_payload(
        cls,
        payload: dict,
        session_id: str,
        ip_address: str,
        headers: dict[str, str] | None = None,
    ) -> "RequestSignal":
        """Build a signal from the SDK's JSON body.

        `session_id`, `ip_address` and `headers` are resolved by the caller
        (they may come from the transport rather than the body).
        """
        country = _as_str(payload.get("countryCode"))
        return cls(
            session_id=session_id,
            ip_address=ip_address,
            user_agent=_as_str(payload.get("userAgent")),
            headers={
                str(k).lower(): v for k, v in (headers or {}).items() if isinstance(v, str)
            },
            behavior_data=BehaviorData.from_payload(payload.get("behaviorData")),
            device_fingerprint=DeviceFingerprint.from_payload(payload.get("deviceFingerprint")),
            country_code=country.upper() if country else None,
        )
