"""
Behavioral + device-fingerprint analysis.

Behavior produces a *human-likeness* score 0.0–1.0:
  1.0  = every interaction signal looks human
  0.0  = no behavior data at all, or every penalty fired

Device fingerprint produces a *penalty* score 0.0–1.0 (0.0 when absent;
plenty of privacy setups strip it, so absence is not held against anyone).

Fields parsed as None (absent or malformed) are skipped.
"""

import math
from dataclasses import dataclass, field
from statistics import mean, pvariance

from app.core.signals import BehaviorData, DeviceFingerprint

# --- Behavior penalties ---
BEHAVIOR_PENALTIES: dict[str, float] = {
    "no_mouse_movement": 0.30,
    "no_clicks": 0.10,
    "no_keystrokes": 0.05,
    "no_scrolling": 0.10,
    "rapid_clicking": 0.20,
    "low_mouse_variation": 0.15,
    "linear_mouse_path": 0.15,
    "no_natural_pauses": 0.10,
    "mechanical_scrolling": 0.15,
    "rapid_uniform_clicks": 0.15,
    "no_interaction": 0.10,
    "excessive_interaction": 0.15,
}

RAPID_CLICK_MS = 100
LOW_MOUSE_VARIATION_PX = 10
NATURAL_PAUSE_MS = 100
MIN_PATH_SAMPLES = 10
COLLINEAR_TOLERANCE = 0.02  # |sin| of the turn angle
LINEAR_PATH_RATIO = 0.8
UNIFORM_CLICK_STD_MS = 10
UNIFORM_CLICK_MAX_MEAN_MS = 500
UNIFORM_SCROLL_DELTA = 0.1
MECHANICAL_SCROLL_PATTERNS = {"too_fast", "too_uniform"}

# --- Device penalties ---
DEVICE_PENALTIES: dict[str, float] = {
    "webdriver_detected": 0.50,
    "no_plugins": 0.15,
    "excessive_plugins": 0.10,
    "missing_hardware_info": 0.15,
    "viewport_exceeds_screen": 0.15,
    "legacy_screen_resolution": 0.10,
    "storage_disabled": 0.10,
    "utc_timezone": 0.10,
    "missing_language": 0.10,
    "timezone_language_mismatch": 0.10,
}

MAX_PLUGINS = 50
LEGACY_RESOLUTIONS = {(1024, 768), (800, 600)}
UTC_TIMEZONES = {"UTC", "Etc/UTC", "Etc/GMT"}

# Language region → plausible IANA timezone prefixes
REGION_TIMEZONES: dict[str, tuple[str, ...]] = {
    "US": ("America/", "Pacific/Honolulu", "US/"),
    "CA": ("America/",),
    "BR": ("America/",),
    "MX": ("America/",),
    "IN": ("Asia/Kolkata", "Asia/Calcutta"),
    "GB": ("Europe/London",),
    "DE": ("Europe/Berlin", "Europe/Busingen"),
    "FR": ("Europe/Paris",),
    "JP": ("Asia/Tokyo",),
    "CN": ("Asia/Shanghai", "Asia/Urumqi"),
    "RU": ("Europe/", "Asia/"),
    "AU": ("Australia/",),
}


@dataclass
class BehaviorAnalysis:
    score: float
    signals: list[str] = field(default_factory=list)


@dataclass
class DeviceAnalysis:
    score: float
    anomalies: list[str] = field(default_factory=list)


# --- Raw sample checks ---

def _is_linear_path(path: list[tuple[float, float, float]]) -> bool:
    """Mostly collinear consecutive segments → scripted mouse movement."""
    recent = path[-20:]
    triples = 0
    collinear = 0
    for (x0, y0, _), (x1, y1, _), (x2, y2, _) in zip(recent, recent[1:], recent[2:]):
        ax, ay = x1 - x0, y1 - y0
        bx, by = x2 - x1, y2 - y1
        norm = math.hypot(ax, ay) * math.hypot(bx, by)
        if norm == 0:
            continue
        triples += 1
        if abs(ax * by - ay * bx) / norm < COLLINEAR_TOLERANCE:
            collinear += 1
    return triples >= 6 and collinear / triples >= LINEAR_PATH_RATIO


def _lacks_natural_pauses(path: list[tuple[float, float, float]]) -> bool:
    if len(path) < MIN_PATH_SAMPLES:
        return False
    gaps = [b[2] - a[2] for a, b in zip(path, path[1:])]
    return not any(gap > NATURAL_PAUSE_MS for gap in gaps)


def _has_uniform_clicks(click_times: list[float]) -> bool:
    intervals = [b - a for a, b in zip(click_times, click_times[1:])]
    if len(intervals) < 4:
        return False
    return (
        mean(intervals) < UNIFORM_CLICK_MAX_MEAN_MS
        and math.sqrt(pvariance(intervals)) < UNIFORM_CLICK_STD_MS
    )


def _has_mechanical_scroll(data: BehaviorData) -> bool:
    if data.scroll_pattern in MECHANICAL_SCROLL_PATTERNS:
        return True
    deltas = data.scroll_deltas or []
    if len(deltas) < 5:
        return False
    avg = mean(deltas)
    return all(abs(d - avg) < UNIFORM_SCROLL_DELTA for d in deltas)


def analyze_behavior(data: BehaviorData | None) -> BehaviorAnalysis:
    """Subtract a penalty for every bot-like trait. Never raises."""
    if data is None:
        return BehaviorAnalysis(score=0.0, signals=["no_behavior_data"])

    signals: list[str] = []

    if data.mouse_movements == 0:
        signals.append("no_mouse_movement")
    if data.clicks == 0:
        signals.append("no_clicks")
    if data.keystrokes == 0:
        signals.append("no_keystrokes")
    if data.scroll_events == 0:
        signals.append("no_scrolling")

    if data.avg_click_speed is not None and 0 < data.avg_click_speed < RAPID_CLICK_MS:
        signals.append("rapid_clicking")

    if (
        data.mouse_variation is not None
        and data.mouse_variation < LOW_MOUSE_VARIATION_PX
        and (data.mouse_movements or 0) > 0
    ):
        signals.append("low_mouse_variation")

    if data.mouse_path:
        if _is_linear_path(data.mouse_path):
            signals.append("linear_mouse_path")
        if _lacks_natural_pauses(data.mouse_path):
            signals.append("no_natural_pauses")

    if _has_mechanical_scroll(data):
        signals.append("mechanical_scrolling")

    if data.click_times and _has_uniform_clicks(data.click_times):
        signals.append("rapid_uniform_clicks")

    if data.time_on_page is not None and data.page_interactions is not None:
        if data.time_on_page > 30_000 and data.page_interactions == 0:
            signals.append("no_interaction")
        elif data.time_on_page < 10_000 and data.page_interactions > 50:
            signals.append("excessive_interaction")

    score = 1.0 - sum(BEHAVIOR_PENALTIES[s] for s in signals)
    return BehaviorAnalysis(score=round(max(0.0, min(1.0, score)), 4), signals=signals)


def _timezone_mismatch(timezone: str, language: str) -> bool:
    _, _, region = language.replace("_", "-").partition("-")
    expected = REGION_TIMEZONES.get(region.upper())
    if not expected:
        return False
    return not timezone.startswith(expected)


def analyze_device(fp: DeviceFingerprint | None) -> DeviceAnalysis:
    """Flag automation markers in the device fingerprint. Never raises."""
    if fp is None:
        return DeviceAnalysis(score=0.0)

    anomalies: list[str] = []

    if fp.webdriver is True:
        anomalies.append("webdriver_detected")

    if fp.plugins is not None:
        if len(fp.plugins) == 0:
            anomalies.append("no_plugins")
        elif len(fp.plugins) > MAX_PLUGINS:
            anomalies.append("excessive_plugins")

    if not fp.device_memory and not fp.hardware_concurrency:
        anomalies.append("missing_hardware_info")

    if None not in (fp.screen_width, fp.screen_height, fp.viewport_width, fp.viewport_height):
        if fp.viewport_width > fp.screen_width or fp.viewport_height > fp.screen_height:
            anomalies.append("viewport_exceeds_screen")

    if (fp.screen_width, fp.screen_height) in LEGACY_RESOLUTIONS:
        anomalies.append("legacy_screen_resolution")

    if fp.local_storage is False or fp.session_storage is False:
        anomalies.append("storage_disabled")

    is_utc = fp.timezone in UTC_TIMEZONES
    if is_utc:
        anomalies.append("utc_timezone")

    if not fp.language:
        anomalies.append("missing_language")
    elif fp.timezone and not is_utc and _timezone_mismatch(fp.timezone, fp.language):
        anomalies.append("timezone_language_mismatch")

    score = sum(DEVICE_PENALTIES[a] for a in anomalies)
    return DeviceAnalysis(score=round(min(1.0, score), 4), anomalies=anomalies)
