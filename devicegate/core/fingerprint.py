"""Device fingerprinting from client-reported environment signals.

The fingerprint is a stable hash of what the browser tells us about itself
(user agent, locale, screen geometry, timezone offset, hardware concurrency,
memory and platform). Nothing is stored on the client.

This is a rate-limiting key, not an authentication factor: every signal is
reported by the client and can be spoofed, and two identical machines with the
same browser build will collide. Devices that send no signals at all collapse
onto ``UNKNOWN_DEVICE_ID`` and are refused registration, because the
one-account-per-device and attempt-tracking guarantees cannot hold for them.
Failed logins from ``UNKNOWN_DEVICE_ID`` are not counted either: a single
shared record would let anyone lock out every signal-less client at once.
Those logins are throttled per address only.
"""

import hashlib
from dataclasses import astuple, dataclass

from user_agents import parse as parse_user_agent

UNKNOWN_DEVICE_ID = "unknown-device"
FINGERPRINT_LENGTH = 32

_SEPARATOR = "||||"


@dataclass(frozen=True)
class DeviceSignals:
    """Environment signals observed by the client."""

    user_agent: str | None = None
    language: str | None = None
    color_depth: int | None = None
    screen_width: int | None = None
    screen_height: int | None = None
    timezone_offset: int | None = None
    hardware_concurrency: int | None = None
    device_memory: float | None = None
    platform: str | None = None

    def is_empty(self) -> bool:
        return all(value is None or value == "" for value in astuple(self))


@dataclass(frozen=True)
class DeviceDescription:
    name: str
    model: str
    platform: str


def compute_fingerprint(signals: DeviceSignals) -> str:
    """Derive a deterministic device id from ``signals``.

    Missing signals are hashed as ``unknown`` so that the position of every
    field stays fixed and the same tuple always produces the same id.
    """
    if signals.is_empty():
        return UNKNOWN_DEVICE_ID

    screen = None
    if signals.screen_width is not None and signals.screen_height is not None:
        screen = f"{signals.screen_width}x{signals.screen_height}"

    components = [
        signals.user_agent,
        signals.language,
        signals.color_depth,
        screen,
        signals.timezone_offset,
        signals.hardware_concurrency,
        signals.device_memory,
        signals.platform,
    ]
    combined = _SEPARATOR.join("unknown" if c is None else str(c) for c in components)
    return hashlib.sha256(combined.encode("utf-8")).hexdigest()[:FINGERPRINT_LENGTH]


def is_unknown_device(device_id: str | None) -> bool:
    """True when the id carries no device identity at all."""
    if device_id is None:
        return True
    device_id = device_id.strip()
    return not device_id or device_id == UNKNOWN_DEVICE_ID


def _platform_for(os_family: str) -> str:
    if os_family.startswith("Windows"):
        return "Windows"
    if os_family == "Android":
        return "Android"
    if os_family == "iOS":
        return "iOS"
    if os_family in ("Mac OS X", "macOS"):
        return "macOS"
    if os_family in ("Linux", "Ubuntu", "Fedora", "Debian", "Chrome OS"):
        return "Linux"
    return "Unknown"


def describe_device(user_agent: str | None) -> DeviceDescription:
    """Human-readable name, model and platform for a user agent string."""
    if not user_agent:
        return DeviceDescription(name="Unknown Device", model="Unknown Device", platform="Unknown")

    ua = parse_user_agent(user_agent)
    platform = _platform_for(ua.os.family)
    device_family = ua.device.family

    if platform == "iOS":
        name = device_family if device_family in ("iPhone", "iPad", "iPod") else "iOS Device"
        model = name
    elif platform == "Android":
        known = device_family not in ("Other", "Generic Smartphone", "Generic Tablet", "K")
        name = f"{device_family} Android Device" if known else "Android Device"
        version = ua.os.version_string
        model = f"Android {version}" if version else "Android"
    elif platform == "Windows":
        name = "Windows Phone" if ua.os.family == "Windows Phone" else "Windows Device"
        model = "Windows Device"
    elif platform == "macOS":
        name = "Mac"
        model = "Mac"
    elif platform == "Linux":
        name = "Linux Device"
        model = "Linux Device"
    else:
        name = "Unknown Device"
        model = "Unknown Device"

    return DeviceDescription(name=name, model=model, platform=platform)
