"""
Device fingerprinting from request headers.
"""

from fastapi import Request
from user_agents import parse as parse_user_agent

from app.core.api_rate_limiter import get_client_ip
from app.core.trust import DeviceFingerprint
from app.models.device import UNKNOWN_BROWSER, UNKNOWN_DEVICE, UNKNOWN_OS

# ua-parser reports unknown families as "Other"
_UNKNOWN_FAMILIES = {"", "Other", "Generic Smartphone", "Generic Feature Phone"}


def _known(value) -> bool:
    return bool(value) and value not in _UNKNOWN_FAMILIES


def fingerprint_from_user_agent(user_agent: str, ip_address: str = None) -> DeviceFingerprint:
    """
    Build a device fingerprint from a User-Agent string.

    Examples:
        "Mozilla/5.0 (iPhone; CPU iPhone OS 17_1 like Mac OS X) ... Safari/604.1"
        -> DeviceFingerprint("iPhone", "Mobile Safari", "iOS 17.1", ip)
    """
    ua = parse_user_agent(user_agent or "")

    device_name = ua.device.model if _known(ua.device.model) else UNKNOWN_DEVICE
    browser = ua.browser.family if _known(ua.browser.family) else UNKNOWN_BROWSER

    if _known(ua.os.family):
        os_name = f"{ua.os.family} {ua.os.version_string}".strip()
    else:
        os_name = UNKNOWN_OS

    return DeviceFingerprint(
        device_name=device_name,
        browser=browser,
        os=os_name,
        ip_address=ip_address,
    )


def fingerprint_from_request(request: Request) -> DeviceFingerprint:
    return fingerprint_from_user_agent(
        request.headers.get("user-agent", ""),
        ip_address=get_client_ip(request),
    )
