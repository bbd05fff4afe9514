"""
Device trust scoring.

`score` is a pure function: it compares the fingerprint observed on the
current request against the devices behind the user's trusted sessions and
returns the best match in [0, 100]. `decide` turns that score into the
trust decision for a new device session.

Only trusted sessions may feed the comparison set. Letting an unverified
session count would let an attacker bootstrap trust from their own login.
"""

import enum
import ipaddress
from dataclasses import dataclass
from typing import Iterable, Optional

from app.core.auth_config import TrustThresholds

DEVICE_NAME_WEIGHT = 30
BROWSER_WEIGHT = 20
OS_WEIGHT = 20
IP_WEIGHT = 15

MAX_SCORE = 100
NEW_ACCOUNT_SCORE = 100


class ConfidenceTier(str, enum.Enum):
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


class AuthMethod(str, enum.Enum):
    """How the primary credential session was established."""
    PASSWORD = "password"
    OAUTH = "oauth"


@dataclass(frozen=True)
class DeviceFingerprint:
    device_name: str
    browser: Optional[str] = None
    os: Optional[str] = None
    ip_address: Optional[str] = None

    @classmethod
    def from_device(cls, device) -> "DeviceFingerprint":
        return cls(
            device_name=device.device_name,
            browser=device.browser,
            os=device.os,
            ip_address=device.ip_address,
        )


@dataclass(frozen=True)
class TrustDecision:
    score: int
    tier: ConfidenceTier
    is_trusted: bool
    needs_verification: bool


def _os_base(os_name: str) -> str:
    # "Mac OS X 14.1" and "Mac OS X 13" share a base; so do "Windows 10" and "Windows 11"
    return os_name.split(" ")[0]


def same_network(a: Optional[str], b: Optional[str]) -> bool:
    """
    True if two addresses are equal or share a network: /24 for IPv4, /64 for IPv6.

    Unparseable addresses only match on exact string equality.
    """
    if not a or not b:
        return False
    if a == b:
        return True
    try:
        ip_a = ipaddress.ip_address(a)
        ip_b = ipaddress.ip_address(b)
    except ValueError:
        return False
    if ip_a.version != ip_b.version:
        return False
    prefix = 24 if ip_a.version == 4 else 64
    network = ipaddress.ip_network(f"{ip_a}/{prefix}", strict=False)
    return ip_b in network


def match_score(stored: DeviceFingerprint, current: DeviceFingerprint) -> int:
    """Weighted similarity between one stored device and the current one."""
    score = 0

    if stored.device_name == current.device_name:
        score += DEVICE_NAME_WEIGHT

    if stored.browser and stored.browser == current.browser:
        score += BROWSER_WEIGHT

    if stored.os and current.os and _os_base(stored.os) == _os_base(current.os):
        score += OS_WEIGHT

    if same_network(stored.ip_address, current.ip_address):
        score += IP_WEIGHT

    return min(score, MAX_SCORE)


def score(current: DeviceFingerprint, trusted_devices: Iterable[DeviceFingerprint]) -> int:
    """
    Best match of `current` against the trusted devices.

    An empty trusted set scores 0.
    """
    return max((match_score(stored, current) for stored in trusted_devices), default=0)


def tier_for(value: int, thresholds: TrustThresholds) -> ConfidenceTier:
    if value >= thresholds.high:
        return ConfidenceTier.HIGH
    if value >= thresholds.medium:
        return ConfidenceTier.MEDIUM
    return ConfidenceTier.LOW


def decide(value: int, auth_method: AuthMethod, thresholds: TrustThresholds) -> TrustDecision:
    """
    Trust policy for a new device session.

    Password logins are held to a stricter bar than federated logins:
    a medium-confidence match is trusted only for OAuth.
    """
    tier = tier_for(value, thresholds)
    is_oauth = auth_method == AuthMethod.OAUTH

    if tier == ConfidenceTier.HIGH:
        is_trusted, needs_verification = True, False
    elif tier == ConfidenceTier.MEDIUM:
        is_trusted, needs_verification = is_oauth, not is_oauth
    else:
        is_trusted, needs_verification = False, True

    return TrustDecision(score=value, tier=tier, is_trusted=is_trusted, needs_verification=needs_verification)


def new_account_decision() -> TrustDecision:
    """The device that created the account is trusted outright."""
    return TrustDecision(
        score=NEW_ACCOUNT_SCORE,
        tier=ConfidenceTier.HIGH,
        is_trusted=True,
        needs_verification=False,
    )
