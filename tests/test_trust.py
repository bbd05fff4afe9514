"""
Unit tests for device trust scoring.

Tests:
- Score bounds and determinism
- Per-field weights and subnet proximity
- Tiering and the password/OAuth asymmetry
"""

import pytest

from app.core.auth_config import TrustThresholds
from app.core import trust
from app.core.trust import AuthMethod, ConfidenceTier, DeviceFingerprint


THRESHOLDS = TrustThresholds(high=70, medium=40)

IPHONE = DeviceFingerprint("iPhone", "Mobile Safari", "iOS 17.1", "203.0.113.10")
LAPTOP = DeviceFingerprint("MacBook", "Chrome", "Mac OS X 14.1", "198.51.100.7")


class TestScore:
    """Test the scoring function"""

    def test_empty_trusted_set_scores_zero(self):
        assert trust.score(IPHONE, []) == 0

    def test_exact_match_scores_all_weights(self):
        assert trust.score(IPHONE, [IPHONE]) == 85

    def test_score_is_deterministic_and_bounded(self):
        trusted = [LAPTOP, IPHONE, DeviceFingerprint("Pixel 8", "Chrome Mobile", "Android 14", "192.0.2.1")]
        results = {trust.score(IPHONE, trusted) for _ in range(5)}
        assert len(results) == 1
        assert 0 <= results.pop() <= 100

    def test_best_match_wins(self):
        assert trust.score(IPHONE, [LAPTOP, IPHONE]) == trust.score(IPHONE, [IPHONE])

    def test_unrelated_device_scores_zero(self):
        assert trust.score(IPHONE, [LAPTOP]) == 0

    def test_os_version_upgrade_still_matches(self):
        upgraded = DeviceFingerprint("iPhone", "Mobile Safari", "iOS 18.0", "203.0.113.10")
        assert trust.match_score(IPHONE, upgraded) == 85

    def test_same_subnet_counts_as_ip_match(self):
        nearby = DeviceFingerprint("iPhone", "Mobile Safari", "iOS 17.1", "203.0.113.99")
        far = DeviceFingerprint("iPhone", "Mobile Safari", "iOS 17.1", "203.0.114.10")
        assert trust.match_score(IPHONE, nearby) == 85
        assert trust.match_score(IPHONE, far) == 70

    def test_missing_browser_never_matches(self):
        stored = DeviceFingerprint("Unknown Device", None, None, None)
        current = DeviceFingerprint("Unknown Device", None, None, None)
        assert trust.match_score(stored, current) == trust.DEVICE_NAME_WEIGHT


class TestSameNetwork:
    """Test IP proximity"""

    @pytest.mark.parametrize("a,b,expected", [
        ("10.0.0.1", "10.0.0.200", True),
        ("10.0.0.1", "10.0.1.1", False),
        ("2001:db8::1", "2001:db8::ffff", True),
        ("2001:db8:0:1::1", "2001:db8:0:2::1", False),
        ("10.0.0.1", "2001:db8::1", False),
        ("testclient", "testclient", True),
        ("testclient", "other", False),
        (None, "10.0.0.1", False),
    ])
    def test_same_network(self, a, b, expected):
        assert trust.same_network(a, b) is expected


class TestDecide:
    """Test tiering and the trust policy"""

    @pytest.mark.parametrize("value,tier", [
        (100, ConfidenceTier.HIGH),
        (70, ConfidenceTier.HIGH),
        (69, ConfidenceTier.MEDIUM),
        (40, ConfidenceTier.MEDIUM),
        (39, ConfidenceTier.LOW),
        (0, ConfidenceTier.LOW),
    ])
    def test_tier_boundaries(self, value, tier):
        assert trust.tier_for(value, THRESHOLDS) == tier

    def test_high_is_trusted_for_any_login(self):
        for method in AuthMethod:
            decision = trust.decide(85, method, THRESHOLDS)
            assert decision.is_trusted is True
            assert decision.needs_verification is False

    def test_medium_is_trusted_only_for_oauth(self):
        oauth = trust.decide(50, AuthMethod.OAUTH, THRESHOLDS)
        password = trust.decide(50, AuthMethod.PASSWORD, THRESHOLDS)

        assert (oauth.is_trusted, oauth.needs_verification) == (True, False)
        assert (password.is_trusted, password.needs_verification) == (False, True)

    def test_low_always_needs_verification(self):
        for method in AuthMethod:
            decision = trust.decide(15, method, THRESHOLDS)
            assert decision.is_trusted is False
            assert decision.needs_verification is True

    def test_thresholds_are_configuration(self):
        strict = TrustThresholds(high=90, medium=80)
        assert trust.decide(85, AuthMethod.PASSWORD, strict).tier == ConfidenceTier.MEDIUM

    def test_new_account_decision(self):
        decision = trust.new_account_decision()
        assert decision.score == 100
        assert decision.is_trusted is True
        assert decision.needs_verification is False
