"""
Tests for anti-cheat policy parsing and validation
"""

import pytest

from quizguard.config import settings
from quizguard.models.proctoring import AntiCheatPolicy
from quizguard.utils.exceptions import ConfigError


class TestPolicyDefaults:

    def test_defaults_come_from_settings(self):
        """An empty policy uses the configured defaults"""
        policy = AntiCheatPolicy()

        assert policy.enabled is True
        assert policy.tab_change_limit == settings.DEFAULT_TAB_CHANGE_LIMIT
        assert policy.time_away_threshold_seconds == settings.DEFAULT_TIME_AWAY_THRESHOLD
        assert policy.auto_disqualify_on_refresh == settings.DEFAULT_AUTO_DISQUALIFY_ON_REFRESH
        assert policy.auto_submit_on_disqualification == settings.DEFAULT_AUTO_SUBMIT_ON_DISQUALIFICATION

    def test_missing_settings_fall_back_to_defaults(self):
        assert AntiCheatPolicy.from_settings({}) == AntiCheatPolicy()
        assert AntiCheatPolicy.from_settings(None) == AntiCheatPolicy()


class TestPolicyFromSettings:

    def test_parses_camel_case_keys(self):
        policy = AntiCheatPolicy.from_settings({
            "enabled": False,
            "tabChangeLimit": 2,
            "timeAwayThreshold": 10,
            "autoDisqualifyOnRefresh": False,
            "autoSubmitOnDisqualification": False,
            "preventCopyPaste": True,
        })

        assert policy.enabled is False
        assert policy.tab_change_limit == 2
        assert policy.time_away_threshold_seconds == 10
        assert policy.auto_disqualify_on_refresh is False
        assert policy.auto_submit_on_disqualification is False
        assert policy.prevent_copy_paste is True

    def test_zero_limits_are_valid(self):
        policy = AntiCheatPolicy.from_settings({"tabChangeLimit": 0, "timeAwayThreshold": 0})
        assert policy.tab_change_limit == 0
        assert policy.time_away_threshold_seconds == 0

    def test_whole_float_is_accepted(self):
        """JSON numbers such as 3.0 are whole numbers"""
        assert AntiCheatPolicy.from_settings({"tabChangeLimit": 3.0}).tab_change_limit == 3

    @pytest.mark.parametrize("value", [-1, 2.5, "3", True])
    def test_rejects_bad_tab_change_limit(self, value):
        with pytest.raises(ConfigError) as exc_info:
            AntiCheatPolicy.from_settings({"tabChangeLimit": value})
        assert exc_info.value.field == "tabChangeLimit"
        assert exc_info.value.status_code == 422

    @pytest.mark.parametrize("value", [float("inf"), float("nan")])
    def test_rejects_non_finite_limit(self, value):
        with pytest.raises(ConfigError) as exc_info:
            AntiCheatPolicy.from_settings({"timeAwayThreshold": value})
        assert exc_info.value.field == "timeAwayThreshold"

    @pytest.mark.parametrize("key,value", [
        ("enabled", "false"),
        ("autoDisqualifyOnRefresh", "no"),
        ("autoSubmitOnDisqualification", 0),
        ("fullscreenMode", 1),
    ])
    def test_rejects_non_boolean_flags(self, key, value):
        """A stored "false" string must not read as truthy"""
        with pytest.raises(ConfigError) as exc_info:
            AntiCheatPolicy.from_settings({key: value})
        assert exc_info.value.field == key

    def test_real_booleans_are_kept(self):
        policy = AntiCheatPolicy.from_settings({"enabled": False, "fullscreenMode": True})
        assert policy.enabled is False
        assert policy.fullscreen_mode is True

    def test_rejects_negative_time_away_threshold(self):
        with pytest.raises(ConfigError) as exc_info:
            AntiCheatPolicy.from_settings({"timeAwayThreshold": -5})
        assert exc_info.value.field == "timeAwayThreshold"

    def test_validated_rejects_negative_limits(self):
        with pytest.raises(ConfigError):
            AntiCheatPolicy(tab_change_limit=-1).validated()

    def test_to_settings_is_inverse(self):
        policy = AntiCheatPolicy.from_settings({"tabChangeLimit": 7, "fullscreenMode": True})
        assert AntiCheatPolicy.from_settings(policy.to_settings()) == policy
