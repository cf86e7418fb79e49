from datetime import datetime, timezone
from enum import Enum
from typing import Optional, Tuple, Dict, Any
from pydantic import BaseModel, ConfigDict, Field

from quizguard.config import settings
from quizguard.utils.exceptions import ConfigError


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ViolationType(str, Enum):
    TAB_CHANGE = "tab_change"
    TIME_AWAY = "time_away"
    REFRESH = "refresh"


class SessionStatus(str, Enum):
    ACTIVE = "active"
    FLAGGED = "flagged"
    DISQUALIFIED = "disqualified"
    COMPLETED = "completed"
    ABANDONED = "abandoned"


# Statuses in which violation events no longer drive transitions
TERMINAL_STATUSES = frozenset({
    SessionStatus.DISQUALIFIED,
    SessionStatus.COMPLETED,
    SessionStatus.ABANDONED,
})

# Statuses in which the session can no longer be written to at all
CLOSED_STATUSES = frozenset({SessionStatus.COMPLETED, SessionStatus.ABANDONED})


class AntiCheatPolicy(BaseModel):
    """Per-quiz integrity rules. Snapshotted into each session at start."""
    model_config = ConfigDict(frozen=True)

    enabled: bool = True
    tab_change_limit: int = Field(default_factory=lambda: settings.DEFAULT_TAB_CHANGE_LIMIT)
    time_away_threshold_seconds: int = Field(default_factory=lambda: settings.DEFAULT_TIME_AWAY_THRESHOLD)
    auto_disqualify_on_refresh: bool = Field(default_factory=lambda: settings.DEFAULT_AUTO_DISQUALIFY_ON_REFRESH)
    auto_submit_on_disqualification: bool = Field(
        default_factory=lambda: settings.DEFAULT_AUTO_SUBMIT_ON_DISQUALIFICATION
    )

    # Advisory flags, enforced client-side only
    prevent_copy_paste: bool = False
    fullscreen_mode: bool = False
    disable_right_click: bool = False

    def validated(self) -> "AntiCheatPolicy":
        """
        Check the policy invariants.

        Returns:
            The policy itself when valid

        Raises:
            ConfigError: If a limit is negative
        """
        if self.tab_change_limit < 0:
            raise ConfigError("Tab change limit must be zero or greater", field="tabChangeLimit")
        if self.time_away_threshold_seconds < 0:
            raise ConfigError("Time away threshold must be zero or greater", field="timeAwayThreshold")
        return self

    @classmethod
    def from_settings(cls, raw: Optional[Dict[str, Any]]) -> "AntiCheatPolicy":
        """
        Build a policy from a loosely-typed quiz settings object.

        Accepts the camelCase keys stored with a quiz (``enabled``,
        ``tabChangeLimit``, ``timeAwayThreshold``, ``autoDisqualifyOnRefresh``,
        ``autoSubmitOnDisqualification``, ``preventCopyPaste``,
        ``fullscreenMode``, ``disableRightClick``). Missing keys fall back to
        the configured defaults.

        Raises:
            ConfigError: If a limit is not an integer or is negative, or a
                flag is not a boolean
        """
        raw = raw or {}
        values: Dict[str, Any] = {}

        for key, field in (
            ("tabChangeLimit", "tab_change_limit"),
            ("timeAwayThreshold", "time_away_threshold_seconds"),
        ):
            value = raw.get(key)
            if value is None:
                continue
            if isinstance(value, bool) or not isinstance(value, (int, float)) or (
                isinstance(value, float) and not value.is_integer()
            ):
                raise ConfigError(f"{key} must be a whole number", field=key)
            values[field] = int(value)

        for key, field in (
            ("enabled", "enabled"),
            ("autoDisqualifyOnRefresh", "auto_disqualify_on_refresh"),
            ("autoSubmitOnDisqualification", "auto_submit_on_disqualification"),
            ("preventCopyPaste", "prevent_copy_paste"),
            ("fullscreenMode", "fullscreen_mode"),
            ("disableRightClick", "disable_right_click"),
        ):
            value = raw.get(key)
            if value is None:
                continue
            if not isinstance(value, bool):
                raise ConfigError(f"{key} must be true or false", field=key)
            values[field] = value

        return cls(**values).validated()

    def to_settings(self) -> Dict[str, Any]:
        """Inverse of from_settings, for persisting alongside the quiz"""
        return {
            "enabled": self.enabled,
            "tabChangeLimit": self.tab_change_limit,
            "timeAwayThreshold": self.time_away_threshold_seconds,
            "autoDisqualifyOnRefresh": self.auto_disqualify_on_refresh,
            "autoSubmitOnDisqualification": self.auto_submit_on_disqualification,
            "preventCopyPaste": self.prevent_copy_paste,
            "fullscreenMode": self.fullscreen_mode,
            "disableRightClick": self.disable_right_click,
        }


class Violation(BaseModel):
    """Recorded integrity event"""
    model_config = ConfigDict(frozen=True)

    type: ViolationType
    timestamp: datetime = Field(default_factory=utcnow)
    details: Optional[str] = None


class ProctoringSession(BaseModel):
    """One student's in-progress attempt"""
    model_config = ConfigDict(frozen=True)

    id: str
    quiz_id: str
    user_id: str
    student_name: str = ""
    student_email: str = ""
    started_at: datetime = Field(default_factory=utcnow)
    last_activity_at: datetime = Field(default_factory=utcnow)

    # Running totals, never derived by replaying violations
    tab_change_count: int = 0
    time_away_seconds: int = 0
    refresh_detected: bool = False
    violations: Tuple[Violation, ...] = ()

    answers: Dict[int, str] = Field(default_factory=dict)  # progress saved so far

    disqualified: bool = False
    disqualification_reason: Optional[str] = None
    status: SessionStatus = SessionStatus.ACTIVE
    policy: AntiCheatPolicy = Field(default_factory=AntiCheatPolicy)

    attempt_id: Optional[str] = None
    version: int = 0

    @property
    def is_closed(self) -> bool:
        return self.status in CLOSED_STATUSES

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES
