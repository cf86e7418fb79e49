from typing import Optional, Sequence

from quizguard.config import settings
from quizguard.models.attempt import QuizAttempt, HistorySummary


class HistoryAggregator:
    """Summary statistics over completed attempts (a student's history or a quiz's results)"""

    def __init__(self, recent_limit: Optional[int] = None):
        self.recent_limit = settings.HISTORY_RECENT_LIMIT if recent_limit is None else recent_limit

    @staticmethod
    def has_integrity_issues(attempt: QuizAttempt) -> bool:
        """
        Badge predicate for suspicious attempts.

        Any non-zero counter qualifies, so an attempt can be flagged without
        having been disqualified.
        """
        return (
            attempt.disqualified
            or attempt.tab_change_count > 0
            or attempt.time_away_seconds > 0
            or attempt.refresh_detected
        )

    def summarize(self, attempts: Sequence[QuizAttempt]) -> HistorySummary:
        if not attempts:
            return HistorySummary()

        count = len(attempts)
        percentages = [a.percentage for a in attempts]
        newest_first = sorted(attempts, key=lambda a: a.completed_at, reverse=True)

        return HistorySummary(
            count=count,
            average_percentage=sum(percentages) / count,
            best_percentage=max(percentages),
            disqualified_count=sum(1 for a in attempts if a.disqualified),
            flagged_count=sum(1 for a in attempts if self.has_integrity_issues(a)),
            average_time_spent_seconds=sum(a.time_spent_seconds for a in attempts) / count,
            recent_attempts=newest_first[:self.recent_limit],
        )
