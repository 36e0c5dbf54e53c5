"""
Sensitive data access assessment
Decides whether a question that touches sensitive data has a legitimate intent
"""
from typing import Sequence

from .models import SensitivityAssessment
from .patterns import LEGITIMATE_ACCESS_PATTERNS, SENSITIVE_TOPIC_PATTERNS, matches_any

LEGITIMATE_WARNING = (
    "Query requests sensitive data but appears to be for legitimate statistical or audit purposes"
)
BLOCK_REASON = "Query appears to be requesting sensitive data directly"


class SensitiveAccessAssessor:
    """Cross-checks a question and its generated SQL for sensitive topics"""

    def __init__(
        self,
        topic_patterns: Sequence[str] = SENSITIVE_TOPIC_PATTERNS,
        legitimacy_patterns: Sequence[str] = LEGITIMATE_ACCESS_PATTERNS
    ):
        self.topic_patterns = tuple(topic_patterns)
        self.legitimacy_patterns = tuple(legitimacy_patterns)

    def assess(self, query: str, sql: str) -> SensitivityAssessment:
        if not query or not sql:
            return SensitivityAssessment(is_sensitive=False)

        if not (matches_any(self.topic_patterns, query) or matches_any(self.topic_patterns, sql)):
            return SensitivityAssessment(is_sensitive=False)

        # Intent is judged from the question alone; the SQL says nothing about purpose
        if matches_any(self.legitimacy_patterns, query):
            return SensitivityAssessment(
                is_sensitive=True,
                is_legitimate=True,
                warning=LEGITIMATE_WARNING
            )

        return SensitivityAssessment(
            is_sensitive=True,
            is_legitimate=False,
            reason=BLOCK_REASON
        )
