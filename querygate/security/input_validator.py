"""
Input validator for natural language questions
Screens user text before it is sent to the translator
"""
import logging
from typing import List, Sequence

from .models import Severity, ValidationVerdict
from .patterns import (
    EMPTY_INPUT,
    LEGITIMATE_PHRASINGS,
    NL_DANGEROUS_RULES,
    NL_INJECTION_RULES,
    NL_STACKING_RULE,
    SENSITIVE_KEYWORD,
    SENSITIVE_KEYWORD_RULES,
    Outcome,
    Rule,
    matches_any,
)

logger = logging.getLogger(__name__)

LEGITIMATE_KEYWORD_WARNING = "Query references sensitive information but appears legitimate"


class InputValidator:
    """Validates natural language input against the NL rule tables

    Checks run in a fixed order and the first failure wins: emptiness,
    injection signatures, statement stacking, dangerous operations, then
    sensitive keywords.
    """

    def __init__(
        self,
        injection_rules: Sequence[Rule] = NL_INJECTION_RULES,
        stacking_rule: Rule = NL_STACKING_RULE,
        dangerous_rules: Sequence[Rule] = NL_DANGEROUS_RULES,
        sensitive_rules: Sequence[Rule] = SENSITIVE_KEYWORD_RULES,
        legitimate_phrasings: Sequence[str] = LEGITIMATE_PHRASINGS
    ):
        self.injection_rules = tuple(injection_rules)
        self.stacking_rule = stacking_rule
        self.dangerous_rules = tuple(dangerous_rules)
        self.sensitive_rules = tuple(sensitive_rules)
        self.legitimate_phrasings = tuple(legitimate_phrasings)

    def validate(self, text: str) -> ValidationVerdict:
        if not text or not text.strip():
            return ValidationVerdict.blocked(
                "Empty input", Severity.HIGH, category=EMPTY_INPUT, rule_id="nl.empty"
            )

        for rule in self.injection_rules:
            if rule.evaluate(text) is Outcome.MATCH:
                return self._blocked_by(rule, f"Potential SQL injection detected: {rule.pattern}")

        if self.stacking_rule.evaluate(text) is Outcome.MATCH:
            return self._blocked_by(self.stacking_rule, "Multiple SQL statements detected")

        for rule in self.dangerous_rules:
            if rule.evaluate(text) is Outcome.MATCH:
                return self._blocked_by(rule, f"Potentially dangerous operation detected: {rule.id}")

        return self._check_sensitive_keywords(text)

    def _check_sensitive_keywords(self, text: str) -> ValidationVerdict:
        matched: List[Rule] = [
            rule for rule in self.sensitive_rules
            if rule.evaluate(text) is Outcome.MATCH
        ]

        if not matched:
            return ValidationVerdict.passed()

        matched_ids = ", ".join(rule.id for rule in matched)

        if len(matched) == 1 and matches_any(self.legitimate_phrasings, text):
            logger.warning(f"Sensitive keyword allowed in legitimate phrasing: {matched_ids}")
            return ValidationVerdict.passed(
                warning=LEGITIMATE_KEYWORD_WARNING,
                severity=Severity.LOW
            )

        severity = Severity.MEDIUM if len(matched) == 1 else Severity.HIGH
        return ValidationVerdict.blocked(
            f"Query contains sensitive keywords: {matched_ids}",
            severity,
            category=SENSITIVE_KEYWORD,
            rule_id=matched[0].id
        )

    @staticmethod
    def _blocked_by(rule: Rule, reason: str) -> ValidationVerdict:
        return ValidationVerdict.blocked(
            reason,
            rule.severity,
            category=rule.category,
            rule_id=rule.id,
            is_data_modification=rule.data_modification
        )
