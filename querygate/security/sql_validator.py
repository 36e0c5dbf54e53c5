"""
SQL validator for model-generated statements
"""
import logging
import re
from typing import List, Optional, Pattern, Sequence

from .models import Severity, ValidationVerdict
from .patterns import (
    EMPTY_INPUT,
    SQL_DANGEROUS_RULES,
    SQL_STACKING_RULE,
    UNION_MISMATCH,
    Outcome,
    Rule,
)

logger = logging.getLogger(__name__)

# Split keeps SELECT at the head of every branch
UNION_SPLIT: Pattern[str] = re.compile(r"\bUNION\s+(?:ALL\s+)?(?=SELECT\b)", re.IGNORECASE)
UNION_SELECT: Pattern[str] = re.compile(r"\bUNION\s+(?:ALL\s+)?SELECT\b", re.IGNORECASE)
PROJECTION: Pattern[str] = re.compile(r"SELECT\s+(.+?)(?:\s+FROM\b|$)", re.IGNORECASE | re.DOTALL)


def count_projected_fields(select_sql: str) -> Optional[int]:
    """Count comma-separated expressions between SELECT and FROM.

    The split is naive: commas inside function calls or subqueries are
    counted as separators too.
    """
    if not (match := PROJECTION.search(select_sql)):
        return None
    return len(match.group(1).split(","))


class SqlValidator:
    """Validates generated SQL before execution"""

    def __init__(
        self,
        dangerous_rules: Sequence[Rule] = SQL_DANGEROUS_RULES,
        stacking_rule: Rule = SQL_STACKING_RULE
    ):
        self.dangerous_rules = tuple(dangerous_rules)
        self.stacking_rule = stacking_rule

    def validate(self, sql: str) -> ValidationVerdict:
        if not sql or not sql.strip():
            return ValidationVerdict.blocked(
                "Empty SQL query", Severity.LOW, category=EMPTY_INPUT, rule_id="sql.empty"
            )

        upper_sql = sql.upper()
        override_warning: Optional[str] = None

        for rule in self.dangerous_rules:
            match rule.evaluate(upper_sql):
                case Outcome.MATCH:
                    reason = (
                        f"Data modification operation detected: {rule.id}"
                        if rule.data_modification
                        else f"Dangerous SQL operation detected: {rule.id}"
                    )
                    return ValidationVerdict.blocked(
                        reason,
                        rule.severity,
                        category=rule.category,
                        rule_id=rule.id,
                        is_data_modification=rule.data_modification
                    )
                case Outcome.EXCEPTED if rule.exception_warning:
                    # Schema reads stay allowed only if nothing later blocks
                    override_warning = rule.exception_warning

        if self.stacking_rule.evaluate(sql) is Outcome.MATCH:
            return ValidationVerdict.blocked(
                "Multiple SQL statements detected",
                self.stacking_rule.severity,
                category=self.stacking_rule.category,
                rule_id=self.stacking_rule.id
            )

        if UNION_SELECT.search(sql) and (verdict := self._check_union(sql)):
            return verdict

        if override_warning:
            logger.debug(f"Schema exception applied to SQL: {override_warning}")
            return ValidationVerdict.passed(warning=override_warning, severity=Severity.LOW)

        return ValidationVerdict.passed()

    def _check_union(self, sql: str) -> Optional[ValidationVerdict]:
        branches = [branch for branch in UNION_SPLIT.split(sql) if branch.strip()]
        counts: List[Optional[int]] = [count_projected_fields(branch) for branch in branches]

        if len(counts) < 2 or counts[0] is None:
            return None

        for count in counts[1:]:
            if count != counts[0]:
                return ValidationVerdict.blocked(
                    f"UNION query with mismatched column count detected ({counts[0]} vs {count})",
                    Severity.HIGH,
                    category=UNION_MISMATCH,
                    rule_id="sql.union_mismatch"
                )
        return None
