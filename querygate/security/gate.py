"""
Security gate combining the input, SQL and sensitive-access checks
"""
import logging
from typing import Any, Dict, Mapping, Optional

from ..exceptions import ValidationBlocked
from .input_validator import InputValidator
from .models import (
    AlertType,
    ParameterSemantics,
    SecurityAlert,
    SensitivityAssessment,
    Severity,
    ValidationVerdict,
)
from .patterns import SENSITIVE_ACCESS, describe_category
from .sensitive_access import SensitiveAccessAssessor
from .sql_validator import SqlValidator

logger = logging.getLogger(__name__)


def build_alert(alert_type: AlertType, severity: Severity, category: Optional[str]) -> SecurityAlert:
    """Build a user-safe alert from a verdict category"""
    return SecurityAlert(
        type=alert_type,
        severity=severity,
        details=f"Request blocked: {describe_category(category)}"
    )


class SecurityGate:
    """Runs validators and turns failing verdicts into ValidationBlocked"""

    def __init__(
        self,
        input_validator: Optional[InputValidator] = None,
        sql_validator: Optional[SqlValidator] = None,
        assessor: Optional[SensitiveAccessAssessor] = None
    ):
        self.input_validator = input_validator or InputValidator()
        self.sql_validator = sql_validator or SqlValidator()
        self.assessor = assessor or SensitiveAccessAssessor()

    def check_input(self, text: str) -> ValidationVerdict:
        verdict = self.input_validator.validate(text)
        self._enforce(verdict, AlertType.INPUT_VALIDATION)
        return verdict

    def check_sql(self, sql: str) -> ValidationVerdict:
        verdict = self.sql_validator.validate(sql)
        self._enforce(verdict, AlertType.SQL_VALIDATION)
        return verdict

    def check_sensitivity(self, query: str, sql: str) -> SensitivityAssessment:
        assessment = self.assessor.assess(query, sql)

        if assessment.should_block:
            logger.warning(f"Blocked sensitive data access: {assessment.reason}")
            raise ValidationBlocked(
                build_alert(AlertType.SENSITIVE_DATA_ACCESS, Severity.HIGH, SENSITIVE_ACCESS)
            )

        if assessment.warning:
            logger.warning(assessment.warning)
        return assessment

    def check_parameters(self, semantics: Mapping[str, ParameterSemantics], params: Dict[str, Any]) -> None:
        """Screen tool parameters with the gate matching their declared semantics"""
        for name, kind in semantics.items():
            if (value := params.get(name)) is None:
                continue
            if not isinstance(value, str):
                raise ValueError(f"Parameter '{name}' must be a string")

            match ParameterSemantics(kind):
                case ParameterSemantics.NATURAL_LANGUAGE:
                    self.check_input(value)
                case ParameterSemantics.SQL:
                    self.check_sql(value)

    def _enforce(self, verdict: ValidationVerdict, alert_type: AlertType) -> None:
        if not verdict.is_valid:
            logger.warning(
                f"{alert_type.value} blocked by {verdict.rule_id} "
                f"({verdict.severity.value}): {verdict.reason}"
            )
            raise ValidationBlocked(
                build_alert(alert_type, verdict.severity, verdict.category),
                verdict
            )

        if verdict.warning:
            logger.warning(f"{alert_type.value} warning: {verdict.warning}")
