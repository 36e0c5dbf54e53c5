"""
Data models for security validation
"""
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Optional


class Severity(str, Enum):
    """Informational severity attached to verdicts and alerts"""
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class AlertType(str, Enum):
    """Which gate produced a security alert"""
    INPUT_VALIDATION = "input_validation"
    SQL_VALIDATION = "sql_validation"
    SENSITIVE_DATA_ACCESS = "sensitive_data_access"


@dataclass
class ValidationVerdict:
    """Result of running one validator over a piece of text"""
    is_valid: bool
    reason: Optional[str] = None
    severity: Severity = Severity.LOW
    warning: Optional[str] = None
    is_data_modification: bool = False
    rule_id: Optional[str] = None
    category: Optional[str] = None

    @classmethod
    def passed(cls, warning: Optional[str] = None, severity: Severity = Severity.LOW) -> "ValidationVerdict":
        return cls(is_valid=True, warning=warning, severity=severity)

    @classmethod
    def blocked(
        cls,
        reason: str,
        severity: Severity,
        category: str,
        rule_id: Optional[str] = None,
        is_data_modification: bool = False
    ) -> "ValidationVerdict":
        return cls(
            is_valid=False,
            reason=reason,
            severity=severity,
            is_data_modification=is_data_modification,
            rule_id=rule_id,
            category=category
        )


@dataclass
class SensitivityAssessment:
    """Outcome of cross-checking a question and its SQL for sensitive data access"""
    is_sensitive: bool
    is_legitimate: Optional[bool] = None
    reason: Optional[str] = None
    warning: Optional[str] = None

    @property
    def should_block(self) -> bool:
        return self.is_sensitive and not self.is_legitimate


@dataclass
class SecurityAlert:
    """Structured record of why a turn was blocked

    details is category-level text safe to show to the user. It never carries
    the matched pattern or keyword.
    """
    type: AlertType
    severity: Severity
    details: str

    def to_dict(self) -> Dict[str, Any]:
        return {
            "type": self.type.value,
            "severity": self.severity.value,
            "details": self.details
        }


class ParameterSemantics(str, Enum):
    """Which gate screens a tool parameter before the tool runs"""
    NATURAL_LANGUAGE = "natural_language"
    SQL = "sql"
