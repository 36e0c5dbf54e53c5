"""
Security gates for querygate
"""
from .gate import SecurityGate, build_alert
from .input_validator import InputValidator
from .models import (
    AlertType,
    ParameterSemantics,
    SecurityAlert,
    SensitivityAssessment,
    Severity,
    ValidationVerdict,
)
from .patterns import Rule, Target
from .sensitive_access import SensitiveAccessAssessor
from .sql_validator import SqlValidator

__all__ = [
    'SecurityGate',
    'build_alert',
    'InputValidator',
    'SqlValidator',
    'SensitiveAccessAssessor',
    'AlertType',
    'ParameterSemantics',
    'SecurityAlert',
    'SensitivityAssessment',
    'Severity',
    'ValidationVerdict',
    'Rule',
    'Target'
]
