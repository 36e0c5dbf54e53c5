"""Sensitive value detectors used to redact query results"""
from .base import SensitiveValueDetector
from .api_key import ApiKeyDetector
from .credit_card import CreditCardDetector
from .email import EmailDetector
from .password import PasswordDetector
from .phone import PhoneDetector
from .redactor import RedactionResult, ResultRedactor, build_detector

__all__ = [
    'SensitiveValueDetector',
    'ApiKeyDetector',
    'CreditCardDetector',
    'EmailDetector',
    'PasswordDetector',
    'PhoneDetector',
    'RedactionResult',
    'ResultRedactor',
    'build_detector'
]
