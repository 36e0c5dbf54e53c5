"""
Result redaction
Masks sensitive values in query result rows before they leave the gateway
"""
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence

from ...config import SecurityConfig
from ...exceptions import ConfigurationError
from .api_key import ApiKeyDetector
from .base import SensitiveValueDetector
from .credit_card import CreditCardDetector
from .email import EmailDetector
from .password import PasswordDetector
from .phone import PhoneDetector

logger = logging.getLogger(__name__)


@dataclass
class RedactionResult:
    """Rows after masking plus the columns that were touched"""
    rows: List[Dict[str, Any]]
    redacted_columns: List[str] = field(default_factory=list)


def build_detector(name: str, phone_region: str = "US") -> SensitiveValueDetector:
    match name:
        case "password":
            return PasswordDetector()
        case "api_key":
            return ApiKeyDetector()
        case "credit_card":
            return CreditCardDetector()
        case "email":
            return EmailDetector()
        case "phone":
            return PhoneDetector(region=phone_region)
        case _:
            raise ConfigurationError(f"Unknown redaction detector: {name}")


class ResultRedactor:
    """Applies every configured detector to every cell"""

    def __init__(self, detectors: Optional[Sequence[SensitiveValueDetector]] = None):
        self.detectors = list(detectors) if detectors is not None else [
            PasswordDetector(),
            ApiKeyDetector(),
            CreditCardDetector(),
        ]

    @classmethod
    def from_config(cls, config: SecurityConfig) -> Optional["ResultRedactor"]:
        if not config.redact_sensitive_results:
            return None
        return cls([build_detector(name, config.phone_region) for name in config.redaction_detectors])

    def redact(self, rows: Sequence[Dict[str, Any]]) -> RedactionResult:
        redacted_rows = []
        redacted_columns: Dict[str, List[str]] = {}

        for row in rows:
            new_row = dict(row)
            for column, value in row.items():
                if (masked := self._redact_cell(str(column), value, redacted_columns)) is not None:
                    new_row[column] = masked
            redacted_rows.append(new_row)

        if redacted_columns:
            summary = {column: sorted(set(kinds)) for column, kinds in redacted_columns.items()}
            logger.warning(f"Redacted sensitive values in result columns: {summary}")

        return RedactionResult(rows=redacted_rows, redacted_columns=list(redacted_columns))

    def _redact_cell(self, column: str, value: Any, found: Dict[str, List[str]]) -> Optional[str]:
        # Integers are checked too since card numbers are sometimes stored as BIGINT
        if isinstance(value, bool) or not isinstance(value, (str, int)):
            return None

        text = str(value)
        changed = False
        for detector in self.detectors:
            if (masked := detector.redact(column, text)) is not None:
                text = masked
                changed = True
                found.setdefault(column, []).append(detector.name)

        return text if changed else None
