"""Base class for result cell detectors"""
import re
from abc import ABC, abstractmethod
from typing import List, Optional, Pattern, Tuple


class SensitiveValueDetector(ABC):
    """Finds sensitive values inside query result cells

    A cell is redacted either because its column name marks it as sensitive
    or because its text contains a match.
    """

    # Column names whose every non-empty value is masked
    COLUMN_PATTERN: Optional[Pattern[str]] = None

    def __init__(self, name: str):
        self.name = name

    @abstractmethod
    def find_matches(self, text: str) -> List[Tuple[str, int, int]]:
        """
        Find all sensitive values in the given text.

        Returns:
            List of tuples containing (matched_text, start_position, end_position)
        """
        pass

    def is_sensitive_column(self, column: str) -> bool:
        return bool(self.COLUMN_PATTERN and self.COLUMN_PATTERN.search(column))

    def mask(self, value: str, mask_char: str = '*') -> str:
        """Mask a single value, keeping the first and last two characters when long enough"""
        if len(value) > 4:
            return value[:2] + mask_char * (len(value) - 4) + value[-2:]
        return mask_char * len(value)

    def redact(self, column: str, text: str) -> Optional[str]:
        """Return the masked cell text, or None if nothing in the cell is sensitive"""
        if not text:
            return None

        if self.is_sensitive_column(column):
            return self.mask(text)

        matches = self.find_matches(text)
        if not matches:
            return None

        # Replace from the end so earlier offsets stay valid
        result = text
        for matched_text, start, end in sorted(matches, key=lambda m: m[1], reverse=True):
            result = result[:start] + self.mask(matched_text) + result[end:]
        return result

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(name='{self.name}')"


def column_pattern(*names: str) -> Pattern[str]:
    """Match column names containing any of the given fragments"""
    return re.compile("|".join(names), re.IGNORECASE)
