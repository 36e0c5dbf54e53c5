"""Email address detector"""
import re
from typing import List, Tuple

from email_validator import EmailNotValidError, validate_email

from .base import SensitiveValueDetector


class EmailDetector(SensitiveValueDetector):
    """Detects syntactically valid email addresses and masks the local part"""

    EMAIL_REGEX = re.compile(
        r'\b[A-Za-z0-9][A-Za-z0-9._%+-]*@[A-Za-z0-9][A-Za-z0-9.-]*\.[A-Za-z]{2,}\b'
    )

    def __init__(self, check_deliverability: bool = False):
        super().__init__('email')
        self.check_deliverability = check_deliverability

    def mask(self, value: str, mask_char: str = '*') -> str:
        local, _, domain = value.partition('@')
        if not domain:
            return super().mask(value, mask_char)
        return local[:1] + mask_char * 3 + '@' + domain

    def find_matches(self, text: str) -> List[Tuple[str, int, int]]:
        matches = []
        for match in self.EMAIL_REGEX.finditer(text):
            try:
                validate_email(match.group(0), check_deliverability=self.check_deliverability)
            except EmailNotValidError:
                continue
            matches.append((match.group(0), match.start(), match.end()))
        return matches
