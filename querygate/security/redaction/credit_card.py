"""Credit card number detector"""
import re
from typing import List, Tuple

from luhnchecker.luhn import Luhn

from .base import SensitiveValueDetector, column_pattern


class CreditCardDetector(SensitiveValueDetector):
    """Detects Luhn-valid card numbers from a recognized issuer"""

    COLUMN_PATTERN = column_pattern(r"card_?number", r"\bpan\b", r"\bcc_?num")

    CARD_PATTERN = re.compile(r'\b(?:\d[ \-]?){12,18}\d\b')

    def __init__(self):
        super().__init__('credit_card')
        self.checker = Luhn()

    def mask(self, value: str, mask_char: str = '*') -> str:
        digits = re.sub(r'\D', '', value)
        if len(digits) <= 4:
            return mask_char * len(value)
        return mask_char * (len(digits) - 4) + digits[-4:]

    def is_card_number(self, digits: str) -> bool:
        if not 13 <= len(digits) <= 19:
            return False
        if not self.checker.check_luhn(digits):
            return False
        return self.checker.credit_card_issuer(digits) != "invalid card number"

    def find_matches(self, text: str) -> List[Tuple[str, int, int]]:
        matches = []
        for match in self.CARD_PATTERN.finditer(text):
            digits = re.sub(r'[\s\-]', '', match.group(0))
            if self.is_card_number(digits):
                matches.append((match.group(0), match.start(), match.end()))
        return matches
