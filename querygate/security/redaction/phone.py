"""Phone number detector using phonenumbers"""
from typing import List, Tuple

import phonenumbers
from phonenumbers import PhoneNumberMatcher

from .base import SensitiveValueDetector


class PhoneDetector(SensitiveValueDetector):
    """Detects valid phone numbers for a default region"""

    def __init__(self, region: str = "US"):
        super().__init__('phone')
        self.region = region

    def mask(self, value: str, mask_char: str = '*') -> str:
        # Keep separators and the last two digits
        digits_seen = sum(ch.isdigit() for ch in value)
        result = []
        for ch in value:
            if ch.isdigit():
                digits_seen -= 1
                result.append(ch if digits_seen < 2 else mask_char)
            else:
                result.append(ch)
        return "".join(result)

    def find_matches(self, text: str) -> List[Tuple[str, int, int]]:
        matches = []
        seen = set()

        for match in PhoneNumberMatcher(text, self.region):
            if not phonenumbers.is_valid_number(match.number):
                continue
            key = phonenumbers.format_number(match.number, phonenumbers.PhoneNumberFormat.E164)
            if key in seen:
                continue
            seen.add(key)
            matches.append((match.raw_string, match.start, match.end))

        return matches
