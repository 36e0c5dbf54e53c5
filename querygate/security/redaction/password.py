"""Password detector using zxcvbn strength scoring"""
import re
from typing import List, Tuple

import zxcvbn

from .base import SensitiveValueDetector, column_pattern


class PasswordDetector(SensitiveValueDetector):
    """Detects password columns and inline credentials in result cells"""

    COLUMN_PATTERN = column_pattern(r"passw(?:or)?d", r"pwd", r"pass_?hash", r"^secret$")

    INLINE_PATTERNS = [
        # key=value or key: value
        re.compile(r'(?i)(?:password|passwd|pwd|secret)\s*[:=]\s*[\'"]?([^\s\'"]+)[\'"]?'),
        # Connection strings
        re.compile(r'(?i)(?:mysql|postgres|postgresql|mongodb|redis)://[^:/\s]+:([^@\s]+)@'),
        # Basic auth in URLs
        re.compile(r'(?i)https?://[^:/\s]+:([^@\s]+)@'),
    ]

    PLACEHOLDER_PASSWORDS = {
        'xxx', '***', '...', 'null', 'none', 'undefined', 'empty',
        'test', 'demo', 'example', 'sample', 'placeholder',
        'changeme', 'password', 'pass', 'pwd', 'secret',
    }

    def __init__(self, min_score: int = 2, min_length: int = 8):
        super().__init__('password')
        self.min_score = min_score
        self.min_length = min_length

    def mask(self, value: str, mask_char: str = '*') -> str:
        # Passwords are never partially revealed
        return mask_char * 8

    def _is_real_password(self, password: str) -> bool:
        if len(password) < self.min_length or len(password) > 128:
            return False
        if password.lower() in self.PLACEHOLDER_PASSWORDS:
            return False
        if password.startswith(('$', '%', '{')):
            return False

        # Score: 0 = very weak ... 4 = very strong
        return zxcvbn.zxcvbn(password)['score'] >= self.min_score

    def find_matches(self, text: str) -> List[Tuple[str, int, int]]:
        matches = []
        for pattern in self.INLINE_PATTERNS:
            for match in pattern.finditer(text):
                if self._is_real_password(match.group(1)):
                    matches.append((match.group(1), match.start(1), match.end(1)))
        return matches
