"""API key and token detector"""
import re
from typing import Dict, List, Tuple

from .base import SensitiveValueDetector, column_pattern


class ApiKeyDetector(SensitiveValueDetector):
    """Detects API keys by column name or by well-known token formats"""

    COLUMN_PATTERN = column_pattern(r"api_?key", r"access_?token", r"auth_?token", r"secret_?key", r"refresh_?token")

    TOKEN_PATTERNS: Dict[str, re.Pattern] = {
        'generic_sk': re.compile(r'\bsk[-_][a-zA-Z0-9_\-]{16,}\b'),
        'aws_access_key': re.compile(r'\bAKIA[A-Z0-9]{16}\b'),
        'github_pat': re.compile(r'\bghp_[a-zA-Z0-9]{36}\b'),
        'github_oauth': re.compile(r'\bgho_[a-zA-Z0-9]{36}\b'),
        'slack_token': re.compile(r'\bxox[baprs]-[0-9]{10,13}-[0-9]{10,13}-[a-zA-Z0-9]{24,34}\b'),
        'sendgrid': re.compile(r'\bSG\.[a-zA-Z0-9_\-]{22}\.[a-zA-Z0-9_\-]{43}\b'),
        'google_api': re.compile(r'\bAIza[0-9A-Za-z_\-]{35}\b'),
        'bearer': re.compile(r'(?i)\bbearer\s+[a-zA-Z0-9_\-\.]{20,}'),
    }

    def __init__(self):
        super().__init__('api_key')

    def find_matches(self, text: str) -> List[Tuple[str, int, int]]:
        matches = []
        seen = set()

        for pattern in self.TOKEN_PATTERNS.values():
            for match in pattern.finditer(text):
                key = match.group(0)
                if key in seen or self._is_placeholder(key):
                    continue
                seen.add(key)
                matches.append((key, match.start(), match.end()))

        return matches

    @staticmethod
    def _is_placeholder(key: str) -> bool:
        lowered = key.lower()
        if 'example' in lowered or 'sample' in lowered:
            return True
        # All the same character
        return len(set(key.replace('-', '').replace('_', ''))) <= 2
