"""
Pattern library for the security gates

Every check the validators run is a Rule in one of the tables below. A rule
carries its own exceptions, so carve-outs such as negated "delete" phrasing
are data rather than branches in validator code.
"""
import logging
import re
from dataclasses import dataclass
from enum import Enum
from functools import lru_cache
from typing import Iterable, List, Optional, Pattern, Tuple

from .models import Severity

logger = logging.getLogger(__name__)

PATTERN_FLAGS = re.IGNORECASE | re.DOTALL


class Target(str, Enum):
    """What kind of text a rule screens"""
    NL = "nl"
    SQL = "sql"


class Outcome(Enum):
    NO_MATCH = "no_match"
    MATCH = "match"
    EXCEPTED = "excepted"


@lru_cache(maxsize=None)
def compile_pattern(pattern: str) -> Optional[Pattern[str]]:
    """Compile a rule pattern, returning None when it is malformed.

    Results are cached, so a broken pattern is reported once and then
    skipped on every later evaluation.
    """
    try:
        return re.compile(pattern, PATTERN_FLAGS)
    except re.error as e:
        logger.error(f"Skipping malformed security pattern {pattern!r}: {e}")
        return None


def matches_any(patterns: Iterable[str], text: str) -> bool:
    """Check text against a list of patterns, ignoring malformed ones"""
    return any(
        compiled.search(text)
        for pattern in patterns
        if (compiled := compile_pattern(pattern)) is not None
    )


@dataclass(frozen=True)
class Rule:
    """A single declarative security check"""
    id: str
    applies_to: Target
    pattern: str
    severity: Severity
    category: str
    exceptions: Tuple[str, ...] = ()
    exception_warning: Optional[str] = None
    data_modification: bool = False

    def evaluate(self, text: str) -> Outcome:
        compiled = compile_pattern(self.pattern)
        if compiled is None or not compiled.search(text):
            return Outcome.NO_MATCH

        if matches_any(self.exceptions, text):
            return Outcome.EXCEPTED

        return Outcome.MATCH


# Category labels. Only these reach users, never the pattern itself.
INJECTION_SIGNATURE = "injection_signature"
STATEMENT_STACKING = "statement_stacking"
DANGEROUS_OPERATION = "dangerous_operation"
DATA_MODIFICATION = "data_modification"
SENSITIVE_KEYWORD = "sensitive_keyword"
UNION_MISMATCH = "union_mismatch"
EMPTY_INPUT = "empty_input"
SENSITIVE_ACCESS = "sensitive_access"

CATEGORY_DESCRIPTIONS = {
    INJECTION_SIGNATURE: "the request resembles a SQL injection attempt",
    STATEMENT_STACKING: "multiple SQL statements are not allowed",
    DANGEROUS_OPERATION: "the request involves a restricted database operation",
    DATA_MODIFICATION: "only read-only queries are allowed",
    SENSITIVE_KEYWORD: "the request references restricted or sensitive information",
    UNION_MISMATCH: "the query combines result sets with mismatched columns",
    EMPTY_INPUT: "the request is empty",
    SENSITIVE_ACCESS: "the request asks for sensitive data directly",
}


def describe_category(category: Optional[str]) -> str:
    return CATEGORY_DESCRIPTIONS.get(category or "", "the request was rejected by a security rule")


# Ordered as checked
DANGEROUS_OPERATIONS = (
    "DROP", "DELETE", "TRUNCATE", "UPDATE", "INSERT", "ALTER", "GRANT", "REVOKE",
    "EXECUTE", "EXEC", "SYSTEM", "INTO OUTFILE", "INTO DUMPFILE", "LOAD_FILE",
    "BENCHMARK", "SLEEP", "XP_CMDSHELL", "SP_EXECUTE", "INFORMATION_SCHEMA",
)

DATA_MODIFICATION_OPERATIONS = frozenset({"UPDATE", "INSERT", "DELETE"})

INJECTION_PATTERNS = (
    r";.*--",
    r";.*#",
    r"'.*--",
    r"'.*OR.*=",
    r"'.*OR.*'.*'.*=",
    r"UNION.*SELECT",
    r"UNION.*ALL.*SELECT",
    r"\/\*.*\*\/",
    r"--",
    r"1=1",
    r"1 ?= ?1",
    r"DROP.*TABLE",
    r"DELETE.*FROM",
    r"INSERT.*INTO",
    r"CAST\(.*\)",
    r"CONVERT\(.*\)",
)

SENSITIVE_KEYWORDS = (
    "password", "passwd", "pwd", "hash", "salt", "credit", "card", "ssn",
    "social security", "admin", "root", "credentials", "secret", "token",
    "apikey", "api key", "private", "exploit", "hack", "vulnerability", "bypass",
)

# A single sensitive keyword inside one of these phrasings is let through with a warning
LEGITIMATE_PHRASINGS = (
    r"show me .* password",
    r"users? who .* password",
    r"when was .* password",
    r"list .* password",
    r"how many .* password",
    r"count .* password",
)

NEGATED_DELETE_PHRASES = (r"didn['’]t delete", r"not delete", r"never delete")

SCHEMA_TABLES_QUERY = r"SELECT.*FROM.*INFORMATION_SCHEMA\.(TABLES|COLUMNS)"
SCHEMA_ACCESS_WARNING = "Query accesses database schema information"

# Sensitive-access assessment: topic on either side, legitimacy on the question only
SENSITIVE_TOPIC_PATTERNS = (
    r"password",
    r"credit.+card",
    r"ssn",
    r"social security",
    r"user.+admin",
    r"admin.+user",
)

LEGITIMATE_ACCESS_PATTERNS = (
    r"count|number of|how many",
    r"when.+(changed|updated|modified)",
    r"users?.+changed.+password",
    r"last.+password.+change",
)

SCHEMA_QUESTION_PATTERNS = (
    r"database schema",
    r"table structure",
    r"database structure",
    r"show.+tables",
    r"list.+tables",
    r"describe.+table",
    r"column.+information",
    r"columns (?:in|of) (?:the )?\w+",
    r"structure of (?:the )?\w+",
)


def _operation_pattern(operation: str) -> str:
    return r"\b" + r"\s+".join(re.escape(word) for word in operation.split()) + r"\b"


def _slug(text: str) -> str:
    return re.sub(r"[^a-z0-9]+", "_", text.lower()).strip("_")


def _build_injection_rules() -> List[Rule]:
    return [
        Rule(
            id=f"nl.injection.{index}",
            applies_to=Target.NL,
            pattern=pattern,
            severity=Severity.HIGH,
            category=INJECTION_SIGNATURE
        )
        for index, pattern in enumerate(INJECTION_PATTERNS, start=1)
    ]


def _build_dangerous_rules(target: Target) -> List[Rule]:
    rules = []
    for operation in DANGEROUS_OPERATIONS:
        exceptions: Tuple[str, ...] = ()
        exception_warning = None
        modifies = target is Target.SQL and operation in DATA_MODIFICATION_OPERATIONS

        if target is Target.NL and operation == "DELETE":
            exceptions = NEGATED_DELETE_PHRASES
        if target is Target.SQL and operation == "INFORMATION_SCHEMA":
            exceptions = (SCHEMA_TABLES_QUERY,)
            exception_warning = SCHEMA_ACCESS_WARNING

        rules.append(Rule(
            id=f"{target.value}.dangerous.{_slug(operation)}",
            applies_to=target,
            pattern=_operation_pattern(operation),
            severity=Severity.MEDIUM if modifies else Severity.HIGH,
            category=DATA_MODIFICATION if modifies else DANGEROUS_OPERATION,
            exceptions=exceptions,
            exception_warning=exception_warning,
            data_modification=modifies
        ))
    return rules


def _build_sensitive_keyword_rules() -> List[Rule]:
    # Keywords match after a non-alphanumeric so "passwords" and "user_password" count but "compwdx" does not
    return [
        Rule(
            id=f"nl.sensitive.{_slug(keyword)}",
            applies_to=Target.NL,
            pattern=r"(?<![a-z0-9])" + r"\s+".join(re.escape(word) for word in keyword.split()),
            severity=Severity.MEDIUM,
            category=SENSITIVE_KEYWORD
        )
        for keyword in SENSITIVE_KEYWORDS
    ]


NL_INJECTION_RULES: Tuple[Rule, ...] = tuple(_build_injection_rules())

NL_STACKING_RULE = Rule(
    id="nl.stacking",
    applies_to=Target.NL,
    pattern=r";(?!\s*$)",
    severity=Severity.HIGH,
    category=STATEMENT_STACKING,
    exceptions=(r"[a-z]+ [a-z]+;",)
)

SQL_STACKING_RULE = Rule(
    id="sql.stacking",
    applies_to=Target.SQL,
    pattern=r";(?!\s*$)",
    severity=Severity.HIGH,
    category=STATEMENT_STACKING
)

NL_DANGEROUS_RULES: Tuple[Rule, ...] = tuple(_build_dangerous_rules(Target.NL))
SQL_DANGEROUS_RULES: Tuple[Rule, ...] = tuple(_build_dangerous_rules(Target.SQL))
SENSITIVE_KEYWORD_RULES: Tuple[Rule, ...] = tuple(_build_sensitive_keyword_rules())

ALL_RULES: Tuple[Rule, ...] = (
    NL_INJECTION_RULES
    + (NL_STACKING_RULE,)
    + NL_DANGEROUS_RULES
    + SENSITIVE_KEYWORD_RULES
    + SQL_DANGEROUS_RULES
    + (SQL_STACKING_RULE,)
)
