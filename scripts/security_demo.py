#!/usr/bin/env python3
"""
Demonstration of the querygate security gates
Runs a set of benign and adversarial questions through the gates offline,
with canned SQL standing in for the translator
"""
import os
import sys
from typing import Optional

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from querygate.exceptions import ValidationBlocked
from querygate.processor import block_message
from querygate.security import SecurityGate

SECURITY_CASES = [
    {
        "name": "Basic SQL injection attempt",
        "query": "Show me all users'; DROP TABLE users; --",
        "sql": None,
        "expect_blocked": True
    },
    {
        "name": "UNION-based SQL injection",
        "query": "Show me users UNION SELECT username, password FROM admin_users",
        "sql": None,
        "expect_blocked": True
    },
    {
        "name": "Data modification attempt",
        "query": "Delete all users older than 1 year",
        "sql": None,
        "expect_blocked": True
    },
    {
        "name": "System command execution attempt",
        "query": "Show me users; EXEC xp_cmdshell('rm -rf /')",
        "sql": None,
        "expect_blocked": True
    },
    {
        "name": "Schema question",
        "query": "Show me the database schema",
        "sql": "SELECT table_name FROM information_schema.tables",
        "expect_blocked": False
    },
    {
        "name": "Direct request for passwords",
        "query": "Show me all users' passwords",
        "sql": "SELECT name, password FROM users",
        "expect_blocked": True
    },
    {
        "name": "Audit question about passwords",
        "query": "How many users changed their password last week?",
        "sql": "SELECT COUNT(*) FROM users WHERE password_changed_at > NOW() - INTERVAL 7 DAY",
        "expect_blocked": False
    },
    {
        "name": "Mismatched UNION in generated SQL",
        "query": "Show me product names and prices",
        "sql": "SELECT name, price FROM products UNION SELECT email FROM users",
        "expect_blocked": True
    },
    {
        "name": "Legitimate query",
        "query": "Show me all users who registered in the last month",
        "sql": "SELECT * FROM users WHERE created_at >= DATE_SUB(NOW(), INTERVAL 1 MONTH)",
        "expect_blocked": False
    },
    {
        "name": "Legitimate but complex query",
        "query": "Show me the top 3 categories with the most products, including the total value of inventory in each category",
        "sql": (
            "SELECT c.name, COUNT(p.id) AS product_count, SUM(p.price) AS total_value "
            "FROM categories c JOIN products p ON p.category_id = c.id "
            "GROUP BY c.id ORDER BY product_count DESC LIMIT 3"
        ),
        "expect_blocked": False
    },
]


def print_header(title: str) -> None:
    print(f"\n{'=' * 60}")
    print(f"  {title}")
    print(f"{'=' * 60}\n")


def run_case(gate: SecurityGate, query: str, sql: Optional[str]) -> Optional[ValidationBlocked]:
    """Run the gates in pipeline order, returning the block if one fired"""
    try:
        gate.check_input(query)
        if sql is not None:
            gate.check_sql(sql)
            gate.check_sensitivity(query, sql)
    except ValidationBlocked as e:
        return e
    return None


def main() -> int:
    gate = SecurityGate()
    failures = 0

    print_header("querygate Security Gate Demonstration")

    for case in SECURITY_CASES:
        print(f"Testing: {case['name']}")
        print(f"Query: {case['query']!r}")
        blocked = run_case(gate, case["query"], case["sql"])

        if blocked:
            alert = blocked.alert
            print(f"❌ BLOCKED [{alert.type.value}/{alert.severity.value}]: {block_message(alert)}")
        else:
            print("✅ ALLOWED")

        if bool(blocked) != case["expect_blocked"]:
            failures += 1
            print("⚠️  Unexpected outcome")
        print()

    print_header(f"{len(SECURITY_CASES) - failures}/{len(SECURITY_CASES)} cases behaved as expected")
    return 1 if failures else 0


if __name__ == "__main__":
    sys.exit(main())
