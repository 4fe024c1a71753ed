"""Tests for inclusion conditions (stackforge.catalog.conditions).

Covers:
- has_<category>, services.<category> comparisons and membership
- &&, ||, ! and parentheses, including precedence
- Malformed conditions
- is_included / selected_services helpers
"""

from __future__ import annotations

import pytest

from stackforge.catalog import ServiceModule
from stackforge.catalog.conditions import (
    ExprKind,
    is_included,
    parse_condition,
    selected_services,
)

pytestmark = pytest.mark.unit

SERVICES = {"database": "database-prisma", "auth": "auth-clerk"}


def _eval(text: str) -> bool:
    return parse_condition(text).evaluate(SERVICES)


class TestTerms:
    @pytest.mark.parametrize(
        "text, expected",
        [
            ("has_auth", True),
            ("has_payments", False),
            ("services.auth", True),
            ("services.ai", False),
            ("true", True),
            ("false", False),
        ],
    )
    def test_presence(self, text: str, expected: bool):
        assert _eval(text) is expected

    @pytest.mark.parametrize(
        "text, expected",
        [
            ("services.auth == 'auth-clerk'", True),
            ('services.auth == "auth-auth0"', False),
            ("services.auth != 'auth-auth0'", True),
            ("services.payments == 'payments-stripe'", False),
            ("services.payments != 'payments-stripe'", True),
        ],
    )
    def test_comparison(self, text: str, expected: bool):
        assert _eval(text) is expected

    def test_membership(self):
        assert _eval("services.database in ['database-prisma', 'database-drizzle']") is True
        assert _eval("services.auth in ['auth-auth0']") is False
        assert _eval("services.payments in ['payments-stripe']") is False


class TestOperators:
    def test_and_or_not(self):
        assert _eval("has_auth && has_database") is True
        assert _eval("has_auth && has_payments") is False
        assert _eval("has_payments || has_auth") is True
        assert _eval("!has_payments") is True
        assert _eval("!!has_auth") is True

    def test_and_binds_tighter_than_or(self):
        condition = parse_condition("has_payments && has_auth || has_database")
        assert condition.kind is ExprKind.OR
        assert condition.evaluate(SERVICES) is True
        assert _eval("has_payments && (has_auth || has_database)") is False

    def test_negated_group(self):
        text = "has_auth && !(has_payments || services.database != 'database-prisma')"
        assert _eval(text) is True

    def test_categories(self):
        condition = parse_condition("has_auth || services.payments in ['payments-stripe']")
        assert condition.categories() == {"auth", "payments"}


class TestMalformed:
    @pytest.mark.parametrize(
        "text",
        [
            "",
            "   ",
            "has_auth &&",
            "(has_auth",
            "has_auth)",
            "services.auth ==",
            "services.auth == clerk",
            "services.auth in 'auth-clerk'",
            "services.auth in ['auth-clerk'",
            "project_name == 'x'",
            "has_auth & has_db",
            "has_auth has_db",
        ],
    )
    def test_rejected(self, text: str):
        with pytest.raises(ValueError):
            parse_condition(text)


class TestHelpers:
    def test_selected_services(self):
        modules = [
            ServiceModule(id="database-prisma", category="database"),
            ServiceModule(id="auth-clerk", category="auth"),
        ]
        assert selected_services(modules) == SERVICES

    def test_unconditional_file_always_included(self):
        assert is_included(None, {}) is True

    def test_condition_evaluated(self):
        assert is_included("has_auth", SERVICES) is True
        assert is_included("has_auth", {}) is False
