"""
Unit tests -- macro sanitizer: misuse detection and repair.
"""
from querychart.templating.sanitizer import (
    check_macro_usage,
    fix_time_filter,
    sanitize,
    strip_at_symbols,
)


# ── 0. Clean query → no errors ───────────────────────────

def test_clean_query_passes():
    sql = "SELECT __timestamp, v FROM metrics WHERE $__timeFilter"
    assert check_macro_usage(sql) == []
    assert sanitize(sql) == (sql, [])


# ── 1. Function-call form ───────────────────────────────

def test_function_call_detected_and_fixed():
    sql = "SELECT * FROM m WHERE $__timeFilter(ts)"
    errors = check_macro_usage(sql)
    assert any("not a function" in e for e in errors)
    assert fix_time_filter(sql) == "SELECT * FROM m WHERE $__timeFilter"


# ── 2. Quoted macro ─────────────────────────────────────

def test_quoted_macro_detected_and_fixed():
    sql = "SELECT * FROM m WHERE '$__timeFilter'"
    assert any("quoted" in e for e in check_macro_usage(sql))
    assert fix_time_filter(sql) == "SELECT * FROM m WHERE $__timeFilter"


# ── 3. Stray space ──────────────────────────────────────

def test_spaced_macro_detected_and_fixed():
    sql = "SELECT * FROM m WHERE $ __timeFilter"
    assert any("spaces" in e for e in check_macro_usage(sql))
    assert fix_time_filter(sql) == "SELECT * FROM m WHERE $__timeFilter"


# ── 4. @ table references ───────────────────────────────

def test_at_symbols_stripped():
    sql = "SELECT * FROM @mydb.events e JOIN @mydb.users u ON e.uid = u.id"
    assert any("@" in e for e in check_macro_usage(sql))
    assert strip_at_symbols(sql) == "SELECT * FROM mydb.events e JOIN mydb.users u ON e.uid = u.id"


def test_at_outside_table_reference_untouched():
    sql = "SELECT * FROM m WHERE email = 'a@b.c'"
    assert check_macro_usage(sql) == []
    assert strip_at_symbols(sql) == sql


def test_sanitize_reports_and_repairs_together():
    fixed, errors = sanitize("SELECT * FROM @db.t WHERE $__timeFilter(ts)")
    assert fixed == "SELECT * FROM db.t WHERE $__timeFilter"
    assert len(errors) == 2
