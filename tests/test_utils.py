"""Unit tests for utility functions in traefik_dns.utils.

Tests cover:
- Exclude pattern compilation (compile_exclude_patterns)
- Host exclusion checking (is_host_excluded)
- Boolean parsing (parse_bool)
- Executor offload (run_blocking)
"""

import asyncio
import threading

from traefik_dns.utils import (
    compile_exclude_patterns,
    is_host_excluded,
    parse_bool,
    run_blocking,
)

# =============================================================================
# Exclude Pattern Tests
# =============================================================================


def test_compile_exclude_patterns_empty() -> None:
    """Empty input returns no patterns."""
    assert compile_exclude_patterns([]) == []
    assert compile_exclude_patterns(["", "  "]) == []


def test_exact_pattern_matches_only_that_host() -> None:
    patterns = compile_exclude_patterns(["auth.example.com"])

    assert is_host_excluded("auth.example.com", patterns)
    assert is_host_excluded("AUTH.example.com", patterns)
    assert not is_host_excluded("auth.example.com.evil.net", patterns)
    assert not is_host_excluded("xauth.example.com", patterns)


def test_wildcard_pattern() -> None:
    patterns = compile_exclude_patterns(["*.internal.*", "dev-?.example.com"])

    assert is_host_excluded("app.internal.example.com", patterns)
    assert is_host_excluded("dev-1.example.com", patterns)
    assert not is_host_excluded("dev-12.example.com", patterns)
    assert not is_host_excluded("app.example.com", patterns)


def test_regex_pattern() -> None:
    patterns = compile_exclude_patterns([r"~^staging-\d+\.example\.com$"])

    assert is_host_excluded("staging-42.example.com", patterns)
    assert not is_host_excluded("staging.example.com", patterns)


def test_invalid_regex_is_skipped() -> None:
    """Broken regexes are dropped with a warning, valid ones are kept."""
    patterns = compile_exclude_patterns(["~[unclosed", "ok.example.com"])

    assert len(patterns) == 1
    assert is_host_excluded("ok.example.com", patterns)


# =============================================================================
# Boolean Parsing Tests
# =============================================================================


def test_parse_bool_values() -> None:
    for value in ("1", "true", "YES", "y", "on", True):
        assert parse_bool(value) is True
    for value in ("0", "false", "no", "off", False):
        assert parse_bool(value) is False


def test_parse_bool_default() -> None:
    assert parse_bool(None) is True
    assert parse_bool(None, default=False) is False


# =============================================================================
# run_blocking
# =============================================================================


def test_run_blocking_runs_in_worker_thread() -> None:
    main_thread = threading.get_ident()

    def work(a: int, b: int = 0) -> int:
        assert threading.get_ident() != main_thread
        return a + b

    assert asyncio.run(run_blocking(work, 2, b=3)) == 5
