"""Small helpers shared across the package."""

from __future__ import annotations

import asyncio
import functools
import logging
import re
from typing import Any, Callable, Iterable, List, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


async def run_blocking(func: Callable[..., T], *args: Any, **kwargs: Any) -> T:
    """Run a blocking call (requests, boto3) on the loop's default executor.

    If the awaiting task is cancelled the call keeps running in its worker
    thread; only the result is dropped.
    """
    loop = asyncio.get_running_loop()
    return await loop.run_in_executor(None, functools.partial(func, *args, **kwargs))


def parse_bool(value: Any, *, default: bool = True) -> bool:
    if value is None:
        return default
    if isinstance(value, bool):
        return value
    return str(value).strip().lower() in {"1", "true", "yes", "y", "on"}


def compile_exclude_patterns(items: Iterable[str]) -> List[re.Pattern]:
    """Compile host exclusion patterns.

    Supports three formats:
        - Exact host: "auth.example.com"
        - Wildcard (fnmatch-style): "*.internal.*", "dev-*"
        - Regex (prefix with ~): "~^staging-\\d+\\.example\\.com$"
    """
    patterns: List[re.Pattern] = []

    for raw_item in items:
        item = str(raw_item).strip()
        if not item:
            continue

        try:
            if item.startswith("~"):
                patterns.append(re.compile(item[1:], re.IGNORECASE))
            elif "*" in item or "?" in item:
                regex_str = re.escape(item)
                regex_str = regex_str.replace(r"\*", ".*").replace(r"\?", ".")
                patterns.append(re.compile(f"^{regex_str}$", re.IGNORECASE))
            else:
                patterns.append(re.compile(f"^{re.escape(item)}$", re.IGNORECASE))
            logger.debug(f"Added exclusion pattern: {item}")
        except re.error as e:
            logger.warning(f"Invalid exclusion pattern '{item}': {e}")

    return patterns


def is_host_excluded(host: str, patterns: Iterable[re.Pattern]) -> bool:
    """Check if a host matches any exclusion pattern."""
    return any(pattern.search(host) for pattern in patterns)
