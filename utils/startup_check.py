#!/usr/bin/env python3
"""
Pre-Flight Startup Checks

Verifies the risk-control plane is safe to start:
1. Quota tiers are ordered (single <= daily <= weekly <= monthly)
2. Oracle feed map is configured
3. Oracle endpoint latency (< 500ms)
4. Discord monitoring sink (optional)

Usage:
    from utils.startup_check import perform_safety_checks
    success, issues = await perform_safety_checks(settings)
"""

import asyncio
import logging
import time
from typing import List, Tuple

import httpx

logger = logging.getLogger(__name__)

MAX_ORACLE_LATENCY_MS = 500.0


def check_quota_limits(settings) -> Tuple[bool, str]:
    """
    Verify quota tiers do not contradict each other.

    Returns:
        Tuple of (passed, message)
    """
    limits = settings.quota_limits()
    tiers = [
        ("single", limits.max_single_bet),
        ("daily", limits.max_daily),
        ("weekly", limits.max_weekly),
        ("monthly", limits.max_monthly),
    ]

    issues = []
    for (lower_name, lower), (upper_name, upper) in zip(tiers, tiers[1:]):
        if lower > upper:
            issues.append(f"{lower_name} limit {lower} > {upper_name} limit {upper}")

    if issues:
        return False, "; ".join(issues)

    return True, (
        f"Quota tiers OK: {limits.max_single_bet} / {limits.max_daily} / "
        f"{limits.max_weekly} / {limits.max_monthly}"
    )


def check_feed_map(settings) -> Tuple[bool, str]:
    """
    Verify at least one event is mapped to an oracle feed.

    Returns:
        Tuple of (passed, message)
    """
    feed_ids = settings.oracle_feed_ids
    if not feed_ids:
        return False, "ORACLE_FEED_IDS is empty - no event can be resolved"

    empty = [event_id for event_id, feed_id in feed_ids.items() if not feed_id]
    if empty:
        return False, f"Events without feed id: {', '.join(empty)}"

    return True, f"{len(feed_ids)} event(s) mapped to oracle feeds"


async def check_oracle_latency(
    endpoint: str,
    max_latency_ms: float = MAX_ORACLE_LATENCY_MS,
    transport: httpx.AsyncBaseTransport = None,
) -> Tuple[bool, str, float]:
    """
    Ping the oracle endpoint and verify latency.

    Returns:
        Tuple of (passed, message, latency_ms)
    """
    try:
        start = time.time()
        async with httpx.AsyncClient(timeout=5.0, transport=transport) as client:
            resp = await client.get(f"{endpoint.rstrip('/')}/live")
            resp.raise_for_status()
        latency_ms = (time.time() - start) * 1000

        if latency_ms > max_latency_ms:
            return False, f"Oracle latency {latency_ms:.0f}ms > {max_latency_ms:.0f}ms (too slow)", latency_ms

        return True, f"Oracle latency: {latency_ms:.0f}ms", latency_ms
    except httpx.HTTPError as e:
        return False, f"Oracle ping failed: {e}", 9999.0


def check_discord_webhook(settings) -> dict:
    """
    Check if Discord webhook is configured.

    This is optional - the service runs without Discord notifications.
    Returns status dict instead of pass/fail.
    """
    from utils.notifier import DiscordNotifier

    notifier = DiscordNotifier(
        webhook_url=settings.discord_webhook_url,
        instance_id=settings.instance_id,
    )
    try:
        return notifier.get_status()
    finally:
        notifier.close()


async def perform_safety_checks(
    settings,
    transport: httpx.AsyncBaseTransport = None,
) -> Tuple[bool, List[str]]:
    """
    Run all pre-flight safety checks.

    Returns:
        Tuple of (all_passed, list_of_issues)
    """
    print("\n" + "=" * 60)
    print("🔍 PRE-FLIGHT SAFETY CHECKS")
    print("=" * 60 + "\n")

    all_passed = True
    issues = []

    def record(passed: bool, msg: str) -> None:
        nonlocal all_passed
        if passed:
            print(f"        ✅ {msg}")
        else:
            print(f"        ❌ {msg}")
            all_passed = False
            issues.append(msg)

    print("  [1/3] Checking quota tiers...")
    record(*check_quota_limits(settings))

    print("  [2/3] Checking oracle feed map...")
    record(*check_feed_map(settings))

    print("  [3/3] Checking oracle latency...")
    passed, msg, _latency = await check_oracle_latency(
        settings.hermes_http_endpoint, transport=transport
    )
    record(passed, msg)

    print("\n  [Optional] Checking Discord webhook...")
    discord_status = check_discord_webhook(settings)
    if discord_status["configured"]:
        print("        ✅ Discord notifications enabled")
    else:
        print("        ⚠️  Discord not configured (notifications disabled)")
        print("           Add DISCORD_WEBHOOK_URL to .env to enable")

    print("\n" + "-" * 60)

    if all_passed:
        print("✅ ALL CHECKS PASSED - Safe to accept bets")
    else:
        print("❌ CHECKS FAILED - Resolve issues before accepting bets")
        print(f"   Issues: {len(issues)}")
        for i, issue in enumerate(issues, 1):
            print(f"   {i}. {issue}")

    print("=" * 60 + "\n")

    return all_passed, issues


if __name__ == "__main__":
    from config.settings import settings as _settings

    asyncio.run(perform_safety_checks(_settings))
