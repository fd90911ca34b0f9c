"""
Wagering Risk-Control Plane - Main Entry Point

Components:
- RateLimiter: betting 5/60s, general API 100/60s per actor
- QuotaEnforcer: single / daily / weekly / monthly limits
- ExposureAggregator: per-event exposure, high exposure alerts, analytics
- OracleResolver: oracle price/confidence -> match outcome

Modes:
- status: print effective configuration and component status
- check: run pre-flight safety checks
- resolve: resolve one event from the configured Hermes feed
- simulate: push synthetic bets through the full gateway
"""

import argparse
import asyncio
import logging
import random
import sys
import time
from concurrent.futures import ThreadPoolExecutor
from decimal import Decimal

from dotenv import load_dotenv

# Load environment variables
load_dotenv()

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)
logger = logging.getLogger(__name__)


def run_status() -> bool:
    """Print effective configuration and a fresh gateway's status."""
    from config.settings import RiskSettings
    from risk_layer import RiskGateway, StaticOracleFeed

    settings = RiskSettings()
    gateway = RiskGateway.from_settings(settings, feed=StaticOracleFeed())
    try:
        status = gateway.get_status()
    finally:
        gateway.close()

    print("\n" + "=" * 60)
    print("📋 RISK CONTROL STATUS")
    print("=" * 60)

    print("\n  Quota limits:")
    for name, value in status["quota"]["limits"].items():
        print(f"    {name}: {value}")

    print("\n  Rate categories:")
    for name, config in status["rate_limiter"]["categories"].items():
        print(f"    {name}: {config['capacity']} points / {config['duration']:.0f}s")

    print(f"\n  Exposure alert threshold: {status['exposure']['alert_threshold']}")
    print(f"  Oracle draw threshold: {settings.oracle_draw_threshold}")
    print(f"  Oracle fetch timeout: {settings.oracle_fetch_timeout}s")
    print(f"  Mapped events: {len(settings.oracle_feed_ids)}")
    for event_id, feed_id in settings.oracle_feed_ids.items():
        print(f"    {event_id} -> {feed_id}")

    print("=" * 60 + "\n")
    return True


def run_check() -> bool:
    """Run the pre-flight checks."""
    from config.settings import RiskSettings
    from utils.startup_check import perform_safety_checks

    success, _issues = asyncio.run(perform_safety_checks(RiskSettings()))
    return success


def run_resolve(event_id: str) -> bool:
    """Resolve a single event from the configured oracle."""
    from config.settings import RiskSettings
    from risk_layer import NoFeedError, RiskGateway

    settings = RiskSettings()
    if event_id not in settings.oracle_feed_ids:
        print(f"✗ No oracle feed configured for {event_id}")
        print("  Add it to ORACLE_FEED_IDS in .env")
        return False

    gateway = RiskGateway.from_settings(settings)
    try:
        outcome = gateway.resolve_event(event_id)
    except NoFeedError as e:
        print(f"✗ {e}")
        return False
    finally:
        gateway.close()

    print("\n" + "=" * 60)
    print(f"🎯 OUTCOME: {event_id}")
    print("=" * 60)
    print(f"  Winner: {outcome.winner.value.upper()}")
    print(f"  Score: {outcome.score.home} - {outcome.score.away}")
    print(f"  Normalized: {outcome.normalized:.4f}")
    print(f"  Confidence: {outcome.confidence}")
    print("=" * 60 + "\n")
    return True


def _lifecycle_notifier(settings):
    """Discord notifier for startup/shutdown messages, or None without a webhook."""
    if not settings.discord_webhook_url:
        return None
    from utils.notifier import DiscordNotifier
    return DiscordNotifier(
        webhook_url=settings.discord_webhook_url,
        instance_id=settings.instance_id,
    )


def run_simulation(actors: int = 8, attempts: int = 10, seed: int = 7) -> bool:
    """
    Push synthetic bets through the full gateway from several threads,
    then settle every event from an in-memory oracle.
    """
    from config.settings import RiskSettings
    from risk_layer import FanoutSink, LogSink, OracleSample, RiskGateway, StaticOracleFeed, Winner

    rng = random.Random(seed)
    events = ["match-001", "match-002", "match-003"]
    feed = StaticOracleFeed([
        OracleSample(event_id="match-001", price=5.0, confidence=2.0),
        OracleSample(event_id="match-002", price=0.05, confidence=1.0),
        OracleSample(event_id="match-003", price=-3.4, confidence=1.0),
    ])

    settings = RiskSettings()
    notifier = _lifecycle_notifier(settings)
    sink = FanoutSink([LogSink(), notifier]) if notifier else None
    gateway = RiskGateway.from_settings(settings, feed=feed, sink=sink)
    if notifier:
        notifier.on_startup(mode="simulate")
    sides = [Winner.HOME, Winner.AWAY, Winner.DRAW]

    def place_bets(actor_index: int) -> dict:
        actor_id = f"actor-{actor_index:03d}"
        tally = {"accepted": 0, "rate_limited": 0, "quota": 0}
        for _ in range(attempts):
            event_id = rng.choice(events)
            amount = Decimal(rng.randint(100, 12000))
            side = rng.choice(sides)
            decision = gateway.submit_bet(actor_id, event_id, amount, side)
            if decision.accepted:
                tally["accepted"] += 1
                odds = Decimal(rng.choice(["1.5", "2.0", "3.25"]))
                gateway.record_bet(actor_id, event_id, amount, odds, side=side)
            elif decision.error.retryable:
                tally["rate_limited"] += 1
            else:
                tally["quota"] += 1
        return tally

    print("\n" + "=" * 60)
    print("🧪 SIMULATION")
    print("=" * 60)
    print(f"  Actors: {actors}, attempts per actor: {attempts}")

    start = time.time()
    try:
        with ThreadPoolExecutor(max_workers=actors) as pool:
            tallies = list(pool.map(place_bets, range(actors)))

        totals = {key: sum(t[key] for t in tallies) for key in tallies[0]}
        print(f"\n  Accepted: {totals['accepted']}")
        print(f"  Rate limited: {totals['rate_limited']}")
        print(f"  Quota rejected: {totals['quota']}")

        print("\n  Settlements:")
        for event_id in events:
            outcome = gateway.resolve_event(event_id)
            exposure = gateway.aggregator.get_event_exposure(event_id)
            payout = exposure.by_side.get(outcome.winner, Decimal("0"))
            gateway.record_settlement(event_id, outcome.winner, payout)
            print(
                f"    {event_id}: {outcome.winner.value} "
                f"{outcome.score.home}-{outcome.score.away}, "
                f"exposure {exposure.total}, payout {payout}"
            )

        analytics = gateway.aggregator.get_analytics()
        print("\n  Analytics:")
        print(f"    Total bets: {analytics.total_bets}")
        print(f"    Total volume: {analytics.total_volume}")
        print(f"    Avg bet size: {analytics.avg_bet_size:.2f}")
        print(f"    Settlements: {analytics.settlements_count}")
        print(f"\n  Elapsed: {time.time() - start:.2f}s")
    finally:
        if notifier:
            notifier.on_shutdown(reason="Simulation complete")
        gateway.close()

    print("=" * 60 + "\n")
    return True


def main():
    parser = argparse.ArgumentParser(
        description="Wagering Risk-Control Plane"
    )
    parser.add_argument(
        "--mode",
        choices=["status", "check", "resolve", "simulate"],
        default="status",
        help="Operation mode: status, check (pre-flight), resolve (one event), simulate"
    )
    parser.add_argument(
        "--event",
        help="Event id for --mode resolve"
    )
    parser.add_argument(
        "--verbose", "-v",
        action="store_true",
        help="Enable verbose logging"
    )

    args = parser.parse_args()

    if args.verbose:
        logging.getLogger().setLevel(logging.DEBUG)

    print("""
    ╔═══════════════════════════════════════════════════════════╗
    ║                                                           ║
    ║   🛡️  WAGERING RISK-CONTROL PLANE                         ║
    ║                                                           ║
    ║   RateLimiter     (betting 5/60s, API 100/60s)            ║
    ║   QuotaEnforcer   (single / daily / weekly / monthly)     ║
    ║   Exposure        (per-event liability + alerts)          ║
    ║   OracleResolver  (price / confidence -> outcome)         ║
    ║                                                           ║
    ╚═══════════════════════════════════════════════════════════╝
    """)

    if args.mode == "status":
        success = run_status()
    elif args.mode == "check":
        success = run_check()
    elif args.mode == "resolve":
        if not args.event:
            parser.error("--mode resolve requires --event")
        success = run_resolve(args.event)
    else:
        success = run_simulation()

    sys.exit(0 if success else 1)


if __name__ == "__main__":
    main()
