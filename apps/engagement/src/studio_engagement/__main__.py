import argparse
import asyncio
import json
from typing import Any, Awaitable, Callable, Dict, Sequence

from .app import bootstrap, run_scheduler, session_factory
from .db.session import engine
from .jobs.engagement import run_badge_sweep, run_referral_sweep, seed_tenant_badges


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="studio_engagement", description="Client engagement engine")
    parser.add_argument("--log-level", default="INFO")
    subcommands = parser.add_subparsers(dest="command")

    subcommands.add_parser("scheduler", help="run cron-scheduled engagement jobs (default)")

    sweep_badges = subcommands.add_parser("sweep-badges", help="evaluate badge rules for active clients")
    sweep_badges.add_argument("--tenant", default=None)

    sweep_referrals = subcommands.add_parser("sweep-referrals", help="expire stale referrals")
    sweep_referrals.add_argument("--tenant", default=None)
    sweep_referrals.add_argument("--apply-rewards", action="store_true", help="also settle qualified referrals")

    seed = subcommands.add_parser("seed-badges", help="insert the default badge catalog")
    seed.add_argument("--tenant", default=None)
    return parser


async def _run_once(job: Callable[..., Awaitable[Dict[str, Any]]], **kwargs: Any) -> Dict[str, Any]:
    try:
        return await job(session_factory=session_factory, **kwargs)
    finally:
        await engine.dispose()


def main(argv: Sequence[str] | None = None) -> None:
    args = _build_parser().parse_args(argv)
    bootstrap(level=args.log_level)

    if args.command in (None, "scheduler"):
        asyncio.run(run_scheduler())
        return

    if args.command == "sweep-badges":
        summary = asyncio.run(_run_once(run_badge_sweep, tenant_id=args.tenant))
    elif args.command == "sweep-referrals":
        summary = asyncio.run(_run_once(run_referral_sweep, tenant_id=args.tenant, apply_rewards=args.apply_rewards))
    else:
        summary = asyncio.run(_run_once(seed_tenant_badges, tenant_id=args.tenant))
    print(json.dumps(summary, indent=2))


if __name__ == "__main__":
    main()
