"""Command-line entry point for the reward engine"""
import argparse
import asyncio
import datetime as dt
import json
import logging
import sys
from pathlib import Path
from typing import List, Optional

from pydantic import TypeAdapter, ValidationError as PydanticValidationError

from rewards.config import validate_config, LOG_LEVEL, STORAGE_BACKEND, DATA_PATH, REDIS_URL
from rewards.exceptions import RewardEngineError, ValidationError
from rewards.models.health import DailyHealthRecord
from rewards.services.container import RewardContainer, create_container
from rewards.services.reward_pipeline import RewardPipeline
from rewards.storage.export import export_all_data

# Configure logging
logging.basicConfig(
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
    level=getattr(logging, LOG_LEVEL)
)

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="rewards", description="Companion reward engine")
    parser.add_argument("--backend", default=STORAGE_BACKEND, choices=["memory", "file", "redis"])
    parser.add_argument("--data-path", type=Path, default=DATA_PATH)
    parser.add_argument("--redis-url", default=REDIS_URL)

    sub = parser.add_subparsers(dest="command", required=True)

    record = sub.add_parser("record", help="Record a day's health observation")
    record.add_argument("--date", type=dt.date.fromisoformat, default=None, help="YYYY-MM-DD, defaults to today")
    record.add_argument("--steps", type=float, default=0)
    record.add_argument("--sleep", type=float, default=None, help="Hours slept")
    record.add_argument("--hrv", type=float, default=None, help="HRV in ms")
    criteria = record.add_mutually_exclusive_group()
    criteria.add_argument("--met", dest="met_criteria", action="store_const", const=True, default=None)
    criteria.add_argument("--missed", dest="met_criteria", action="store_const", const=False)

    week = sub.add_parser("week", help="Generate this week's challenges")
    week.add_argument("--date", type=dt.date.fromisoformat, default=None)
    week.add_argument(
        "--history",
        type=Path,
        default=None,
        help="JSON list of recent days ({\"date\", \"steps\", \"sleepHours\", \"hrv\"}); "
        "without it only the streak and combined challenges are offered, with default targets",
    )

    equip = sub.add_parser("equip", help="Equip an owned cosmetic")
    equip.add_argument("cosmetic_id")

    sub.add_parser("status", help="Show streak, achievements, challenges and cosmetics")

    export = sub.add_parser("export", help="Export all reward state as JSON")
    export.add_argument("--output", type=Path, default=None)

    return parser


def load_history(path: Path) -> List[DailyHealthRecord]:
    """Read a JSON list of daily health records for challenge generation"""
    try:
        return TypeAdapter(List[DailyHealthRecord]).validate_json(path.read_bytes())
    except OSError as e:
        raise ValidationError(f"Cannot read history file {path}: {e}", field="history", value=str(path), cause=e)
    except PydanticValidationError as e:
        raise ValidationError(
            f"History file {path} is not a list of daily records: {e.error_count()} error(s)",
            field="history",
            value=str(path),
            cause=e,
        )


async def run_command(args: argparse.Namespace, container: RewardContainer) -> int:
    """Execute one parsed command against an initialized container"""
    pipeline = RewardPipeline(container)
    today = container.clock().date()

    if args.command == "record":
        metrics = {"steps": args.steps, "sleep_hours": args.sleep, "hrv": args.hrv}
        update = await pipeline.process_health_update(args.date or today, metrics, met_criteria=args.met_criteria)
        print(f"Streak: {update.streak.previous_streak} -> {update.streak.new_streak}")
        for achievement in update.achievements_unlocked:
            print(f"Achievement unlocked: {achievement.name} ({achievement.rarity.value})")
        for cosmetic_id in update.cosmetics_unlocked:
            print(f"Cosmetic unlocked: {cosmetic_id}")
        for challenge_id in update.challenges_completed:
            print(f"Challenge completed: {challenge_id}")

    elif args.command == "week":
        history = load_history(args.history) if args.history else []
        challenges = await pipeline.on_week_boundary(args.date or today, history)
        for challenge in challenges:
            print(f"{challenge.title}: {challenge.description}")

    elif args.command == "equip":
        if not await pipeline.equip_cosmetic(args.cosmetic_id):
            print(f"Cosmetic not owned: {args.cosmetic_id}", file=sys.stderr)
            return 1
        print(f"Equipped {args.cosmetic_id}")

    elif args.command == "status":
        stats = container.achievements.get_statistics()
        print(f"Streak: {container.streak.get_current_streak()} (longest {container.streak.get_longest_streak()})")
        print(f"Days until next milestone: {container.streak.get_days_until_milestone()}")
        print(f"Achievements: {stats.total_earned}/{stats.total_available} ({stats.completion_percentage:.0f}%)")
        for challenge in container.challenges.get_active_challenges():
            state = "done" if challenge.completed else f"{challenge.progress:g}/{challenge.objective.target:g}"
            print(f"Challenge {challenge.title}: {state}")
        print(f"Challenges: {container.challenges.format_time_remaining()}")
        layers = [layer.cosmetic_id for layer in container.cosmetics.get_cosmetic_layers()]
        print(f"Equipped layers: {', '.join(layers) if layers else 'none'}")

    elif args.command == "export":
        payload = export_all_data(container)
        if args.output:
            args.output.write_text(payload, encoding="utf-8")
            print(f"Exported to {args.output}")
        else:
            print(json.dumps(json.loads(payload), indent=2))

    return 0


async def main(argv: Optional[List[str]] = None) -> int:
    """Main application entry point"""
    args = build_parser().parse_args(argv)
    container = None
    try:
        validate_config()
        container = create_container(args.backend, data_path=args.data_path, redis_url=args.redis_url)
        await container.initialize()
        return await run_command(args, container)
    except RewardEngineError as e:
        print(f"Error: {e.message}", file=sys.stderr)
        return 1
    finally:
        if container:
            await container.close()


def cli() -> None:
    """Console script wrapper"""
    sys.exit(asyncio.run(main()))


if __name__ == "__main__":
    cli()
