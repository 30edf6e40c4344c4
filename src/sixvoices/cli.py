"""Command-line interface for SixVoices.

Subcommands run one meeting, inspect usage and history, rate meetings and
encode or decode personality keys.
"""

import argparse
import asyncio
import os
import sys

from groq import AsyncGroq

from .config import ServiceConfig, load_config
from .errors import InvalidRatingError, MalformedKeyError, MeetingNotFoundError, UsageLimitExceededError
from .logging import configure_logger
from .meeting import MeetingReuseCache, category_display_name
from .personality import PersonalityRole, TraitVector, decode_key, derive_personalities, encode_key
from .service import DialogueResult, build_service
from .store import SQLiteStore
from .usage import UsageLedger


def _open_store(config: ServiceConfig) -> SQLiteStore:
    store = SQLiteStore(config.db_path)
    store.init_db()
    return store


def _parse_traits(value: str) -> TraitVector:
    """Parse "O,C,E,A,N" into a TraitVector."""
    parts = [p.strip() for p in value.split(",")]
    if len(parts) != 5:
        raise argparse.ArgumentTypeError("traits must be five comma-separated values")
    try:
        return TraitVector(*(int(p) for p in parts))
    except ValueError as e:
        raise argparse.ArgumentTypeError(str(e)) from e


def _print_result(result: DialogueResult) -> None:
    names = {p.id: p.display_name for p in result.personalities}
    status = "emergency" if result.emergency else ("reused" if result.cache_hit else "generated")

    print(f"\nMeeting: {result.meeting_id or '-'} ({status})")
    print(f"Category: {category_display_name(result.category)}")
    if result.model_used:
        print(f"Model: {result.model_used}")
    print(f"Usage count: {result.usage_count}")
    print("-" * 60)

    current_round = None
    for turn in result.conversation:
        if turn.round_number != current_round:
            current_round = turn.round_number
            print(f"\n[Round {current_round}]")
        print(f"{names.get(turn.speaker_role, turn.speaker_role)}: {turn.text}")

    print(f"\nSummary: {result.conclusion.summary}")
    if result.conclusion.recommendations:
        print("Recommendations:")
        for item in result.conclusion.recommendations:
            print(f"  - {item}")
    if result.conclusion.next_steps:
        print("Next steps:")
        for item in result.conclusion.next_steps:
            print(f"  - {item}")


def cmd_meet(args: argparse.Namespace) -> int:
    """Run one generate-or-reuse request."""
    api_key = os.getenv("GROQ_API_KEY")
    if not api_key:
        print("Error: GROQ_API_KEY environment variable not set.")
        return 1

    config = load_config()
    service = build_service(config, AsyncGroq(api_key=api_key), configure_logger(config.log_dir))

    try:
        result = asyncio.run(
            service.generate_or_reuse_dialogue(
                args.user,
                args.traits,
                args.gender,
                args.concern,
                concern_category=args.category,
            )
        )
    except UsageLimitExceededError as e:
        print(f"Error: {e}")
        print("Watch an ad to earn credits or upgrade to premium.")
        return 1
    except TimeoutError as e:
        print(f"Error: {e}")
        return 1
    except ValueError as e:
        print(f"Error: {e}")
        return 1

    _print_result(result)
    return 0


def cmd_usage(args: argparse.Namespace) -> int:
    """Show a user's usage ledger."""
    ledger = UsageLedger(_open_store(load_config()))
    info = asyncio.run(ledger.get_tier(args.user))
    ad = asyncio.run(ledger.check_ad_display_due(args.user))
    usage = info.usage

    print(f"\nUser: {usage.user_id}")
    print("-" * 40)
    print(f"Date: {usage.date}")
    print(f"Tier: {info.tier}" + (" (expired)" if usage.tier != info.tier else ""))
    if info.expires_at:
        print(f"Tier expires: {info.expires_at.isoformat()}")
    print(f"Chats today: {usage.chat_count_today}")
    print(f"Total chats: {usage.total_chats}")
    print(f"Ad credits: {usage.ad_earned_credits}")
    print(f"Meetings used: {usage.meetings_used}")
    print(f"Tokens: {usage.total_tokens}")
    print(f"Cost: ${usage.total_cost_usd:.4f}")
    if info.tier != "premium":
        print(f"Next ad at chat: {ad.next_threshold_at}")
    return 0


def cmd_history(args: argparse.Namespace) -> int:
    """List a user's recent meetings."""
    cache = MeetingReuseCache(_open_store(load_config()))
    entries = cache.list_history(args.user, limit=args.limit)

    if not entries:
        print("No meetings found.")
        return 0

    print(f"\n{'When':<27} {'Category':<10} {'Hit':<5} Concern")
    print("-" * 80)
    for entry in entries:
        concern = entry["concern"]
        if len(concern) > 35:
            concern = concern[:32] + "..."
        hit = "yes" if entry["cache_hit"] else "no"
        print(f"{entry['created_at'][:26]:<27} {entry['concern_category']:<10} {hit:<5} {concern}")
    return 0


def cmd_rate(args: argparse.Namespace) -> int:
    """Rate a stored meeting."""
    cache = MeetingReuseCache(_open_store(load_config()))
    try:
        record = asyncio.run(cache.rate(args.meeting_id, args.rating))
    except (InvalidRatingError, MeetingNotFoundError) as e:
        print(f"Error: {e}")
        return 1

    ratings = record.ratings
    print(f"Rated {record.id}: average {ratings.avg_rating:.2f} over {ratings.total_ratings} rating(s)")
    return 0


def cmd_keys(args: argparse.Namespace) -> int:
    """Encode or decode a personality key."""
    if args.action == "encode":
        if args.traits is None or args.gender is None:
            print("Error: encode needs --traits and --gender.")
            return 1
        try:
            print(encode_key(args.traits, args.gender))
        except ValueError as e:
            print(f"Error: {e}")
            return 1
        return 0

    if args.key is None:
        print("Error: decode needs a key.")
        return 1
    try:
        traits, gender = decode_key(args.key)
    except MalformedKeyError as e:
        print(f"Error: {e}")
        return 1

    print(f"\nKey: {args.key}")
    print(f"Gender: {gender}")
    print("-" * 60)
    for variant in derive_personalities(traits, gender):
        t = variant.traits
        marker = "*" if variant.role is PersonalityRole.SELF else " "
        print(
            f"{marker} {variant.display_name:<20} "
            f"O{t.openness} C{t.conscientiousness} E{t.extraversion} "
            f"A{t.agreeableness} N{t.neuroticism}"
        )
    return 0


def create_parser() -> argparse.ArgumentParser:
    """Create the argument parser for the CLI."""
    parser = argparse.ArgumentParser(
        prog="sixvoices",
        description="Meetings between six versions of yourself",
    )

    subparsers = parser.add_subparsers(dest="command", help="Sub-command help")

    # meet command
    meet_parser = subparsers.add_parser("meet", help="Generate or reuse a meeting")
    meet_parser.add_argument("concern", help="What is on your mind")
    meet_parser.add_argument("-u", "--user", default="cli", help="User id")
    meet_parser.add_argument(
        "-t", "--traits",
        type=_parse_traits,
        required=True,
        help="Big Five scores as O,C,E,A,N (each 1-5)",
    )
    meet_parser.add_argument("-g", "--gender", default="unspecified", help="Gender token")
    meet_parser.add_argument("-c", "--category", help="Concern category (detected if omitted)")

    # usage command
    usage_parser = subparsers.add_parser("usage", help="Show a user's usage")
    usage_parser.add_argument("user", help="User id")

    # history command
    history_parser = subparsers.add_parser("history", help="List a user's meetings")
    history_parser.add_argument("user", help="User id")
    history_parser.add_argument("-n", "--limit", type=int, default=20, help="Maximum entries")

    # rate command
    rate_parser = subparsers.add_parser("rate", help="Rate a meeting")
    rate_parser.add_argument("meeting_id", help="Meeting id")
    rate_parser.add_argument("rating", type=int, help="Rating from 1 to 5")

    # keys command
    keys_parser = subparsers.add_parser("keys", help="Encode or decode personality keys")
    keys_parser.add_argument("action", choices=["encode", "decode"])
    keys_parser.add_argument("key", nargs="?", help="Key to decode")
    keys_parser.add_argument("-t", "--traits", type=_parse_traits, help="O,C,E,A,N to encode")
    keys_parser.add_argument("-g", "--gender", help="Gender token to encode")

    return parser


def run_cli(argv: list[str] | None = None) -> int:
    """Run the CLI with given arguments.

    Args:
        argv: Command-line arguments. Uses sys.argv[1:] if None.

    Returns:
        Exit code (0 for success, non-zero for error).
    """
    parser = create_parser()
    args = parser.parse_args(argv)

    if args.command is None:
        parser.print_help()
        return 0

    commands = {
        "meet": cmd_meet,
        "usage": cmd_usage,
        "history": cmd_history,
        "rate": cmd_rate,
        "keys": cmd_keys,
    }

    handler = commands.get(args.command)
    if handler is None:
        parser.print_help()
        return 1

    return handler(args)


if __name__ == "__main__":
    sys.exit(run_cli())
