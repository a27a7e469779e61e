"""
Main entry point for the application

This is the command line for the review sync pipeline. It can:
1. Create the database tables
2. Register a business and the platform identifiers it uses
3. Sync reviews from Google, Yelp, Reddit and TripAdvisor
4. Analyze any reviews that were saved without AI enrichment

Examples:
    python main.py init-db
    python main.py add-business acme "Acme Coffee" --google-place-id ChIJ... --yelp-id acme-coffee-sf
    python main.py sync acme                # every connected platform
    python main.py sync acme --platform yelp
    python main.py analyze-missing --business acme --limit 50
"""
import argparse
import asyncio
import json
import sys

from config.settings import settings
from layer_2_review_storage import create_database_engine, init_database
from layer_4_sync.sync_reviews import (
    analyze_missing_reviews,
    create_pipeline,
    sync_all_platforms,
    sync_platform,
)
from models.review import BusinessProfile, Platform
from utils.logger import get_logger

# Set up logging so we can see what's happening
logger = get_logger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Multi-platform review sync and enrichment")
    parser.add_argument("--database-url", help="Override DATABASE_URL from the environment")
    subparsers = parser.add_subparsers(dest="command", required=True)

    subparsers.add_parser("init-db", help="Create the database tables")

    add_business = subparsers.add_parser("add-business", help="Register or update a business")
    add_business.add_argument("business_id", help="Unique id for the business")
    add_business.add_argument("name", help="Business name (also used for Reddit searches)")
    add_business.add_argument("--google-place-id", help="Google Place ID")
    add_business.add_argument("--yelp-id", help="Yelp business id or alias")
    add_business.add_argument("--tripadvisor-url", help="TripAdvisor listing URL")
    add_business.add_argument(
        "--subreddit",
        action="append",
        default=[],
        help="Subreddit to search for mentions (repeatable)",
    )

    sync = subparsers.add_parser("sync", help="Sync reviews for a business")
    sync.add_argument("business_id", help="Business to sync")
    sync.add_argument(
        "--platform",
        choices=[p.value for p in Platform],
        help="Sync a single platform (default: every connected platform)",
    )

    analyze = subparsers.add_parser("analyze-missing", help="Analyze reviews without sentiment")
    analyze.add_argument("--business", dest="business_id", help="Limit to one business")
    analyze.add_argument("--limit", type=int, default=settings.ANALYZE_MISSING_LIMIT, help="Maximum reviews to analyze")

    return parser


async def run_command(args: argparse.Namespace) -> dict:
    """Run one CLI command and return its JSON-ready result"""
    if args.command == "init-db":
        settings.ensure_directories()
        engine = create_database_engine(args.database_url)
        try:
            await init_database(engine)
        finally:
            await engine.dispose()
        return {"success": True, "message": "Database initialized"}

    pipeline = await create_pipeline(args.database_url)
    try:
        if args.command == "add-business":
            business = BusinessProfile(
                business_id=args.business_id,
                name=args.name,
                google_place_id=args.google_place_id,
                yelp_business_id=args.yelp_id,
                tripadvisor_url=args.tripadvisor_url,
                subreddits=args.subreddit,
            )
            await pipeline.store.save_business(business)
            return {
                "success": True,
                "business_id": business.business_id,
                "connected_platforms": [p.value for p in business.connected_platforms()],
            }

        if args.command == "sync":
            if args.platform:
                return await sync_platform(pipeline.orchestrator, args.business_id, args.platform)
            return await sync_all_platforms(pipeline.orchestrator, args.business_id)

        if args.command == "analyze-missing":
            return await analyze_missing_reviews(pipeline.enrichment, args.business_id, args.limit)
    finally:
        await pipeline.close()

    raise ValueError(f"Unknown command: {args.command}")


def main(argv=None) -> int:
    """
    Main entry point

    Returns 0 when the command succeeded and 1 otherwise. Results are
    printed as JSON so they can be piped into other tools.
    """
    args = build_parser().parse_args(argv)
    try:
        logger.info("=" * 60)
        logger.info(f"Review Sync - {args.command}")
        logger.info("=" * 60)

        result = asyncio.run(run_command(args))
        print(json.dumps(result, indent=2, default=str))
        return 0 if result.get("success") else 1

    except Exception as e:
        # If something goes wrong, log the error and return 1 (error code)
        logger.error(f"Error running {args.command}: {e}", exc_info=True)
        return 1


if __name__ == "__main__":
    sys.exit(main())
