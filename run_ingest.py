import argparse
import json

from homematch import config
from homematch.errors import HomeMatchError


def parse_args(argv=None):
    parser = argparse.ArgumentParser(description="Run one Zillow ingestion pass into the properties table.")
    parser.add_argument("locations", nargs="*",
                        help='locations such as "Austin, TX" (default: INGEST_LOCATIONS)')
    parser.add_argument("--max-pages", type=int, default=None)
    parser.add_argument("--fetch-images", action="store_true", default=None,
                        help="also fetch each listing's photo set (default: INGEST_FETCH_IMAGES)")
    parser.add_argument("--init-schema", action="store_true",
                        help="create missing tables on POSTGRES_URL first")
    return parser.parse_args(argv)


def main(argv=None):
    args = parse_args(argv)

    if args.init_schema:
        from homematch.db import init_schema
        init_schema()

    from homematch.services import run_zillow_ingest
    locations = args.locations or config.INGEST_LOCATIONS
    print(f"Running Zillow ingest for {len(locations)} location(s)...")
    try:
        summary = run_zillow_ingest(locations, args.max_pages, fetch_images=args.fetch_images)
    except (HomeMatchError, ValueError) as e:
        raise SystemExit(f"Ingest failed: {e}")

    print(json.dumps(summary.model_dump(mode="json"), indent=2))
    return summary


if __name__ == "__main__":
    main()
