"""CLI entry point for the job ranking engine."""

import argparse
import json
import logging
import sys
from pathlib import Path
from typing import Any

import yaml
from pydantic import ValidationError

from src.core.config import Settings
from src.core.errors import DependencyError, FilterValidationError
from src.core.schemas import CandidateRecord
from src.pipeline.orchestrator import build_service, export_page_json
from src.query.predicate import describe
from src.storage.sqlite import SqliteJobStore

logger = logging.getLogger(__name__)


def _add_common(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "--config",
        default=None,
        help="Path to settings YAML file (default: built-in settings)",
    )
    parser.add_argument(
        "--verbose", "-v",
        action="store_true",
        help="Enable verbose (DEBUG) logging",
    )


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Job ranking engine - filter, rank, and paginate job postings",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    # --- load-jobs subcommand ---
    load_parser = subparsers.add_parser("load-jobs", help="Import job documents into SQLite")
    load_parser.add_argument(
        "--input",
        required=True,
        help="Path to a JSON file holding a list of job documents",
    )
    _add_common(load_parser)

    # --- search subcommand ---
    search_parser = subparsers.add_parser("search", help="Run one ranked search")
    search_parser.add_argument(
        "--filters",
        required=True,
        help="Path to a YAML/JSON file with request parameters (filters and sort)",
    )
    search_parser.add_argument(
        "--user",
        default=None,
        help="User ID for personalization and cache identity",
    )
    search_parser.add_argument(
        "--export",
        choices=["json"],
        help="Export the response page to format (json)",
    )
    search_parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Print the normalized criteria and compiled predicate without reading jobs",
    )
    _add_common(search_parser)

    return parser.parse_args(argv)


def setup_logging(verbose: bool) -> None:
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%H:%M:%S",
    )


def load_settings(path: str | None) -> Settings:
    if path is None:
        return Settings()
    return Settings.from_yaml(path)


def read_request(path: str | Path) -> dict[str, Any]:
    path = Path(path)
    if not path.exists():
        msg = f"Request file not found: {path}"
        raise FileNotFoundError(msg)
    raw = yaml.safe_load(path.read_text()) or {}
    if not isinstance(raw, dict):
        msg = f"Request file must contain a mapping: {path}"
        raise ValueError(msg)
    return raw


def cmd_load_jobs(args: argparse.Namespace, settings: Settings) -> None:
    """Handle load-jobs subcommand."""
    path = Path(args.input)
    if not path.exists():
        msg = f"Input file not found: {path}"
        raise FileNotFoundError(msg)
    documents = json.loads(path.read_text())
    if not isinstance(documents, list):
        msg = f"Input file must contain a JSON list: {path}"
        raise ValueError(msg)

    store = SqliteJobStore.open(settings.database.path)
    loaded: list[str] = []
    new_count = 0
    skipped = 0
    for i, doc in enumerate(documents):
        try:
            record = CandidateRecord.model_validate(doc)
        except ValidationError as e:
            skipped += 1
            logger.warning("Skipping job document #%d: %s", i, e.errors()[0]["msg"])
            continue
        if store.upsert(record):
            new_count += 1
        loaded.append(record.job_id)
    store.close()

    service = build_service(settings)
    service.notify_jobs_changed(loaded)
    service.close()

    print(f"Loaded {len(loaded)} jobs ({new_count} new, {skipped} skipped) into "
          f"{settings.database.path}")


def cmd_search(args: argparse.Namespace, settings: Settings) -> None:
    """Handle search subcommand."""
    raw = read_request(args.filters)
    service = build_service(settings)
    try:
        if args.dry_run:
            request = service.prepare(raw, user_id=args.user)
            print("[DRY RUN] Criteria:")
            print(json.dumps(request.criteria.to_raw(), indent=2, sort_keys=True))
            print(f"[DRY RUN] Sort: {request.sort.strategy} ({request.sort.order})")
            print(f"[DRY RUN] Predicate: {describe(request.predicate)}")
            return

        page = service.search(raw, user_id=args.user)
    finally:
        service.close()

    p = page.pagination
    print(f"\nPage {p.page}/{p.total_pages} of {p.total} results "
          f"sorted by {page.sort_meta.description.lower()}"
          f"{' (cached)' if page.sort_meta.cached else ''}")
    for item in page.items:
        job = item.job
        score = f"{item.score:.2f}" if item.score is not None else "-"
        print(f"  [{score}] {job.title} @ {job.company.name or '?'} ({job.location.city or 'n/a'})")
        if item.personalization is not None:
            print(f"         {item.personalization.reason_text}")

    if args.export == "json":
        print(f"\n{export_page_json(page)}")


def main(argv: list[str] | None = None) -> None:
    args = parse_args(argv)
    setup_logging(args.verbose)

    try:
        settings = load_settings(args.config)
    except (FileNotFoundError, ValueError) as e:
        print(f"Error loading config: {e}", file=sys.stderr)
        sys.exit(1)

    try:
        if args.command == "load-jobs":
            cmd_load_jobs(args, settings)
        else:
            cmd_search(args, settings)
    except FilterValidationError as e:
        print("Invalid search request:", file=sys.stderr)
        for v in e.violations:
            print(f"  {v['field']}: {v['message']}", file=sys.stderr)
        sys.exit(2)
    except DependencyError as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(3)
    except (FileNotFoundError, ValueError) as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(1)


if __name__ == "__main__":
    main()
