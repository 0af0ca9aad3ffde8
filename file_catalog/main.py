import argparse
import logging
import sys
from pathlib import Path

from . import config
from .core import CatalogApp
from .ignore import build_ignore_matcher
from .models import ScanOptions

def setup_logging(state_dir: Path, verbose: bool):
    """Sets up logging to both console and a file in the state directory."""
    log_level = logging.DEBUG if verbose else logging.INFO

    # Create the state dir up front so we can log there
    state_dir.mkdir(parents=True, exist_ok=True)
    log_file = state_dir / config.LOG_FILENAME

    logging.basicConfig(
        level=log_level,
        format="%(asctime)s [%(levelname)s] %(message)s",
        handlers=[
            logging.FileHandler(log_file, encoding='utf-8'),
            logging.StreamHandler(sys.stdout)
        ]
    )

def parse_args(argv=None):
    p = argparse.ArgumentParser(description="File Catalog: incremental directory indexer")

    p.add_argument("root", type=Path, help="Directory to catalog")
    p.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging")

    p.add_argument("--db", type=Path, default=None, help="Custom path for SQLite DB (default: root/.file-catalog/catalog.db)")
    p.add_argument("--json", type=Path, default=None, help="Custom path for the JSON snapshot (default: root/.file-catalog/catalog.json)")

    p.add_argument("--max-depth", type=int, default=-1, help="Maximum directory depth below root (-1 = unlimited)")
    p.add_argument("--follow-symlinks", action="store_true", help="Descend into symlinked directories")
    p.add_argument("--full", action="store_true", help="Reprocess every file, ignoring stored state")
    p.add_argument("--workers", type=int, default=config.DEFAULT_MAX_WORKERS, help="Worker threads for hashing")
    p.add_argument("--timeout", type=float, default=None, help="Stop scanning after this many seconds")
    p.add_argument("--prune", action="store_true", help="Remove records for files deleted from disk")

    p.add_argument("--no-gitignore", action="store_true", help="Do not apply the root's .gitignore")
    p.add_argument("--global-gitignore", action="store_true", help="Also apply ~/.gitignore")
    p.add_argument("--ignore", action="append", default=[], metavar="PATTERN", help="Extra gitignore-style pattern (repeatable)")
    p.add_argument("--ignore-file", type=Path, default=None, help="File containing extra ignore patterns")

    p.add_argument("--no-progress", action="store_true", help="Hide the progress bar")

    return p.parse_args(argv)

def main(argv=None):
    args = parse_args(argv)

    # 1. Setup
    root = args.root.resolve()
    if not root.is_dir():
        print(f"Error: {root} is not a directory.", file=sys.stderr)
        sys.exit(1)

    state_dir = root / config.STATE_DIRNAME
    setup_logging(state_dir, args.verbose)

    logging.info("=== File Catalog Started ===")
    logging.info(f"Root: {root}")

    # 2. Config
    db_path = args.db if args.db else state_dir / config.DB_FILENAME
    json_path = args.json if args.json else state_dir / config.SNAPSHOT_FILENAME

    matcher = build_ignore_matcher(
        root,
        respect_gitignore=not args.no_gitignore,
        include_global=args.global_gitignore,
        extra_patterns=args.ignore,
        extra_files=[args.ignore_file] if args.ignore_file else None,
    )
    options = ScanOptions(
        max_depth=args.max_depth,
        follow_symlinks=args.follow_symlinks,
        incremental=not args.full,
        ignore=matcher,
        max_workers=max(1, args.workers),
        timeout=args.timeout,
    )

    # 3. Execution
    app = CatalogApp(db_path, snapshot_path=json_path)

    try:
        result = app.analyze(root, options, prune=args.prune, progress=not args.no_progress)
    except KeyboardInterrupt:
        logging.warning("Operation cancelled by user.")
        sys.exit(1)
    except Exception:
        logging.exception("Fatal error during analysis.")
        sys.exit(1)

    # 4. Summary
    stats = result.stats
    level = logging.WARNING if stats.errors else logging.INFO
    logging.log(level, "=== Summary ===")
    logging.log(level, f"Total files:      {stats.total_files}")
    logging.log(level, f"New:              {stats.new_files}")
    logging.log(level, f"Modified:         {stats.modified_files}")
    logging.log(level, f"Unchanged:        {stats.unchanged_files}")
    logging.log(level, f"Errors:           {stats.errors}")
    logging.log(level, f"Skipped symlinks: {stats.skipped_symlinks}")
    if stats.timed_out:
        logging.warning("Scan stopped early: timeout reached.")

    if stats.errors:
        sys.exit(2)

if __name__ == "__main__":
    main()
