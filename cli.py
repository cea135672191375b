"""
CLI utility for managing the EPUB import backend.

Usage:
    python cli.py init-db                   # Create tables and categories
    python cli.py import <path>             # Queue an EPUB import
    python cli.py import <path> --immediate # Import right away
    python cli.py list-jobs                 # List all jobs
    python cli.py list-novels               # List all novels
    python cli.py delete-novel <id>         # Remove a novel and its files
    python cli.py process-queue             # Re-enqueue queued jobs
"""
import argparse
import logging
import os
import sys
from database import SessionLocal, init_db
from models import ImportJob, Novel, ImportStatus
from import_queue import ImportQueue, process_job
from importer import EpubImporter, ImportConfig
from config import settings


def cmd_init_db(args):
    """Create database tables."""
    init_db()
    print("✓ Database initialized")


def cmd_import(args):
    """Create an import job for an EPUB file."""
    path = os.path.abspath(args.path)

    if not os.path.isfile(path):
        print(f"Error: file not found: {path}")
        sys.exit(1)

    db = SessionLocal()
    try:
        job = ImportJob(
            source_path=path,
            filename=args.filename or os.path.basename(path),
            status=ImportStatus.QUEUED,
        )
        db.add(job)
        db.commit()

        print(f"Created job {job.id} for {path}")
        job_id = job.id
    finally:
        db.close()

    if args.immediate:
        print("Processing job...")
        if process_job(job_id):
            print("✓ Job completed successfully")
        else:
            print("✗ Job failed")
            sys.exit(1)
    elif ImportQueue().enqueue_job(job_id):
        print("Job queued")
    else:
        print("✗ Could not queue job")
        sys.exit(1)


def cmd_list_jobs(args):
    """List all import jobs."""
    db = SessionLocal()
    try:
        jobs = db.query(ImportJob).order_by(
            ImportJob.created_at.desc()
        ).limit(args.limit).all()

        print(f"\n{'ID':<5} {'Status':<20} {'File':<40} {'Progress':<10}")
        print("-" * 77)

        for job in jobs:
            filename = job.filename[:37] + "..." if len(job.filename) > 40 else job.filename
            progress = f"{job.progress_current}/{job.progress_total}"
            print(f"{job.id:<5} {job.status.value:<20} {filename:<40} {progress:<10}")

            if job.error_message:
                print(f"      Error: {job.error_message[:80]}")

        print(f"\nTotal: {len(jobs)} jobs")

    finally:
        db.close()


def cmd_list_novels(args):
    """List all novels."""
    db = SessionLocal()
    try:
        novels = db.query(Novel).order_by(
            Novel.created_at.desc()
        ).limit(args.limit).all()

        print(f"\n{'ID':<5} {'Name':<40} {'Author':<25} {'Chapters':<10}")
        print("-" * 80)

        for novel in novels:
            name = novel.name[:37] + "..." if len(novel.name) > 40 else novel.name
            author = (novel.author or "")[:25]
            print(f"{novel.id:<5} {name:<40} {author:<25} {len(novel.chapters):<10}")

        print(f"\nTotal: {len(novels)} novels")

    finally:
        db.close()


def cmd_delete_novel(args):
    """Delete a novel and its storage directory."""
    importer = EpubImporter(ImportConfig.from_settings(settings))
    if importer.delete_novel(args.novel_id):
        print(f"✓ Deleted novel {args.novel_id}")
    else:
        print(f"Novel {args.novel_id} not found (storage directory removed if present)")


def cmd_process_queue(args):
    """Re-enqueue all queued jobs."""
    print("Processing queued jobs...")

    count = ImportQueue().process_queued_jobs()

    print(f"Enqueued {count} jobs")


def main():
    """Main CLI entry point."""
    logging.basicConfig(
        level=getattr(logging, settings.log_level),
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )

    parser = argparse.ArgumentParser(
        description="EPUB Import Backend CLI"
    )

    subparsers = parser.add_subparsers(dest="command", help="Command to run")

    # Init command
    init_parser = subparsers.add_parser("init-db", help="Create database tables")
    init_parser.set_defaults(func=cmd_init_db)

    # Import command
    import_parser = subparsers.add_parser("import", help="Import an EPUB file")
    import_parser.add_argument("path", help="Path of the EPUB file")
    import_parser.add_argument(
        "--filename",
        help="Name used as title when the EPUB has none (defaults to the file name)"
    )
    import_parser.add_argument(
        "--immediate",
        action="store_true",
        help="Process job immediately (don't queue)"
    )
    import_parser.set_defaults(func=cmd_import)

    # List jobs command
    list_jobs_parser = subparsers.add_parser("list-jobs", help="List import jobs")
    list_jobs_parser.add_argument(
        "--limit",
        type=int,
        default=20,
        help="Maximum number of jobs to show"
    )
    list_jobs_parser.set_defaults(func=cmd_list_jobs)

    # List novels command
    list_novels_parser = subparsers.add_parser("list-novels", help="List novels")
    list_novels_parser.add_argument(
        "--limit",
        type=int,
        default=20,
        help="Maximum number of novels to show"
    )
    list_novels_parser.set_defaults(func=cmd_list_novels)

    # Delete novel command
    delete_parser = subparsers.add_parser("delete-novel", help="Delete a novel and its files")
    delete_parser.add_argument("novel_id", type=int, help="Novel ID")
    delete_parser.set_defaults(func=cmd_delete_novel)

    # Process queue command
    process_queue_parser = subparsers.add_parser(
        "process-queue",
        help="Re-enqueue all queued jobs"
    )
    process_queue_parser.set_defaults(func=cmd_process_queue)

    args = parser.parse_args()

    if not args.command:
        parser.print_help()
        sys.exit(1)

    args.func(args)


if __name__ == "__main__":
    main()
