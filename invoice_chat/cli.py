"""Command-line interface for administration tasks.

Subcommands create the schema, ingest invoice images for an existing user,
export a document's PDF report and purge a user's documents.
"""

import argparse
import mimetypes
import sys
from pathlib import Path

from invoice_chat.api.app import Components, build_components
from invoice_chat.core.ownership import Ok
from invoice_chat.db import repository
from invoice_chat.db.database import build_engine, init_db
from invoice_chat.errors import InvoiceChatError, ReportRenderError
from invoice_chat.storage.uploads import save_upload
from invoice_chat.utils.config import AppConfig, load_config
from invoice_chat.utils.logger import get_logger, setup_logging

logger = get_logger(__name__)

_SUPPORTED_EXTENSIONS = ("*.png", "*.jpg", "*.jpeg")


def _find_images(paths: list[Path]) -> list[Path]:
    """Expand directories into the images they contain.

    Args:
        paths: Files and/or directories given on the command line.

    Returns:
        Sorted list of image paths.
    """
    files: set[Path] = set()
    for path in paths:
        if path.is_dir():
            for ext in _SUPPORTED_EXTENSIONS:
                files.update(path.glob(ext))
                files.update(path.glob(ext.upper()))
        else:
            files.add(path)
    return sorted(files)


def _resolve_user_id(components: Components, email: str) -> int:
    with components.session_factory() as session:
        user = repository.get_user_by_email(session, email.strip().lower())
    if user is None:
        print(f"Error: no user registered with email {email}", file=sys.stderr)
        sys.exit(1)
    return user.id


def ingest(
    components: Components, email: str, paths: list[Path], verbose: bool = False
) -> dict[str, int]:
    """Upload and OCR images on behalf of a user.

    Args:
        components: Wired services.
        email: Owner of the new documents.
        paths: Image files or directories.
        verbose: Whether to print per-file progress.

    Returns:
        Summary dict with total, successful, and failed counts.
    """
    user_id = _resolve_user_id(components, email)
    files = _find_images(paths)
    successful = 0
    failed = 0

    for i, file_path in enumerate(files, 1):
        if verbose:
            print(f"Ingesting [{i}/{len(files)}]: {file_path.name}")
        mime_type, _ = mimetypes.guess_type(file_path.name)
        try:
            upload = save_upload(
                components.config.storage,
                file_path.name,
                mime_type,
                file_path.read_bytes(),
            )
            with components.session_factory() as session:
                document = components.documents.create_and_ocr(session, user_id, upload)
            logger.info("Ingested %s as document %s", file_path.name, document.id)
            successful += 1
        except (InvoiceChatError, OSError) as exc:
            logger.error("Failed to ingest %s: %s", file_path.name, exc)
            failed += 1

    summary = {"total": len(files), "successful": successful, "failed": failed}
    print(
        f"Total: {summary['total']}  Successful: {summary['successful']}  "
        f"Failed: {summary['failed']}"
    )
    return summary


def export(
    components: Components, email: str, document_id: int, output: Path
) -> Path:
    """Write the PDF report of one document to ``output``."""
    user_id = _resolve_user_id(components, email)
    try:
        with components.session_factory() as session:
            access = components.reports.export_pdf_for_user(
                session, user_id, document_id
            )
    except ReportRenderError as exc:
        print(f"Error: {exc}", file=sys.stderr)
        sys.exit(1)
    if not isinstance(access, Ok):
        print(f"Error: {access.message}", file=sys.stderr)
        sys.exit(1)

    output.parent.mkdir(parents=True, exist_ok=True)
    output.write_bytes(access.value)
    print(f"Report written to {output}")
    return output


def purge(components: Components, email: str) -> int:
    """Delete every document of a user; returns the number deleted."""
    user_id = _resolve_user_id(components, email)
    with components.session_factory() as session:
        result = components.cleanup.delete_all_for_user(session, user_id)
    print(f"Deleted {result.deleted} documents")
    return result.deleted


def main(argv: list[str] | None = None, config: AppConfig | None = None) -> None:
    """Parse CLI arguments and dispatch to the appropriate command.

    Args:
        argv: Command-line arguments (defaults to sys.argv).
        config: Pre-built configuration; loaded from ``--config`` otherwise.
    """
    parser = argparse.ArgumentParser(
        description="Invoice Chat administration",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument("-c", "--config", type=Path, default=None)

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    subparsers.add_parser("init-db", help="Create database tables")

    ingest_parser = subparsers.add_parser("ingest", help="OCR images for a user")
    ingest_parser.add_argument("email", help="Owner's email")
    ingest_parser.add_argument("paths", type=Path, nargs="+", help="Images or folders")
    ingest_parser.add_argument(
        "-v", "--verbose", action="store_true", help="Verbose output"
    )

    export_parser = subparsers.add_parser("export", help="Export a PDF report")
    export_parser.add_argument("email", help="Owner's email")
    export_parser.add_argument("document_id", type=int, help="Document id")
    export_parser.add_argument(
        "-o",
        "--output",
        type=Path,
        default=Path("document-export.pdf"),
        help="Output PDF file (default: document-export.pdf)",
    )

    purge_parser = subparsers.add_parser("purge", help="Delete all of a user's documents")
    purge_parser.add_argument("email", help="Owner's email")

    args = parser.parse_args(argv)

    if args.command is None:
        parser.print_help()
        sys.exit(0)

    config = config or load_config(args.config)
    setup_logging(config.log_level)

    if args.command == "init-db":
        init_db(build_engine(config.database))
        print("Database initialized")
        return

    components = build_components(config)
    if args.command == "ingest":
        missing = [p for p in args.paths if not p.exists()]
        if missing:
            print(f"Error: {missing[0]} does not exist", file=sys.stderr)
            sys.exit(1)
        ingest(components, args.email, args.paths, args.verbose)
    elif args.command == "export":
        export(components, args.email, args.document_id, args.output)
    elif args.command == "purge":
        purge(components, args.email)


if __name__ == "__main__":
    main()
