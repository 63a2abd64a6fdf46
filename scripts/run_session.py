from __future__ import annotations

import argparse
import asyncio
import os
from pathlib import Path

from dotenv import load_dotenv

_REPO_ROOT = Path(__file__).resolve().parents[1]
load_dotenv(_REPO_ROOT / ".env", override=False)

from docflow.adapters.extraction_mock import MockExtractionAdapter
from docflow.container import build_services
from docflow.domain.errors import NothingToExportError
from docflow.domain.models import Owner, UploadedDocument
from docflow.logging_config import setup_logging


async def _run(args: argparse.Namespace) -> None:
    services = build_services(
        args.sqlite,
        storage_root=args.storage_root,
        extraction=MockExtractionAdapter() if args.mock else None,
    )
    session_service = services["session_service"]
    storage = services["storage"]

    if storage.get_owner(args.owner) is None:
        session_service.register_owner(
            Owner(owner_id=args.owner, display_name=args.owner_name, balance=args.balance)
        )

    documents = [
        UploadedDocument(file_name=path.name, data=path.read_bytes()) for path in args.files
    ]
    try:
        session = await session_service.create_session(args.owner, documents, model_id=args.model)
        print(f"Session {session.session_id}: {session.total_pages} page(s) queued")
        await session_service.enqueue_session(session.session_id)

        status = session_service.get_session_status(session.session_id)
        print(f"State: {status.state.value} ({status.processed_count}/{status.total_count} pages)")
        for result in session_service.get_job_results(session.session_id):
            print(f"- {result.file_name} -> {result.new_file_name or '(not renamed)'}")
            for name, value in result.fields.items():
                print(f"    {name}: {value}")
        for job in storage.list_jobs(session.session_id, children_only=True):
            if job.error:
                print(f"! {job.file_name}: {job.error}")
        if args.export:
            try:
                export = await services["export_service"].export_session(session.session_id)
            except NothingToExportError as exc:
                print(f"Export skipped: {exc}")
            else:
                print(f"Export: {export.access_url} ({export.file_count} file(s))")
    finally:
        await session_service.shutdown()
        close = getattr(services["extraction"], "aclose", None)
        if close is not None:
            await close()


def main() -> None:
    parser = argparse.ArgumentParser(description="Submit PDFs as one session and wait for results.")
    parser.add_argument("files", nargs="+", type=Path, help="PDF files to process")
    parser.add_argument("--owner", default="1", help="Owner id (default: 1)")
    parser.add_argument("--owner-name", default="", help="Display name for a new owner")
    parser.add_argument("--balance", type=int, default=100, help="Balance for a new owner")
    parser.add_argument("--model", default=None, help="Extraction model id")
    parser.add_argument("--sqlite", default=os.getenv("SQLITE_PATH", "./docflow.db"))
    parser.add_argument("--storage-root", default=os.getenv("STORAGE_ROOT", "./storage"))
    parser.add_argument("--mock", action="store_true", help="Use the offline extraction mock")
    parser.add_argument(
        "--export", action="store_true", help="Build the results archive and print its URL"
    )
    args = parser.parse_args()

    missing = [str(path) for path in args.files if not path.is_file()]
    if missing:
        raise SystemExit(f"Files not found: {', '.join(missing)}")

    setup_logging()
    asyncio.run(_run(args))


if __name__ == "__main__":
    main()
