from __future__ import annotations

import argparse
import asyncio
import os
from pathlib import Path

from dotenv import load_dotenv

_REPO_ROOT = Path(__file__).resolve().parents[1]
load_dotenv(_REPO_ROOT / ".env", override=False)

from docflow.container import build_services
from docflow.logging_config import setup_logging


async def _run(args: argparse.Namespace) -> None:
    services = build_services(args.sqlite, storage_root=args.storage_root)
    lifecycle = services["session_lifecycle"]
    try:
        if args.session:
            log = await lifecycle.expire_session(args.session, performed_by=args.performed_by)
            if log is None:
                print(f"Session {args.session} was already expired")
                return
        else:
            log = await lifecycle.sweep_expired(performed_by=args.performed_by)
        print(
            f"{log.status}: sessions={log.sessions_expired}/{log.sessions_processed} "
            f"jobs_expired={log.jobs_expired} blobs_deleted={log.blobs_deleted}"
        )
        for error in log.errors:
            print(f"! {error}")
    finally:
        lifecycle.cancel_all()
        close = getattr(services["extraction"], "aclose", None)
        if close is not None:
            await close()


def main() -> None:
    parser = argparse.ArgumentParser(description="Expire past-due sessions or one session.")
    parser.add_argument("--session", default=None, help="Expire this session now")
    parser.add_argument("--performed-by", default="cli", help="Actor recorded in the audit log")
    parser.add_argument("--sqlite", default=os.getenv("SQLITE_PATH", "./docflow.db"))
    parser.add_argument("--storage-root", default=os.getenv("STORAGE_ROOT", "./storage"))
    args = parser.parse_args()

    setup_logging()
    asyncio.run(_run(args))


if __name__ == "__main__":
    main()
