"""
Ingest local documents for a user session.

Runs the same extract -> chunk -> embed -> store pipeline as
`POST /upload`, reading configuration from `.env`.

    python scripts/ingest_documents.py report.pdf notes.md --user-id alice --session-id s1
"""

import argparse
import asyncio
import mimetypes
import sys
from pathlib import Path

from dotenv import load_dotenv
load_dotenv()

from docchat.config import Settings
from docchat.core.container import ServiceContainer
from docchat.core.logging import configure_logging
from docchat.ingestion.pipeline import IncomingFile


def parse_args(argv=None):
    parser = argparse.ArgumentParser(description="Ingest local documents into the vector store.")
    parser.add_argument("paths", nargs="+", type=Path, help="Files to ingest")
    parser.add_argument("--user-id", required=True)
    parser.add_argument("--session-id", required=True)
    return parser.parse_args(argv)


async def main(argv=None) -> int:
    args = parse_args(argv)
    settings = Settings()
    configure_logging(settings.log_level)

    files = []
    for path in args.paths:
        if not path.is_file():
            print(f"Skipping {path}: not a file")
            continue
        mime_type, _ = mimetypes.guess_type(path.name)
        files.append(IncomingFile(file_name=path.name, mime_type=mime_type, data=path.read_bytes()))

    if not files:
        print("No files to ingest.")
        return 1

    print("Initializing services...")
    container = ServiceContainer(settings)
    await container.init()

    try:
        report = await container.upload_service.process_batch(
            files, user_id=args.user_id, session_id=args.session_id
        )
    finally:
        await container.close()

    for result in report.results:
        print(f"[{result.status}] {result.file_name}: {result.message}")

    summary = report.summary
    print(
        f"Done. {summary.total_chunks} chunks from {summary.total_files} files "
        f"({summary.embedding_model}, {summary.embedding_dimension} dims)."
    )
    return 0 if all(r.status == "success" for r in report.results) else 2


if __name__ == "__main__":
    sys.exit(asyncio.run(main()))
