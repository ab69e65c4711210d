#!/usr/bin/env python
"""Re-ingest stored documents into the vector store.

Usage:
    python scripts/reindex.py                  # Re-ingest every document
    python scripts/reindex.py --document 12    # Re-ingest one document
    python scripts/reindex.py --rebuild        # Clear all chunks first
"""
import argparse
import asyncio
import sys
import time
from pathlib import Path

# Add parent directory to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent))

from knowhub import config, db
from knowhub.errors import KnowHubError
from knowhub.llm_client import OllamaClient
from knowhub.log import configure_logging
from knowhub.models import Document
from knowhub.rag.ingest import IngestionCoordinator
from knowhub.rag.store import VectorStore
import structlog

logger = structlog.get_logger()


class ProgressReporter:
    """Prints one line per document and a closing summary."""

    def __init__(self, verbose: bool = False):
        self.verbose = verbose
        self.started = time.monotonic()

    def update(self, current: int, total: int, name: str):
        if self.verbose or current == total:
            print(f"  [{current}/{total}] {name}")

    def finish(self, stats: dict, failed: int):
        elapsed = time.monotonic() - self.started
        print(
            f"\nReindexed {stats['documents_ingested']} document(s) into "
            f"{stats['chunks_created']} chunk(s) in {elapsed:.1f}s"
        )
        if stats["documents_discarded"]:
            print(f"Skipped {stats['documents_discarded']} document(s) deleted during reindexing")
        if failed:
            print(f"Failed: {failed} document(s), see logs for details")


async def reindex(document_ids, rebuild: bool, progress: ProgressReporter) -> int:
    """Re-ingest documents one after another.

    Returns:
        Number of documents that failed
    """
    db.init_database()
    llm = OllamaClient()
    dimension = config.EMBEDDING_DIMENSION or await llm.detect_embedding_dimension()

    if rebuild:
        db.clear_all_chunks()

    store = VectorStore(dimension)
    await store.load()
    coordinator = IngestionCoordinator(store, llm)

    if document_ids:
        rows = [db.get_document(doc_id) for doc_id in document_ids]
        missing = [doc_id for doc_id, row in zip(document_ids, rows) if row is None]
        if missing:
            raise KnowHubError(f"Unknown document id(s): {missing}")
    else:
        rows = db.list_documents()

    documents = [Document.from_row(row) for row in rows]
    failed = 0

    for idx, document in enumerate(documents, 1):
        progress.update(idx, len(documents), document.display_name)
        try:
            await coordinator.ingest(document)
        except KnowHubError as e:
            failed += 1
            logger.error("document_reindex_failed", document_id=document.id, error=str(e))

    progress.finish(coordinator.stats, failed)
    return failed


async def main():
    """Main entry point for reindex script."""
    parser = argparse.ArgumentParser(
        description="Re-ingest stored documents into the vector store",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python scripts/reindex.py                  # Re-ingest every document
  python scripts/reindex.py --document 12    # Re-ingest one document
  python scripts/reindex.py --rebuild        # Clear all chunks first
        """,
    )

    parser.add_argument(
        "--document",
        type=int,
        action="append",
        dest="document_ids",
        help="Document id to re-ingest (repeatable, default: all)",
    )

    parser.add_argument(
        "--rebuild",
        action="store_true",
        help="Delete every stored chunk before re-ingesting",
    )

    parser.add_argument(
        "--verbose",
        "-v",
        action="store_true",
        help="Show verbose progress output",
    )

    args = parser.parse_args()
    configure_logging("DEBUG" if args.verbose else "WARNING")

    try:
        print(
            f"Reindexing {db.DB_PATH} with {config.EMBEDDING_MODEL} "
            f"(chunk size {config.CHUNK_SIZE}, overlap {config.CHUNK_OVERLAP})"
        )

        if args.rebuild:
            print("Rebuild mode clears every stored chunk; Ctrl+C within 3 seconds to cancel")
            await asyncio.sleep(3)

        progress = ProgressReporter(verbose=args.verbose)
        failed = await reindex(args.document_ids, args.rebuild, progress)

        if failed > 0:
            sys.exit(1)

    except KeyboardInterrupt:
        print("\nReindexing cancelled")
        sys.exit(1)

    except KnowHubError as e:
        print(f"Error: {e}", file=sys.stderr)
        logger.error("reindex_script_failed", error=str(e), error_type=type(e).__name__)
        sys.exit(1)


if __name__ == "__main__":
    asyncio.run(main())
