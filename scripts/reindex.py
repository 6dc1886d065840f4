#!/usr/bin/env python
"""Rebuild the blog vector collection from the blog table.

Needed after changing the embedding model: a collection built with one
dimension can't be loaded with another.

Usage:
    python scripts/reindex.py              # Index every blog into the existing collection
    python scripts/reindex.py --rebuild    # Drop and recreate the collection first
    python scripts/reindex.py --verbose    # Show detailed progress
"""
import argparse
import asyncio
import sys
from pathlib import Path
from datetime import datetime

# Add parent directory to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent))

from app import config
from app.db import BlogRepository
from app.llm_client import OllamaClient
from app.logging_setup import configure_logging
from app.rag.embeddings import OllamaEmbedder
from app.rag.indexer import IndexingCoordinator
from app.rag.store_faiss import FAISSVectorStore
import structlog

logger = structlog.get_logger()


class ProgressReporter:
    """Simple progress reporter for CLI."""

    def __init__(self, verbose: bool = False):
        self.verbose = verbose
        self.start_time = None

    def start(self, message: str):
        self.start_time = datetime.now()
        print(f"\n{'=' * 60}")
        print(f"  {message}")
        print(f"{'=' * 60}\n")

    def update(self, current: int, total: int, blog):
        percentage = (current / total) * 100 if total > 0 else 0
        bar_length = 40
        filled = int(bar_length * current / total) if total > 0 else 0
        bar = "#" * filled + "-" * (bar_length - filled)

        title = blog.title or f"blog {blog.id}"
        print(
            f"\r  [{bar}] {percentage:5.1f}% ({current}/{total}) {title[:30]:<30}",
            end="",
            flush=True,
        )

        if self.verbose:
            print()

    def finish(self, stats: dict, vector_count: int):
        print("\n")
        elapsed_seconds = (datetime.now() - self.start_time).total_seconds()

        print(f"{'=' * 60}")
        print("  Indexing Complete!")
        print(f"{'=' * 60}\n")
        print(f"  Blogs indexed:     {stats['indexed']}")
        print(f"  Blogs failed:      {stats['failed']}")
        print(f"  Vectors stored:    {vector_count}")
        print(f"  Time elapsed:      {elapsed_seconds:.1f}s")
        print(f"\n{'=' * 60}\n")

        if stats["failed"] > 0:
            print(f"Warning: {stats['failed']} blog(s) failed to index. Check logs for details.\n")


async def main():
    """Main entry point for reindex script."""
    parser = argparse.ArgumentParser(
        description="Rebuild the blog vector collection",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python scripts/reindex.py              # Index into existing collection
  python scripts/reindex.py --rebuild    # Drop and rebuild from scratch
        """,
    )
    parser.add_argument(
        "--rebuild",
        action="store_true",
        help="Drop the collection before indexing (required after a dimension change)",
    )
    parser.add_argument("--verbose", "-v", action="store_true", help="Show verbose progress output")
    parser.add_argument(
        "--collection",
        default=config.COLLECTION_NAME,
        help=f"Collection name (default: {config.COLLECTION_NAME})",
    )

    args = parser.parse_args()
    configure_logging()
    progress = ProgressReporter(verbose=args.verbose)

    try:
        print("\nConfiguration:")
        print(f"   Database:         {config.DB_PATH}")
        print(f"   Index directory:  {config.VECTOR_INDEX_DIR}")
        print(f"   Collection:       {args.collection}")
        print(f"   Embedding model:  {config.EMBEDDING_MODEL}")

        repository = BlogRepository()
        repository.init_database()

        embedder = OllamaEmbedder(OllamaClient(), dimension=config.EMBEDDING_DIMENSION)
        await embedder.start()

        store = FAISSVectorStore()
        if args.rebuild:
            await store.drop_collection(args.collection)
        await store.ensure_collection(args.collection, embedder.dimension)

        coordinator = IndexingCoordinator(embedder, store)

        progress.start(f"{'Rebuilding' if args.rebuild else 'Indexing'} {repository.count()} blogs")
        stats = await coordinator.reindex_all(
            repository.find_all(),
            progress_callback=progress.update,
        )
        progress.finish(stats, store.count())

        await embedder.close()

        if stats["failed"] > 0:
            sys.exit(1)

    except KeyboardInterrupt:
        print("\n\nIndexing cancelled by user.\n")
        sys.exit(1)

    except Exception as e:
        print(f"\nError: {e}\n")
        logger.error("reindex_script_failed", error=str(e), error_type=type(e).__name__)
        sys.exit(1)


if __name__ == "__main__":
    asyncio.run(main())
