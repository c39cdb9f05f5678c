"""Command-line entry point for ingesting one document.

Usage:
    docqa-ingest --file docs/faq.txt --name "FAQ"
    docqa-ingest --file docs/handbook.pdf --name "Handbook" --url https://example.org/handbook.pdf
"""
import argparse
import asyncio
import sys
from datetime import datetime
from pathlib import Path
from typing import List, Optional

import structlog

from docqa import config
from docqa.errors import DocQAError
from docqa.rag.embedder import get_embedder
from docqa.rag.extract import read_source
from docqa.rag.ingest import IngestPipeline
from docqa.rag.store import KnowledgeStore

logger = structlog.get_logger()


class ArgumentParser(argparse.ArgumentParser):
    """argparse parser that exits with status 1 on usage errors."""

    def error(self, message):
        self.print_usage(sys.stderr)
        self.exit(1, f"{self.prog}: error: {message}\n")


class ProgressReporter:
    """Simple progress reporter for CLI."""

    def __init__(self, quiet: bool = False):
        self.quiet = quiet
        self.start_time = None

    def start(self, message: str):
        """Start progress reporting."""
        self.start_time = datetime.now()
        if not self.quiet:
            print(f"\n{'=' * 60}")
            print(f"  {message}")
            print(f"{'=' * 60}\n")

    def update(self, stored: int, total: int):
        """Update progress."""
        if self.quiet:
            return
        percentage = (stored / total) * 100 if total > 0 else 0
        bar_length = 40
        filled = int(bar_length * stored / total) if total > 0 else 0
        bar = "█" * filled + "░" * (bar_length - filled)
        print(f"\r  [{bar}] {percentage:5.1f}% ({stored}/{total} chunks)", end="", flush=True)

    def finish(self, document_id: int, stats: dict, chunk_stats: dict = None):
        """Finish progress reporting."""
        elapsed_seconds = (datetime.now() - self.start_time).total_seconds()
        if not self.quiet:
            print("\n")
            print(f"  📝 Chunks stored:        {stats['chunks_created']}")
            if chunk_stats:
                print(
                    f"  📏 Chunk sizes:          {chunk_stats['min_chunk_size']}"
                    f" min / {chunk_stats['avg_chunk_size']} avg / "
                    f"{chunk_stats['max_chunk_size']} max chars"
                )
            print(f"  🧮 Embeddings generated: {stats['embeddings_generated']}")
            print(f"  ⏱️  Time elapsed:         {elapsed_seconds:.1f}s\n")
            print("🎉 Ingestion complete.")
        print(f"document_id: {document_id}")


def build_parser() -> ArgumentParser:
    parser = ArgumentParser(
        prog="docqa-ingest",
        description="Ingest a .pdf, .txt or .md document into the knowledge store",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  docqa-ingest --file docs/faq.txt --name "FAQ"
  docqa-ingest --file docs/rules.pdf --name "Rules" --url https://example.org/rules.pdf
        """,
    )

    parser.add_argument("--file", required=True, type=Path, help="Source document path")
    parser.add_argument("--name", required=True, help="Display name used in citations")
    parser.add_argument("--url", default=None, help="Link to the original document")
    parser.add_argument(
        "--size",
        type=int,
        default=config.CHUNK_SIZE,
        help=f"Chunk size in characters (default: {config.CHUNK_SIZE})",
    )
    parser.add_argument(
        "--overlap",
        type=int,
        default=config.CHUNK_OVERLAP,
        help=f"Chunk overlap in characters (default: {config.CHUNK_OVERLAP})",
    )
    parser.add_argument(
        "--batch-size",
        type=int,
        default=config.INGEST_BATCH_SIZE,
        help=f"Chunks embedded per batch (default: {config.INGEST_BATCH_SIZE})",
    )
    parser.add_argument("--uploaded-by", default="ingest-script", help="Uploader recorded on the document")
    parser.add_argument(
        "--embedding-backend",
        choices=("local", "ollama", "gemini"),
        default=None,
        help=f"Embedding backend (default: {config.EMBEDDING_BACKEND})",
    )
    parser.add_argument("--quiet", "-q", action="store_true", help="Only print the document id")

    return parser


async def run(args: argparse.Namespace) -> int:
    """Ingest the document described by parsed arguments; return the exit code."""
    progress = ProgressReporter(quiet=args.quiet)

    try:
        file_path = args.file if args.file.is_absolute() else Path.cwd() / args.file
        source = read_source(file_path)

        embedder = get_embedder(args.embedding_backend)
        store = KnowledgeStore(await embedder.get_dimension())
        pipeline = IngestPipeline(store, embedder, batch_size=args.batch_size)

        if not args.quiet:
            print(f"📄 File: {file_path}")
            print(f"   Embedding backend: {embedder.name} ({store.dimension}-d)")
            print(f"   Chunk size / overlap: {args.size} / {args.overlap}")

        progress.start(f"Ingesting {args.name}")

        document_id = await pipeline.ingest(
            source.text,
            args.name,
            source_url=args.url,
            chunk_size=args.size,
            chunk_overlap=args.overlap,
            file_name=source.file_name,
            uploaded_by=args.uploaded_by,
            progress_callback=progress.update,
        )

        progress.finish(document_id, pipeline.stats, pipeline.chunk_stats)
        return 0

    except KeyboardInterrupt:
        print("\n\n⚠️  Ingestion cancelled by user.\n", file=sys.stderr)
        return 1

    except DocQAError as e:
        print(f"\n❌ Error: {e}\n", file=sys.stderr)
        logger.error("ingest_cli_failed", error=str(e), error_type=type(e).__name__)
        return 1

    except Exception as e:
        print(f"\n❌ Error: {e}\n", file=sys.stderr)
        logger.exception("ingest_cli_crashed", error=str(e), error_type=type(e).__name__)
        return 1


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point for the ingestion CLI."""
    config.configure_logging()
    args = build_parser().parse_args(argv)
    return asyncio.run(run(args))


if __name__ == "__main__":
    sys.exit(main())
