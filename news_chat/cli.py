"""
Command-Line Interface for the News Chat backend

Provides CLI commands for:
- Running the HTTP API server
- Ingesting news feeds into the vector store
- Asking a one-off question through the RAG pipeline
- Inspecting session history
- Vector store statistics
"""

import sys
import argparse
import logging

import uvicorn

from .config import ConfigValidationError, get_config
from .services import (
    ServiceInitializationError,
    build_ingestion_pipeline,
    build_services,
    build_vector_store,
)


def setup_logging(verbose: bool = False, level_name: str = "INFO"):
    """Configure logging based on verbosity level."""
    level = logging.DEBUG if verbose else getattr(logging, level_name.upper(), logging.INFO)
    logging.basicConfig(
        level=level,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        datefmt='%Y-%m-%d %H:%M:%S'
    )


def cmd_serve(args):
    """Handle the serve command."""
    from .api.app import create_app

    config = get_config()
    host = args.host or config.host
    port = args.port or config.port

    app = create_app(config=config)
    print(f"Server running on {host}:{port} ({config.environment})")
    uvicorn.run(app, host=host, port=port, log_level=config.log_level.lower())


def cmd_ingest(args):
    """Handle the ingest command."""
    pipeline = build_ingestion_pipeline(show_progress=True)

    if args.clear:
        print("Clearing existing data before ingestion")

    report = pipeline.run(clear=args.clear)

    print(f"\n{'='*60}")
    print("Ingestion Summary:")
    print(f"  Feeds: {report.feeds_total} ({report.feeds_failed} without items)")
    print(f"  Articles collected: {report.articles_collected}")
    print(f"  Batches: {report.batches_total} ({report.batches_failed} failed)")
    print(f"  Skipped empty articles: {report.skipped_empty}")
    print(f"  Documents ingested: {report.documents_upserted}")
    if report.collection_count is not None:
        print(f"  Total documents in collection: {report.collection_count}")
    print(f"{'='*60}")


def cmd_ask(args):
    """Handle the ask command."""
    services = build_services()

    try:
        session_id = args.session or services.chat_service.new_session_id()
        print(f"Question: {args.question}")
        print()

        reply = services.chat_service.handle_message(session_id, args.question)

        print("Answer:")
        print(reply.response)
        print()
        print(f"Context documents: {reply.sources}")
        print(f"Session ID: {reply.session_id}")
        print("(Use this session ID for follow-up questions)")
    finally:
        services.close()


def cmd_history(args):
    """Handle the history command."""
    services = build_services()

    try:
        history = services.chat_service.get_history(args.session_id)
    finally:
        services.close()

    if not history:
        print("No history found for this session.")
        return

    for i, message in enumerate(history, 1):
        print(f"[{i}] {message.timestamp}")
        print(f"    User: {message.user}")
        print(f"    Bot:  {message.bot}")
        print()


def cmd_stats(args):
    """Handle the stats command."""
    vector_store = build_vector_store(get_config())

    try:
        stats = vector_store.get_stats()
        health = vector_store.health_check()
    finally:
        vector_store.close()

    print("="*60)
    print("Vector Store Statistics")
    print("="*60)
    print(f"Collection: {stats['collection']}")
    print(f"Dimension: {stats['dimension']}")
    print(f"Distance: {stats['distance']}")
    if stats['count_available']:
        print(f"Total Documents: {stats['total_documents']}")
    else:
        print("Total Documents: unavailable")
    print(f"Status: {health['status']}")
    print("="*60)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog='news-chat',
        description='News Chat - RAG chat backend over news feeds',
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Start the API server
  news-chat serve --port 5000

  # Ingest the configured feeds, wiping the collection first
  news-chat ingest --clear

  # Ask a question
  news-chat ask "What's happening with interest rates?"

  # Show a session's history
  news-chat history 3f0c1c9e-...

  # View statistics
  news-chat stats
        """
    )

    # Global arguments
    parser.add_argument(
        '--verbose', '-v',
        action='store_true',
        help='Enable verbose logging'
    )

    subparsers = parser.add_subparsers(dest='command', help='Available commands')

    serve_parser = subparsers.add_parser('serve', help='Run the HTTP API server')
    serve_parser.add_argument('--host', help='Bind address (default: HOST or 0.0.0.0)')
    serve_parser.add_argument('--port', type=int, help='Port (default: PORT or 5000)')
    serve_parser.set_defaults(func=cmd_serve)

    ingest_parser = subparsers.add_parser('ingest', help='Ingest news feeds into the vector store')
    ingest_parser.add_argument(
        '--clear',
        action='store_true',
        help='Delete all existing documents before ingesting'
    )
    ingest_parser.set_defaults(func=cmd_ingest)

    ask_parser = subparsers.add_parser('ask', help='Ask a question and get an AI-generated answer')
    ask_parser.add_argument('question', help='Question to ask')
    ask_parser.add_argument('--session', help='Session ID for multi-turn conversation')
    ask_parser.set_defaults(func=cmd_ask)

    history_parser = subparsers.add_parser('history', help='Show chat history for a session')
    history_parser.add_argument('session_id', help='Session ID')
    history_parser.set_defaults(func=cmd_history)

    stats_parser = subparsers.add_parser('stats', help='Display vector store statistics')
    stats_parser.set_defaults(func=cmd_stats)

    return parser


def main(argv=None):
    """Main CLI entry point."""
    parser = build_parser()
    args = parser.parse_args(argv)

    try:
        config = get_config()
    except ConfigValidationError as e:
        setup_logging(args.verbose)
        print(f"\n✗ Error: Invalid configuration: {e}")
        sys.exit(1)

    setup_logging(args.verbose, config.log_level)

    if not args.command:
        parser.print_help()
        sys.exit(1)

    try:
        args.func(args)
    except KeyboardInterrupt:
        print("\n\nInterrupted by user")
        sys.exit(130)
    except ServiceInitializationError as e:
        print(f"\n✗ Failed to initialize services: {e}")
        sys.exit(1)
    except Exception as e:
        print(f"\n✗ Error: {e}")
        if args.verbose:
            import traceback
            traceback.print_exc()
        sys.exit(1)


if __name__ == '__main__':
    main()
