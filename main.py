import uvicorn
import argparse
import asyncio
import sys
from src.api.app import create_app
from src.core.container import ServiceContainer
from src.processing.document_source import LocalFolderSource
from src.config.settings import settings
from src.utils.errors import AppError
from src.utils.logging import logger

async def sync_documents(source_dir: str):
    """Synchronize the vector index with the documents in source_dir.

    Args:
        source_dir (str): Folder to index

    Returns:
        IndexReport for the run
    """
    container = ServiceContainer(
        source=LocalFolderSource(source_dir, settings.source_extensions_list)
    )
    await container.startup()
    try:
        report = await container.indexer.sync(container.source)
    finally:
        await container.shutdown()

    logger.info(f"Added documents: {len(report.added)}")
    logger.info(f"Updated documents: {len(report.updated)}")
    logger.info(f"Removed documents: {len(report.removed)}")
    logger.info(f"Unchanged documents: {len(report.skipped)}")
    for failure in report.failed:
        logger.error(f"Failed: {failure.document_id}: {failure.error}")

    return report

async def init_database():
    """Create the database schema without contacting the embedding API."""
    container = ServiceContainer()
    await container.startup(check_embeddings=False)
    await container.shutdown()

if __name__ == "__main__":

    parser = argparse.ArgumentParser(description='Docs Expert')
    subparsers = parser.add_subparsers(dest='command', help='Commands')

    # Server command
    server_parser = subparsers.add_parser('serve', help='Run the API server')
    server_parser.add_argument('--host', default='0.0.0.0', help='Host to run the server on')
    server_parser.add_argument('--port', type=int, default=8000, help='Port to run the server on')

    # Indexing command
    sync_parser = subparsers.add_parser('sync', help='Synchronize the index with the document folder')
    sync_parser.add_argument('--source-dir', default=settings.SOURCE_DIR,
                             help='Folder containing the documents to index')

    subparsers.add_parser('init-db', help='Create the database schema')

    args = parser.parse_args()

    try:
        if args.command == 'serve':
            uvicorn.run(create_app(), host=args.host, port=args.port)
        elif args.command == 'sync':
            report = asyncio.run(sync_documents(args.source_dir))
            sys.exit(1 if report.failed else 0)
        elif args.command == 'init-db':
            asyncio.run(init_database())
        else:
            parser.print_help()
    except AppError as e:
        logger.error(f"{args.command} failed: {e}")
        sys.exit(2)
