#!/usr/bin/env python
"""
Command-line interface for managing table-backed queues.
"""

import argparse
import importlib
import json
import logging
import sys
from typing import Callable, List, Optional

from .config import Config
from .errors import QueueError
from .queue.monitoring import QueueMonitor
from .worker import QueueWorker

logger = logging.getLogger(__name__)


def _schema_ready(admin) -> bool:
    if not admin.has_tables():
        logger.error("Queue schema not initialized. Run 'init-schema' first.")
        return False
    return True


def cmd_init_schema(config: Config, args) -> int:
    """Initialize the queue tables."""
    admin = config.get_admin()

    if admin.has_tables():
        if args.force:
            logger.warning("Dropping and recreating queue tables...")
            admin.create_tables(drop_if_exist=True)
        else:
            logger.info("Schema already exists. Use --force to recreate.")
            return 1
    else:
        admin.create_tables()

    if admin.validate_schema():
        logger.info("Schema initialized successfully")
        return 0
    logger.error("Schema validation failed")
    return 1


def cmd_create_queue(config: Config, args) -> int:
    admin = config.get_admin()
    if not _schema_ready(admin):
        return 1
    identity = admin.create_queue(args.name)
    print(f"Created queue {identity.name} (queue_id: {identity.queue_id})")
    return 0


def cmd_delete_queue(config: Config, args) -> int:
    admin = config.get_admin()
    if not _schema_ready(admin):
        return 1
    removed = admin.delete_queue(args.name)
    print(f"Deleted queue {args.name} ({removed} element(s) removed)")
    return 0


def cmd_purge_queue(config: Config, args) -> int:
    admin = config.get_admin()
    if not _schema_ready(admin):
        return 1
    removed = admin.purge_queue(args.name)
    print(f"Purged {removed} element(s) from queue {args.name}")
    return 0


def cmd_list_queues(config: Config, args) -> int:
    """List all queues."""
    admin = config.get_admin()
    if not _schema_ready(admin):
        return 1

    queues = admin.list_queues()
    if not queues:
        print("No queues found")
        return 0

    print(f"{'Queue ID':<10} {'Name':<40} {'Elements':<10}")
    print("-" * 62)
    for identity in queues:
        count = admin.retrieve_queue(identity.name).count()
        print(f"{identity.queue_id:<10} {identity.name:<40} {count:<10}")
    return 0


def cmd_status(config: Config, args) -> int:
    """Show queue health."""
    admin = config.get_admin()
    if not _schema_ready(admin):
        return 1

    queue = config.get_queue(args.name, cleanup_timeout=None)
    metrics = QueueMonitor(config.get_store()).collect(queue, stale_after=args.stale_after)

    if args.json:
        print(json.dumps(metrics.to_dict(), indent=2))
        return 0

    print(f"\nQueue Status: {metrics.queue_name} (queue_id: {metrics.queue_id})")
    print("=" * 50)
    print(f"  Total: {metrics.total}")
    print(f"  Pending: {metrics.pending}")
    print(f"  Locked: {metrics.locked}")
    print(f"  Over requeue limit: {metrics.over_requeue_limit}")
    if args.stale_after is not None:
        print(f"  Stale locks (> {args.stale_after}s): {metrics.stale_locks}")
    print(f"  Oldest lock age: {metrics.oldest_lock_age_seconds:.0f}s")
    print(f"  Oldest pending age: {metrics.oldest_pending_age_seconds:.0f}s")
    return 0


def cmd_enqueue(config: Config, args) -> int:
    """Add an element to a queue."""
    try:
        data = json.loads(args.data)
    except json.JSONDecodeError as e:
        logger.error(f"Data must be valid JSON: {e}")
        return 1

    queue = config.get_queue(args.name)
    element_id = queue.enqueue(data)
    print(f"Added element {element_id} to queue {args.name}")
    return 0


def cmd_cleanup(config: Config, args) -> int:
    """Requeue elements locked for longer than the timeout."""
    queue = config.get_queue(args.name, cleanup_timeout=None)
    requeued = queue.cleanup(args.timeout)
    print(f"Requeued {len(requeued)} orphaned element(s)")
    return 0


def load_handler(spec: str) -> Callable:
    """Import a handler given as 'package.module:function'."""
    module_name, _, attr = spec.partition(':')
    if not module_name or not attr:
        raise ValueError(f"Handler must look like 'module:function', got {spec!r}")
    try:
        handler = getattr(importlib.import_module(module_name), attr)
    except AttributeError as e:
        raise ValueError(f"Handler {spec!r} not found: {e}") from e
    if not callable(handler):
        raise ValueError(f"Handler {spec!r} is not callable")
    return handler


def cmd_work(config: Config, args) -> int:
    """Consume a queue with a handler function."""
    handler = load_handler(args.handler)
    cleanup_timeout = args.cleanup_timeout
    if cleanup_timeout is None:
        cleanup_timeout = config.get_queue_options()['cleanup_timeout']

    worker = QueueWorker(
        queue_factory=lambda: config.get_queue(args.name, cleanup_timeout=None),
        handler=handler,
        worker_id=args.worker_id,
        batch_size=args.batch_size,
        poll_interval=args.poll_interval,
        cleanup_timeout=cleanup_timeout,
    )
    stats = worker.run(max_passes=args.max_passes)
    print(f"Processed {stats['processed']} element(s), {stats['failed']} failure(s)")
    return 0


COMMANDS = {
    'init-schema': cmd_init_schema,
    'create-queue': cmd_create_queue,
    'delete-queue': cmd_delete_queue,
    'purge-queue': cmd_purge_queue,
    'list-queues': cmd_list_queues,
    'status': cmd_status,
    'enqueue': cmd_enqueue,
    'cleanup': cmd_cleanup,
    'work': cmd_work,
}


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Table-backed queue management",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Environment Variables:
  TABLEQUEUE_CONFIG_PATH: Path to configuration file (default: ./config.yaml)
  TABLEQUEUE_DATABASE_URL: Database URL overriding the configuration file
        """
    )
    parser.add_argument('--config', '-c', help='Configuration file path')
    parser.add_argument('--log-level', '-l', choices=['DEBUG', 'INFO', 'WARNING', 'ERROR'],
                        help='Logging level (default: from configuration)')

    subparsers = parser.add_subparsers(dest='command', help='Commands')

    init_parser = subparsers.add_parser('init-schema', help='Create queue tables')
    init_parser.add_argument('--force', action='store_true', help='Drop and recreate tables')

    for name, help_text in (('create-queue', 'Create a queue'),
                            ('delete-queue', 'Delete a queue and its elements'),
                            ('purge-queue', 'Remove all elements of a queue')):
        sub = subparsers.add_parser(name, help=help_text)
        sub.add_argument('name', help='Queue name')

    subparsers.add_parser('list-queues', help='List queues')

    status_parser = subparsers.add_parser('status', help='Show queue status')
    status_parser.add_argument('name', help='Queue name')
    status_parser.add_argument('--stale-after', type=int,
                               help='Count locks older than this many seconds as stale')
    status_parser.add_argument('--json', action='store_true', help='Output JSON')

    enqueue_parser = subparsers.add_parser('enqueue', help='Add an element to a queue')
    enqueue_parser.add_argument('name', help='Queue name')
    enqueue_parser.add_argument('data', help='Element data as JSON')

    cleanup_parser = subparsers.add_parser('cleanup', help='Requeue orphaned elements')
    cleanup_parser.add_argument('name', help='Queue name')
    cleanup_parser.add_argument('--timeout', type=int, required=True,
                                help='Lock age in seconds after which an element is orphaned')

    work_parser = subparsers.add_parser('work', help='Process a queue')
    work_parser.add_argument('name', help='Queue name')
    work_parser.add_argument('--handler', required=True, help="Handler as 'module:function'")
    work_parser.add_argument('--worker-id', help='Custom worker ID')
    work_parser.add_argument('--batch-size', type=int, default=10)
    work_parser.add_argument('--poll-interval', type=float, default=5.0)
    work_parser.add_argument('--cleanup-timeout', type=int,
                             help='Requeue elements locked longer than this many seconds '
                                  '(default: queue.cleanup_timeout from configuration)')
    work_parser.add_argument('--max-passes', type=int,
                             help='Stop after this many passes (default: run until interrupted)')

    return parser


def main(argv: Optional[List[str]] = None) -> int:
    """Main CLI entry point."""
    parser = build_parser()
    args = parser.parse_args(argv)

    if not args.command:
        parser.print_help()
        return 1

    try:
        config = Config(args.config)
        config.configure_logging(args.log_level)
        try:
            return COMMANDS[args.command](config, args)
        finally:
            config.close()
    except (QueueError, ValueError, ImportError) as e:
        logger.error(f"Command failed: {e}")
        return 1


if __name__ == '__main__':
    sys.exit(main())
