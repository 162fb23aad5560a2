#!/usr/bin/env python3
"""
Anthill Pro Workflow Migration Tool - Main CLI Entry Point

Walks an Anthill Pro workflow's jobs and steps, records an inventory of what
a migration would translate, and writes a report. Also lists the originating
workflows of projects so the right workflow id can be picked.
"""

import argparse
import logging
import sys
import threading
import time

import yaml
from tqdm import tqdm

from anthill_client import AnthillClient
from config_loader import ConfigLoader, get_nested
from exceptions import ConnectError, GenericMigrationError, MigrationError
from hooks.context import MigrationContext
from hooks.inventory import InventoryLoader
from logger import log_config, log_section, setup_logging
from models import MigrationStatus
from orchestrator import Migration, MigrationReport

__version__ = "1.0.0"

POLL_INTERVAL = 0.2


def create_argument_parser() -> argparse.ArgumentParser:
    """Create and configure the argument parser for CLI."""
    parser = argparse.ArgumentParser(
        description="Migrate Anthill Pro workflows",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Migrate the workflow configured in config.yaml
  python migrate.py --config config.yaml

  # Migrate a specific workflow
  python migrate.py --workflow-id 1234

  # Leave out some step kinds
  python migrate.py --workflow-id 1234 \\
      --skip-kind com.urbancode.anthill3.domain.builder.ant.AntBuildStepConfig

  # List originating workflows of projects matching a name
  python migrate.py --list-workflows "Billing" --limit 20

  # Verbose logging
  python migrate.py -vv
        """
    )

    parser.add_argument(
        '--version',
        action='version',
        version=f'%(prog)s {__version__}'
    )

    parser.add_argument(
        '--config',
        type=str,
        default='config.yaml',
        help='Path to configuration YAML file (default: config.yaml)'
    )

    parser.add_argument(
        '--workflow-id',
        type=int,
        help='Id of the Anthill workflow to migrate (overrides migration.workflow_id)'
    )

    parser.add_argument(
        '--list-workflows',
        metavar='PROJECT',
        type=str,
        help='List originating workflows of projects whose name matches PROJECT and exit'
    )

    parser.add_argument(
        '--limit',
        type=int,
        default=0,
        help='Maximum number of projects --list-workflows may match (default: unlimited)'
    )

    parser.add_argument(
        '--report-path',
        type=str,
        help='Where to write the JSON report (default: migration_report.json)'
    )

    parser.add_argument(
        '--skip-kind',
        action='append',
        default=[],
        metavar='KIND',
        help='Step kind to leave out of the migration; may be repeated'
    )

    parser.add_argument(
        '--host',
        type=str,
        help='Anthill Pro server host (overrides anthill.host)'
    )

    parser.add_argument(
        '--port',
        type=int,
        help='Anthill Pro server port (overrides anthill.port)'
    )

    parser.add_argument(
        '--username',
        type=str,
        help='Anthill Pro username (overrides anthill.username)'
    )

    parser.add_argument(
        '--log-file',
        type=str,
        help='Also write logs to this file, rotated at 10MB (overrides logging.file)'
    )

    parser.add_argument(
        '-v', '--verbose',
        action='count',
        default=0,
        help='Increase verbosity (-v for INFO, -vv for DEBUG)'
    )

    return parser


def list_workflows(migration: Migration, project: str, limit: int) -> int:
    """Print originating workflows of matching projects."""
    workflows = migration.fetch_workflows_for_project_name(project, limit)

    if not workflows:
        print(f"No projects match '{project}'")
        return 0

    for project_name, project_workflows in workflows.items():
        print(project_name)
        for workflow_name, workflow_id in project_workflows.items():
            print(f"  {workflow_id:>8}  {workflow_name}")

    return 0


def _supervise(migration: Migration) -> None:
    """Thread target: run the migration and record anything that escapes it."""
    try:
        migration.run()
    except Exception as e:
        migration.set_error(GenericMigrationError.from_exception(e))


def run_migration(config: dict, args: argparse.Namespace, logger: logging.Logger) -> int:
    """Connect, run the migration on a worker thread and report."""
    try:
        client = AnthillClient.from_config(config)
    except ConnectError as e:
        logger.error(f"Anthill connectivity check failed: {e}")
        return 1

    migration = Migration(client=client, logger=logger)

    try:
        if args.list_workflows:
            return list_workflows(migration, args.list_workflows, args.limit)

        skip_kinds = get_nested(config, 'migration.skip_kinds', [])
        migration.workflow_id = get_nested(config, 'migration.workflow_id')
        migration.set_loader(InventoryLoader(skip_kinds=skip_kinds, logger=logger))
        migration.set_context(MigrationContext())

        logger.info(f"Migrating workflow {migration.workflow_id}, skipping {len(skip_kinds)} step kinds")

        start_time = time.time()
        worker = threading.Thread(target=_supervise, args=(migration,), name='migration', daemon=True)
        worker.start()

        with tqdm(total=100, desc=f"Workflow {migration.workflow_id}", unit='%') as progress_bar:
            while worker.is_alive():
                worker.join(POLL_INTERVAL)
                progress_bar.update(migration.progress - progress_bar.n)
            progress_bar.update(migration.progress - progress_bar.n)

        duration = time.time() - start_time

        report_generator = MigrationReport(logger)
        report = report_generator.generate_report(migration, duration)
        print("\n" + report_generator.format_console_report(report))

        report_path = get_nested(config, 'migration.report_path', 'migration_report.json')
        report_generator.export_json_report(report, report_path)

        csv_path = get_nested(config, 'migration.csv_report_path')
        if csv_path:
            report_generator.export_csv_steps(report, csv_path)

        if migration.status is MigrationStatus.SUCCESS:
            logger.info("Migration completed successfully")
            return 0

        logger.error(f"Migration failed: {migration.error}")
        return 1

    except MigrationError as e:
        logger.error(f"Migration failed: {e}")
        return 1
    finally:
        migration.close()


def main() -> int:
    """Main entry point for the CLI."""
    parser = create_argument_parser()
    args = parser.parse_args()

    try:
        logger = setup_logging(verbosity=args.verbose)

        log_section("Anthill Pro Workflow Migration Tool")
        logger.info(f"Version: {__version__}")

        logger.info(f"Loading configuration from {args.config}")
        config = ConfigLoader.load(args.config)
        config = ConfigLoader.merge_with_args(config, args)
        ConfigLoader.validate(config, listing=bool(args.list_workflows))

        logger = setup_logging(
            verbosity=args.verbose,
            log_file=get_nested(config, 'logging.file'),
            log_format=get_nested(config, 'logging.format'),
            date_format=get_nested(config, 'logging.date_format'),
            level=get_nested(config, 'logging.level')
        )

        log_config(config)

        return run_migration(config, args, logger)

    except FileNotFoundError as e:
        print(f"ERROR: File not found: {e}", file=sys.stderr)
        return 2
    except (ValueError, yaml.YAMLError) as e:
        print(f"ERROR: Configuration error: {e}", file=sys.stderr)
        return 2
    except KeyboardInterrupt:
        print("\nMigration interrupted by user", file=sys.stderr)
        return 130
    except Exception as e:
        print(f"ERROR: Unexpected error: {e}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
