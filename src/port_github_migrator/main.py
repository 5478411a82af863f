"""
This is the command line entry point of the migrator.

It parses the command, builds the settings and the Port client, runs the
requested command and maps its outcome to the process exit code: 0 on full
success, 1 when any batch failed or the command could not run.
"""
import argparse
import logging
import sys

from . import __version__, config, reports
from .api_client import PortClient
from .diff_service import DiffService
from .exceptions import ConfigurationError, ConfirmationDeclined, MigratorError
from .migrator import PortMigrator

# A broad exception is caught at the top level so that any unexpected error
# is logged before the process exits.
# pylint: disable=broad-exception-caught


def build_parser():
    """Builds the argument parser with all sub-commands."""
    parser = argparse.ArgumentParser(
        prog="port-github-migrator",
        description="Migrate Port entities from GitHub App to GitHub Ocean.",
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    parser.add_argument("--port-url", help="Port API URL (env: PORT_API_URL)")
    parser.add_argument("--client-id", help="Port API client id (env: PORT_CLIENT_ID)")
    parser.add_argument("--client-secret", help="Port API client secret (env: PORT_CLIENT_SECRET)")
    parser.add_argument(
        "--old-installation-id", help="Old GitHub App installation id (env: OLD_INSTALLATION_ID)"
    )
    parser.add_argument(
        "--new-installation-id", help="New GitHub Ocean installation id (env: NEW_INSTALLATION_ID)"
    )
    parser.add_argument("--verbose", action="store_true", help="Enable debug logging")

    subparsers = parser.add_subparsers(dest="command", required=True)

    migrate = subparsers.add_parser(
        "migrate", help="Migrate entities of one blueprint or of all blueprints"
    )
    migrate.add_argument("blueprint", nargs="?", help="Blueprint identifier, or 'all'")
    migrate.add_argument("--all", action="store_true", help="Migrate every affected blueprint")
    migrate.add_argument(
        "--dry-run", action="store_true", help="Show what would be migrated without making changes"
    )
    migrate.set_defaults(handler=run_migrate)

    blueprints = subparsers.add_parser(
        "get-blueprints", help="List blueprints the old installation ingested entities into"
    )
    blueprints.add_argument(
        "--include-empty", action="store_true", help="Include blueprints with 0 entities"
    )
    blueprints.set_defaults(handler=run_get_blueprints)

    diff = subparsers.add_parser(
        "get-diff", help="Compare entities between source and target blueprints"
    )
    diff.add_argument("source_blueprint", help="Blueprint holding the old entities")
    diff.add_argument("target_blueprint", help="Blueprint holding the new entities")
    diff.add_argument("--show-diffs", action="store_true", help="Show property differences")
    diff.add_argument("--limit", type=int, default=10, help="Number of changed entities to show")
    diff.add_argument("--output", help="Write the full JSON report to this file")
    diff.set_defaults(handler=run_get_diff)

    entities = subparsers.add_parser(
        "get-entities", help="Export all entities of the old installation to a file"
    )
    entities.add_argument("--output", help="File to write, defaults to a timestamped name")
    entities.set_defaults(handler=run_get_entities)

    validate = subparsers.add_parser("validate", help="Validate credentials and connectivity")
    validate.set_defaults(handler=run_validate)

    return parser


def build_settings(args):
    return config.Settings(
        port_api_url=args.port_url,
        client_id=args.client_id,
        client_secret=args.client_secret,
        old_installation_id=args.old_installation_id,
        new_installation_id=args.new_installation_id,
    )


def run_migrate(args, settings, audit_logger):
    """Migrates ownership and returns 1 if any batch failed."""
    if args.all or args.blueprint == "all":
        blueprint = None
    elif args.blueprint:
        blueprint = args.blueprint
    else:
        raise ConfigurationError(
            "A blueprint argument is required. Usage: migrate <blueprint|all> or migrate --all"
        )
    settings.require(
        "PORT_CLIENT_ID", "PORT_CLIENT_SECRET", "OLD_INSTALLATION_ID", "NEW_INSTALLATION_ID"
    )

    client = PortClient(settings)
    new_datasource = client.get_new_datasource(settings.NEW_INSTALLATION_ID)
    migrator = PortMigrator(client, settings, audit_logger)
    stats = migrator.migrate(new_datasource, blueprint, dry_run=args.dry_run)
    return stats.exit_code


def run_get_blueprints(args, settings, _audit_logger):
    settings.require("PORT_CLIENT_ID", "PORT_CLIENT_SECRET", "OLD_INSTALLATION_ID")
    client = PortClient(settings)
    blueprints = sorted(client.get_blueprints_by_datasource(settings.OLD_INSTALLATION_ID))

    print(f"{'NAME':<33} ENTITIES")
    print("-" * 42)
    for blueprint in blueprints:
        try:
            count = len(client.search_old_entities(blueprint, settings.OLD_INSTALLATION_ID))
        except MigratorError as e:
            logging.getLogger(__name__).warning("Could not count %s: %s", blueprint, e)
            print(f"{blueprint:<33} ?")
            continue
        if count == 0 and not args.include_empty:
            continue
        print(f"{blueprint:<33} {count}")
    return 0


def run_get_diff(args, settings, _audit_logger):
    settings.require(
        "PORT_CLIENT_ID", "PORT_CLIENT_SECRET", "OLD_INSTALLATION_ID", "NEW_INSTALLATION_ID"
    )
    service = DiffService(PortClient(settings))
    comparison = service.compare_blueprints(
        args.source_blueprint,
        args.target_blueprint,
        settings.OLD_INSTALLATION_ID,
        settings.NEW_INSTALLATION_ID,
    )
    service.print_summary(comparison)
    if args.show_diffs:
        service.print_detailed_diffs(comparison.result, args.limit)
    if args.output:
        path = service.export_diff(comparison, args.output)
        print(f"Full report written to: {path}")
    return 0


def run_get_entities(args, settings, _audit_logger):
    settings.require("PORT_CLIENT_ID", "PORT_CLIENT_SECRET", "OLD_INSTALLATION_ID")
    logger = logging.getLogger(__name__)
    client = PortClient(settings)
    blueprints = client.get_blueprints_by_datasource(settings.OLD_INSTALLATION_ID)
    if not blueprints:
        logger.warning("No blueprints found")
        return 0

    all_entities = []
    for blueprint in blueprints:
        logger.info("Fetching entities for blueprint: %s", blueprint)
        entities = client.search_old_entities(blueprint, settings.OLD_INSTALLATION_ID)
        logger.info("   Found %d entities", len(entities))
        all_entities.extend(entities)

    output_file = args.output or reports.default_export_name("entities")
    reports.write_json(output_file, reports.build_entities_export(all_entities))
    print(f"Exported {len(all_entities)} entities to: {output_file}")
    return 0


def run_validate(_args, settings, _audit_logger):
    settings.require("PORT_CLIENT_ID", "PORT_CLIENT_SECRET", "OLD_INSTALLATION_ID")
    client = PortClient(settings)
    blueprints = client.get_blueprints_by_datasource(settings.OLD_INSTALLATION_ID)
    print(f"Authentication successful, found {len(blueprints)} blueprints.")
    print("All validations passed!")
    return 0


def main(argv=None):
    """Main function to run the migrator command line."""
    args = build_parser().parse_args(argv)
    logger, audit_logger = config.setup_logging(
        log_level="DEBUG" if args.verbose else config.LOG_LEVEL
    )

    try:
        exit_code = args.handler(args, build_settings(args), audit_logger)
    except ConfirmationDeclined:
        exit_code = 0
    except MigratorError as e:
        logger.critical("%s failed: %s", args.command, e)
        exit_code = 1
    except Exception as e:
        logger.critical(
            "A critical error occurred while running %s: %s", args.command, e, exc_info=True
        )
        exit_code = 1

    sys.exit(exit_code)


if __name__ == "__main__":
    main()
