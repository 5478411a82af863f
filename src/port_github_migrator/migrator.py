"""
This module contains the PortMigrator class, which moves the ownership of
entities from the legacy GitHub App integration to GitHub Ocean.

A run discovers the affected blueprints, counts their entities, asks the
operator to type "yes", then patches each blueprint's entities in batches of
BATCH_SIZE. Everything happens sequentially: the patch is irreversible and
every batch outcome must be attributable in the audit log. A failed batch is
recorded and the run moves on to the next batch.
"""
import logging

from .exceptions import ConfirmationDeclined, FetchError, PatchError
from .models import MigrationStats

BATCH_SIZE = 100
CONFIRMATION_WORD = "yes"


def create_batches(items, batch_size=BATCH_SIZE):
    """Splits `items` into consecutive lists of at most `batch_size` elements."""
    if batch_size < 1:
        raise ValueError("batch_size must be positive")
    items = list(items)
    return [items[i:i + batch_size] for i in range(0, len(items), batch_size)]


def is_confirmed(answer):
    """Only the exact, case-sensitive word "yes" confirms."""
    return answer == CONFIRMATION_WORD


# pylint: disable=too-few-public-methods
class ConsoleConfirmation:
    """Asks the operator on standard input. Waits for as long as it takes."""

    def __init__(self, input_func=input):
        self._input = input_func

    def ask(self, prompt):
        try:
            return self._input(prompt)
        except EOFError:
            return ""


class ScriptedConfirmation:
    """Returns pre-recorded answers in order, for tests and unattended runs."""

    def __init__(self, *answers):
        self._answers = list(answers)
        self.prompts = []

    def ask(self, prompt):
        self.prompts.append(prompt)
        return self._answers.pop(0) if self._answers else ""


class PortMigrator:
    """Drives one migration run from discovery to the final report."""

    def __init__(self, api_client, config_obj, audit_logger=None, confirmation=None):
        self.api_client = api_client
        self.config = config_obj
        self.logger = logging.getLogger(__name__)
        self.audit_logger = audit_logger or logging.getLogger("audit_logger")
        self.confirmation = confirmation or ConsoleConfirmation()
        self.stats = MigrationStats()

    def migrate(self, new_datasource, blueprint_identifier=None, dry_run=False):
        """
        Runs the migration and returns its MigrationStats.

        With `blueprint_identifier` only that blueprint is migrated, otherwise
        every blueprint the old installation ingests into. A dry run counts
        and asks for confirmation exactly like a real run but patches nothing.
        """
        self.stats = MigrationStats()

        blueprints = self._discover(blueprint_identifier)
        if not blueprints:
            self.logger.warning("No blueprints found for the specified installation.")
            return self.stats

        identifiers_by_blueprint = self._count(blueprints)
        total_entities = sum(len(ids) for ids in identifiers_by_blueprint.values())
        if total_entities == 0:
            self.logger.warning("No entities found to migrate. Exiting.")
            return self.stats

        try:
            self._confirm(identifiers_by_blueprint, total_entities, dry_run)
        except ConfirmationDeclined:
            self.logger.info("Migration cancelled. No changes were made.")
            return self.stats

        for index, blueprint in enumerate(blueprints, start=1):
            self.logger.info("[%d/%d] Migrating %s...", index, len(blueprints), blueprint)
            self._migrate_blueprint(
                blueprint, identifiers_by_blueprint.get(blueprint, []), new_datasource, dry_run
            )

        self._report(dry_run)
        return self.stats

    def _discover(self, blueprint_identifier):
        if blueprint_identifier:
            return [blueprint_identifier]
        self.logger.info("Fetching blueprints...")
        return self.api_client.get_blueprints_by_datasource(self.config.OLD_INSTALLATION_ID)

    def _count(self, blueprints):
        """
        Fetches the old-owned entities of every blueprint. A blueprint whose
        search fails counts as empty and the failure is kept in the stats.
        """
        identifiers_by_blueprint = {}
        for blueprint in blueprints:
            try:
                entities = self.api_client.search_old_entities(
                    blueprint, self.config.OLD_INSTALLATION_ID
                )
            except FetchError as e:
                self.logger.warning("Could not count entities of blueprint %s: %s", blueprint, e)
                self.stats.errors.append(f"Blueprint {blueprint}: {e}")
                identifiers_by_blueprint[blueprint] = []
                continue
            identifiers_by_blueprint[blueprint] = [entity.identifier for entity in entities]
        return identifiers_by_blueprint

    def _confirm(self, identifiers_by_blueprint, total_entities, dry_run):
        self.logger.warning("WARNING: This action cannot be undone!")
        self.logger.warning(
            "Please verify your data with 'get-diff' and '--dry-run' before proceeding."
        )
        self.logger.info("Blueprints to migrate:")
        for blueprint, identifiers in identifiers_by_blueprint.items():
            self.logger.info("  - %s (%d entities)", blueprint, len(identifiers))
        self.logger.info("Total entities affected: %d", total_entities)
        if dry_run:
            self.logger.info("DRY RUN MODE - No changes will be made")

        answer = self.confirmation.ask(f"\nType '{CONFIRMATION_WORD}' to proceed: ")
        if not is_confirmed(answer):
            raise ConfirmationDeclined(answer)

    def _migrate_blueprint(self, blueprint, identifiers, new_datasource, dry_run):
        self.stats.total_blueprints += 1
        self.stats.total_entities += len(identifiers)

        if not identifiers:
            self.logger.info("  0 entities, nothing to migrate")
            return

        batches = create_batches(identifiers)
        if dry_run:
            self.logger.info(
                "  Would patch %d entities in %d batch(es) to datasource %s",
                len(identifiers),
                len(batches),
                new_datasource,
            )
            return

        self.logger.info("  Patching %d entities in %d batch(es)", len(identifiers), len(batches))
        succeeded = 0
        for number, batch in enumerate(batches, start=1):
            self.stats.total_batches += 1
            try:
                self.api_client.patch_entities_datasource_bulk(blueprint, batch, new_datasource)
            except PatchError as e:
                self.stats.failed_batches += 1
                self.stats.errors.append(f"Batch {number} for blueprint {blueprint}: {e}")
                self.logger.error("  Batch %d/%d failed: %s", number, len(batches), e)
                self.audit_logger.info(
                    "FAILED %s batch %d/%d -> %s: %s",
                    blueprint, number, len(batches), new_datasource, ",".join(batch),
                )
                continue
            succeeded += 1
            self.stats.successful_batches += 1
            self.audit_logger.info(
                "PATCHED %s batch %d/%d -> %s: %s",
                blueprint, number, len(batches), new_datasource, ",".join(batch),
            )

        self.logger.info(
            "Completed patching for blueprint %s: %d/%d batches successful",
            blueprint,
            succeeded,
            len(batches),
        )

    def _report(self, dry_run):
        stats = self.stats
        if dry_run:
            self.logger.info("Blueprints checked: %d", stats.total_blueprints)
            self.logger.info("Entities that would be migrated: %d", stats.total_entities)
        else:
            self.logger.info("Blueprints migrated: %d", stats.total_blueprints)
            self.logger.info("Entities processed: %d", stats.total_entities)
        self.logger.info(
            "Batches: %d/%d successful, %d failed",
            stats.successful_batches,
            stats.total_batches,
            stats.failed_batches,
        )

        if stats.errors:
            self.logger.error("Errors:")
            for error in stats.errors:
                self.logger.error("  %s", error)

        if dry_run:
            self.logger.info("Dry run complete. No changes were made.")
        elif stats.failed_batches == 0:
            self.logger.info("Migration completed successfully!")
        else:
            self.logger.warning(
                "Migration completed with %d failed batches (Success rate: %.2f%%)",
                stats.failed_batches,
                stats.success_rate,
            )
