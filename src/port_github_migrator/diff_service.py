"""
This module compares the entities owned by the legacy GitHub App with the
entities the GitHub Ocean integration ingested, so that an operator can check
the new integration reproduces the old data before ownership is moved.
"""
import json
import logging
from datetime import datetime, timezone

from . import reports
from .models import BlueprintComparison, DiffResult, FieldDiff

# Metadata that legitimately differs between the two integrations
EXCLUDED_FIELDS = frozenset({"blueprint", "createdAt", "updatedAt", "createdBy", "updatedBy"})


def values_equal(old, new):
    """
    Structural equality over JSON values, ignoring excluded metadata keys
    inside mappings. Booleans never equal numbers.
    """
    if isinstance(old, dict) and isinstance(new, dict):
        keys = (set(old) | set(new)) - EXCLUDED_FIELDS
        return all(values_equal(old.get(key), new.get(key)) for key in keys)
    if isinstance(old, (list, tuple)) and isinstance(new, (list, tuple)):
        return len(old) == len(new) and all(
            values_equal(a, b) for a, b in zip(old, new)
        )
    if isinstance(old, (dict, list, tuple)) or isinstance(new, (dict, list, tuple)):
        return False
    if isinstance(old, bool) or isinstance(new, bool):
        return type(old) is type(new) and old == new
    return old == new


def field_diffs(old, new, prefix=""):
    """
    Lists the leaf differences between two mappings, recursing into keys whose
    value is a mapping on both sides. A key missing on one side is reported
    with None for that side.
    """
    diffs = []
    for key in sorted(set(old) | set(new)):
        if key in EXCLUDED_FIELDS:
            continue
        old_value = old.get(key)
        new_value = new.get(key)
        path = f"{prefix}.{key}" if prefix else key
        if isinstance(old_value, dict) and isinstance(new_value, dict):
            diffs.extend(field_diffs(old_value, new_value, path))
        elif not values_equal(old_value, new_value):
            diffs.append(FieldDiff(path, old_value, new_value))
    return diffs


def compare_entities(source_entities, target_entities):
    """Partitions two entity collections by identifier. Has no side effects."""
    source_index = {entity.identifier: entity for entity in source_entities}
    target_index = {entity.identifier: entity for entity in target_entities}

    identical = 0
    changed = {}
    for identifier in sorted(source_index.keys() & target_index.keys()):
        diffs = field_diffs(
            source_index[identifier].comparable(), target_index[identifier].comparable()
        )
        if diffs:
            changed[identifier] = tuple(diffs)
        else:
            identical += 1

    return DiffResult(
        identical=identical,
        changed=changed,
        not_migrated=tuple(sorted(source_index.keys() - target_index.keys())),
        orphaned=tuple(sorted(target_index.keys() - source_index.keys())),
    )


def _format_value(value):
    return json.dumps(value, default=str)


class DiffService:
    """Fetches both sides of a blueprint migration and reports the differences."""

    def __init__(self, api_client):
        self.api_client = api_client
        self.logger = logging.getLogger(__name__)

    # pylint: disable=too-many-arguments
    def compare_blueprints(
        self, source_blueprint, target_blueprint, old_installation_id, new_installation_id
    ):
        """Compares old-owned source entities with new-owned target entities."""
        self.logger.info(
            "Comparing blueprint '%s' (old) with '%s' (new)", source_blueprint, target_blueprint
        )
        source_entities = self.api_client.search_old_entities(
            source_blueprint, old_installation_id
        )
        target_entities = self.api_client.search_new_entities(
            target_blueprint, new_installation_id
        )

        return BlueprintComparison(
            source_blueprint=source_blueprint,
            target_blueprint=target_blueprint,
            source_datasource=old_installation_id,
            target_datasource=new_installation_id,
            source_count=len(source_entities),
            target_count=len(target_entities),
            result=compare_entities(source_entities, target_entities),
        )

    def export_diff(self, comparison, output_file, timestamp=None):
        """Writes the JSON diff report and returns the path written."""
        result = comparison.result
        report = {
            "blueprint": comparison.source_blueprint,
            "timestamp": (timestamp or datetime.now(timezone.utc)).isoformat(),
            "source": {
                "datasource": comparison.source_datasource,
                "count": comparison.source_count,
            },
            "target": {
                "datasource": comparison.target_datasource,
                "count": comparison.target_count,
            },
            "summary": result.summary,
            "details": {
                "notMigrated": list(result.not_migrated),
                "changed": {
                    identifier: [diff.to_dict() for diff in diffs]
                    for identifier, diffs in result.changed.items()
                },
                "orphaned": list(result.orphaned),
            },
        }
        path = reports.write_json(output_file, report)
        self.logger.info("Diff report written to %s", path)
        return path

    @staticmethod
    def print_summary(comparison):
        result = comparison.result
        print()
        print(f"{comparison.source_blueprint} (old) -> {comparison.target_blueprint} (new)")
        print("   " + "-" * 40)
        print(f"   Old: {comparison.source_count} | New: {comparison.target_count}")
        print(f"   {result.identical} identical")
        if result.not_migrated:
            print(f"   {len(result.not_migrated)} not migrated (only in old)")
            for identifier in result.not_migrated:
                print(f"       * {identifier}")
        print(f"   {len(result.changed)} changed")
        if result.orphaned:
            print(f"   {len(result.orphaned)} orphaned (only in new)")
            for identifier in result.orphaned:
                print(f"       * {identifier}")
        print()

    @staticmethod
    def print_detailed_diffs(result, limit=10):
        """Prints the field differences of the first `limit` changed entities."""
        total = len(result.changed)
        if not total:
            return

        print(f"Changed Entities (showing {min(limit, total)}/{total}):")
        print()
        for index, (identifier, diffs) in enumerate(result.changed.items()):
            if index >= limit:
                break
            print(f"  * {identifier}")
            for diff in diffs:
                print(f"    - {diff.path}: {_format_value(diff.old_value)}")
                print(f"    + {diff.path}: {_format_value(diff.new_value)}")
            print()

        if total > limit:
            print(
                f"{total - limit} more entities with changes. "
                "Use --output to export the full report or --limit to show more."
            )
