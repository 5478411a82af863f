"""
Data structures shared by the fetcher, the diff engine and the migrator.

Entities are point-in-time snapshots of Port records. Property values are
plain JSON values: None, scalars, lists and string-keyed dicts, nested freely.
"""
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple


@dataclass(frozen=True)
class Entity:
    """A Port entity as returned by the search endpoint."""

    identifier: str
    blueprint: str
    title: Optional[str] = None
    datasource: Optional[str] = None
    properties: Dict[str, Any] = field(default_factory=dict)
    relations: Dict[str, Any] = field(default_factory=dict)
    created_at: Optional[str] = None
    updated_at: Optional[str] = None
    created_by: Optional[str] = None
    updated_by: Optional[str] = None

    @classmethod
    def from_api(cls, payload, blueprint=None):
        """Builds an Entity from a search result item."""
        return cls(
            identifier=payload["identifier"],
            blueprint=payload.get("blueprint") or blueprint,
            title=payload.get("title"),
            datasource=payload.get("datasource") or payload.get("$datasource"),
            properties=payload.get("properties") or {},
            relations=payload.get("relations") or {},
            created_at=payload.get("createdAt"),
            updated_at=payload.get("updatedAt"),
            created_by=payload.get("createdBy"),
            updated_by=payload.get("updatedBy"),
        )

    def comparable(self):
        """The part of the entity that is expected to survive a migration."""
        return {
            "title": self.title,
            "properties": self.properties,
            "relations": self.relations,
        }


@dataclass(frozen=True)
class FieldDiff:
    """A single leaf difference, addressed by a dot-separated path."""

    path: str
    old_value: Any
    new_value: Any

    def to_dict(self):
        return {"path": self.path, "oldValue": self.old_value, "newValue": self.new_value}


@dataclass(frozen=True)
class DiffResult:
    """
    Partition of a source and a target entity set.

    Identifier lists and the keys of `changed` are sorted lexically.
    """

    identical: int
    changed: Dict[str, Tuple[FieldDiff, ...]]
    not_migrated: Tuple[str, ...]
    orphaned: Tuple[str, ...]

    @property
    def summary(self):
        return {
            "identical": self.identical,
            "notMigrated": len(self.not_migrated),
            "changed": len(self.changed),
            "orphaned": len(self.orphaned),
        }


@dataclass(frozen=True)
class BlueprintComparison:
    """A DiffResult together with what was compared."""

    source_blueprint: str
    target_blueprint: str
    source_datasource: str
    target_datasource: str
    source_count: int
    target_count: int
    result: DiffResult


@dataclass
class MigrationStats:
    """Running counters for one migration run."""

    total_blueprints: int = 0
    total_entities: int = 0
    total_batches: int = 0
    successful_batches: int = 0
    failed_batches: int = 0
    errors: List[str] = field(default_factory=list)

    @property
    def success_rate(self):
        if not self.total_batches:
            return 0.0
        return self.successful_batches / self.total_batches * 100

    @property
    def exit_code(self):
        return 1 if self.failed_batches else 0
