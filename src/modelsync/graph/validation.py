"""Validation guard run before a relationship is created."""

from dataclasses import dataclass, field
from typing import Iterable, List, Optional

from .cycle_detector import EdgeLike, closes_cycle


@dataclass
class ValidationIssue:
    field: str
    message: str
    code: str


@dataclass
class ValidationResult:
    valid: bool
    errors: List[ValidationIssue] = field(default_factory=list)


def validate_relationship(source_table_id: str, target_table_id: str,
                          existing_edges: Iterable[EdgeLike] = (),
                          table_ids: Optional[Iterable[str]] = None) -> ValidationResult:
    """Validate a prospective relationship between two tables.

    Args:
        source_table_id: Table the relationship starts from
        target_table_id: Table the relationship points to
        existing_edges: Edges of the current relationship graph
        table_ids: Known table IDs; orphan checks are skipped when None

    Returns:
        ValidationResult listing every problem found
    """
    errors: List[ValidationIssue] = []

    if source_table_id == target_table_id:
        errors.append(ValidationIssue(
            field="target_table_id",
            message="Source and target tables must be different",
            code="SELF_REFERENCE",
        ))

    if table_ids is not None:
        known = set(table_ids)
        if source_table_id not in known:
            errors.append(ValidationIssue(
                field="source_table_id",
                message=f"Source table {source_table_id} not found",
                code="ORPHANED_SOURCE",
            ))
        if target_table_id not in known:
            errors.append(ValidationIssue(
                field="target_table_id",
                message=f"Target table {target_table_id} not found",
                code="ORPHANED_TARGET",
            ))

    if source_table_id != target_table_id:
        result = closes_cycle(existing_edges, (source_table_id, target_table_id))
        if result.is_cyclic:
            errors.append(ValidationIssue(
                field="target_table_id",
                message=f"Relationship would create a cycle: {result.describe()}",
                code="CIRCULAR_RELATIONSHIP",
            ))

    return ValidationResult(valid=not errors, errors=errors)
