"""Dependency-safe ordering of migration operations."""

from collections import defaultdict
from typing import Dict, Iterable, List, Tuple

from apolon.core.migrations.operations import MigrationOperation, MigrationOperationType

OpType = MigrationOperationType

# Execution phases; operations keep their relative order within a phase unless noted
PHASES: Dict[MigrationOperationType, int] = {
    OpType.CREATE_SCHEMA: 0,
    OpType.DROP_CONSTRAINT: 1,
    OpType.CREATE_TABLE: 2,
    OpType.ADD_COLUMN: 3,
    OpType.ALTER_COLUMN_TYPE: 4,
    OpType.ALTER_NULLABILITY: 5,
    OpType.SET_DEFAULT: 6,
    OpType.DROP_DEFAULT: 7,
    OpType.ADD_UNIQUE: 8,
    OpType.ADD_CHECK: 9,
    OpType.ADD_FOREIGN_KEY: 10,
    OpType.DROP_COLUMN: 11,
    OpType.DROP_TABLE: 12,
}


def _table_creation_order(
    creates: List[MigrationOperation], foreign_keys: List[MigrationOperation]
) -> List[Tuple[str, str]]:
    """Kahn's algorithm over new tables, referenced tables first.

    Ties go to declaration order. Self references are ignored and tables left
    over by a cycle are appended in declaration order.
    """
    declared = []
    for op in creates:
        if (op.schema, op.table) not in declared:
            declared.append((op.schema, op.table))
    nodes = set(declared)

    dependents: Dict[Tuple[str, str], set] = defaultdict(set)
    in_degree = {node: 0 for node in declared}
    for op in foreign_keys:
        child = (op.schema, op.table)
        parent = (op.ref_schema, op.ref_table)
        if child in nodes and parent in nodes and child != parent and child not in dependents[parent]:
            dependents[parent].add(child)
            in_degree[child] += 1

    ordered = []
    remaining = list(declared)
    while remaining:
        ready = next((node for node in remaining if in_degree[node] == 0), None)
        if ready is None:
            ordered.extend(remaining)
            break
        remaining.remove(ready)
        ordered.append(ready)
        for child in dependents[ready]:
            in_degree[child] -= 1

    return ordered


def sort_operations(operations: Iterable[MigrationOperation]) -> List[MigrationOperation]:
    """
    Order operations so each one only depends on operations before it.

    Schemas are created first and constraints are dropped before anything
    that could replace them. New tables are created parents first, columns
    are added in table creation order (declared order within a table), and
    foreign keys are added once every column exists. Column drops come before
    table drops. Duplicate CreateSchema and DropConstraint operations are
    collapsed. Sorting an already sorted list leaves it unchanged.

    Args:
        operations: Operations in any order

    Returns:
        New list in execution order
    """
    buckets: Dict[MigrationOperationType, List[MigrationOperation]] = defaultdict(list)
    seen_schemas = set()
    seen_drops = set()
    for op in operations:
        if op.type is OpType.CREATE_SCHEMA:
            if op.schema in seen_schemas:
                continue
            seen_schemas.add(op.schema)
        elif op.type is OpType.DROP_CONSTRAINT:
            key = (op.schema, op.table, op.constraint_name)
            if key in seen_drops:
                continue
            seen_drops.add(key)
        buckets[op.type].append(op)

    table_order = _table_creation_order(buckets[OpType.CREATE_TABLE], buckets[OpType.ADD_FOREIGN_KEY])
    rank = {table: index for index, table in enumerate(table_order)}
    unranked = len(rank)

    buckets[OpType.CREATE_TABLE].sort(key=lambda op: rank[(op.schema, op.table)])
    buckets[OpType.ADD_COLUMN].sort(key=lambda op: rank.get((op.schema, op.table), unranked))
    buckets[OpType.ADD_FOREIGN_KEY].sort(key=lambda op: rank.get((op.ref_schema, op.ref_table), unranked))

    ordered = []
    for op_type in sorted(PHASES, key=PHASES.get):
        ordered.extend(buckets[op_type])
    return ordered
