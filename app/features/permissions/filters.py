"""
Row filters as a small predicate tree, and the ownership filter built on it.

Filters are immutable values: Eq / Contains leaves combined with And / Or.
Combining is a pure operation and nested nodes of the same kind are
flattened, so (a & b) & c and a & (b & c) produce the same tree. A filter can
be evaluated against a mapping in memory or compiled to a SQLAlchemy clause
for a given model.

Usage:
    ctx = OwnershipContext(user_id=7, role_id=3, module="work_order", has_view_all=False)
    where = apply_ownership_filter(
        Eq("status", "open"),
        ctx,
        owner_fields=("created_by", OwnerField("assigned_user_ids", many=True)),
    )
    stmt = select(WorkOrder).where(to_sqlalchemy(where, WorkOrder))
"""
from dataclasses import dataclass
from typing import Any, Mapping, Optional, Sequence, Tuple, Union

import sqlalchemy as sa
from sqlalchemy.dialects.postgresql import JSONB


class Predicate:
    """Base class of every filter node."""

    def __and__(self, other: "Predicate") -> "Predicate":
        return and_(self, other)

    def __or__(self, other: "Predicate") -> "Predicate":
        return or_(self, other)

    def matches(self, row: Mapping[str, Any]) -> bool:
        raise NotImplementedError


@dataclass(frozen=True)
class Eq(Predicate):
    field: str
    value: Any

    def matches(self, row: Mapping[str, Any]) -> bool:
        return row.get(self.field) == self.value


@dataclass(frozen=True)
class Contains(Predicate):
    """The array-valued `field` contains `value`."""
    field: str
    value: Any

    def matches(self, row: Mapping[str, Any]) -> bool:
        return self.value in (row.get(self.field) or ())


@dataclass(frozen=True)
class And(Predicate):
    clauses: Tuple[Predicate, ...] = ()

    def matches(self, row: Mapping[str, Any]) -> bool:
        return all(clause.matches(row) for clause in self.clauses)


@dataclass(frozen=True)
class Or(Predicate):
    clauses: Tuple[Predicate, ...] = ()

    def matches(self, row: Mapping[str, Any]) -> bool:
        return any(clause.matches(row) for clause in self.clauses)


# Empty conjunction: matches every row
TRUE = And()
# Empty disjunction: matches no row
FALSE = Or()


def _combine(kind, predicates: Sequence[Optional[Predicate]]) -> Predicate:
    clauses = []
    for predicate in predicates:
        if predicate is None:
            continue
        if isinstance(predicate, kind):
            clauses.extend(predicate.clauses)
        else:
            clauses.append(predicate)
    if len(clauses) == 1:
        return clauses[0]
    return kind(tuple(clauses))


def and_(*predicates: Optional[Predicate]) -> Predicate:
    """Conjunction; None and TRUE operands drop out."""
    return _combine(And, predicates)


def or_(*predicates: Optional[Predicate]) -> Predicate:
    """Disjunction; an empty disjunction matches nothing."""
    return _combine(Or, predicates)


# ============================================================================
# Ownership
# ============================================================================

@dataclass(frozen=True)
class OwnerField:
    """A column that identifies a row's owner; `many` for arrays of user ids."""
    name: str
    many: bool = False


DEFAULT_OWNER_FIELDS: Tuple[Union[str, OwnerField], ...] = ("created_by",)


@dataclass(frozen=True)
class OwnershipContext:
    user_id: int
    role_id: Optional[int]
    module: str
    has_view_all: bool


def ownership_predicate(
    user_id: int,
    owner_fields: Sequence[Union[str, OwnerField]] = DEFAULT_OWNER_FIELDS,
) -> Predicate:
    """Rows where any owner field points at `user_id`."""
    if not owner_fields:
        raise ValueError("At least one owner field is required")
    clauses = []
    for owner_field in owner_fields:
        if isinstance(owner_field, str):
            owner_field = OwnerField(owner_field)
        if owner_field.many:
            clauses.append(Contains(owner_field.name, user_id))
        else:
            clauses.append(Eq(owner_field.name, user_id))
    return or_(*clauses)


def apply_ownership_filter(
    base: Optional[Predicate],
    ctx: OwnershipContext,
    owner_fields: Sequence[Union[str, OwnerField]] = DEFAULT_OWNER_FIELDS,
) -> Predicate:
    """
    Narrow `base` to rows owned by the acting user unless they may view all.

    With `has_view_all` the base filter is returned as is. The caller decides
    `has_view_all` (normally PermissionResolver.has_view_all); this function
    knows nothing about roles or grants.
    """
    if ctx.has_view_all:
        return base if base is not None else TRUE
    return and_(base, ownership_predicate(ctx.user_id, owner_fields))


# ============================================================================
# SQLAlchemy compilation
# ============================================================================

def _column(model, name: str):
    try:
        return getattr(model, name)
    except AttributeError:
        raise ValueError(f"{model.__name__} has no column {name!r}") from None


def _array_contains(column, value):
    if isinstance(column.type, (sa.ARRAY, JSONB)):
        return column.contains([value])
    # Generic JSON array (SQLite and friends)
    elements = sa.func.json_each(column).table_valued("value")
    return sa.select(sa.literal(1)).select_from(elements).where(elements.c.value == value).exists()


def to_sqlalchemy(predicate: Predicate, model):
    """Compile a filter into a boolean clause over `model`'s columns."""
    if isinstance(predicate, Eq):
        return _column(model, predicate.field) == predicate.value
    if isinstance(predicate, Contains):
        return _array_contains(_column(model, predicate.field), predicate.value)
    if isinstance(predicate, And):
        if not predicate.clauses:
            return sa.true()
        return sa.and_(*(to_sqlalchemy(clause, model) for clause in predicate.clauses))
    if isinstance(predicate, Or):
        if not predicate.clauses:
            return sa.false()
        return sa.or_(*(to_sqlalchemy(clause, model) for clause in predicate.clauses))
    raise TypeError(f"Unsupported filter node: {predicate!r}")
