from typing import List, Optional

import pytest
import pytest_asyncio
from sqlalchemy import JSON, Integer, String, select
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

from app.features.permissions.filters import (
    FALSE,
    TRUE,
    And,
    Contains,
    Eq,
    Or,
    OwnerField,
    OwnershipContext,
    and_,
    apply_ownership_filter,
    or_,
    ownership_predicate,
    to_sqlalchemy,
)


class _Base(DeclarativeBase):
    pass


class WorkOrder(_Base):
    __tablename__ = "work_orders"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    status: Mapped[str] = mapped_column(String(20))
    created_by: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    assigned_user_ids: Mapped[Optional[List[int]]] = mapped_column(JSON, nullable=True)


def test_view_all_returns_base_filter_unchanged():
    base = Eq("status", "open")
    ctx = OwnershipContext(user_id=7, role_id=1, module="work_order", has_view_all=True)

    assert apply_ownership_filter(base, ctx) is base
    assert apply_ownership_filter(None, ctx) == TRUE


def test_without_view_all_base_is_narrowed_to_owner():
    base = Eq("status", "open")
    ctx = OwnershipContext(user_id=7, role_id=1, module="work_order", has_view_all=False)

    result = apply_ownership_filter(base, ctx)

    assert result == And((Eq("status", "open"), Eq("created_by", 7)))
    assert result.matches({"status": "open", "created_by": 7})
    assert not result.matches({"status": "open", "created_by": 8})
    assert not result.matches({"status": "closed", "created_by": 7})


def test_no_base_filter_means_owner_only():
    ctx = OwnershipContext(user_id=7, role_id=1, module="work_order", has_view_all=False)

    assert apply_ownership_filter(None, ctx) == Eq("created_by", 7)


def test_several_owner_fields_are_alternatives():
    ctx = OwnershipContext(user_id=7, role_id=1, module="work_order", has_view_all=False)

    result = apply_ownership_filter(
        Eq("status", "open"),
        ctx,
        owner_fields=("created_by", OwnerField("assigned_user_ids", many=True)),
    )

    assert result == And((
        Eq("status", "open"),
        Or((Eq("created_by", 7), Contains("assigned_user_ids", 7))),
    ))
    assert result.matches({"status": "open", "created_by": 1, "assigned_user_ids": [3, 7]})
    assert not result.matches({"status": "open", "created_by": 1, "assigned_user_ids": None})


def test_merging_is_associative():
    a, b, c = Eq("a", 1), Eq("b", 2), Eq("c", 3)

    assert and_(and_(a, b), c) == and_(a, and_(b, c)) == And((a, b, c))
    assert (a | b) | c == a | (b | c) == Or((a, b, c))
    assert and_(TRUE, a) == a
    assert and_(None, None) == TRUE


def test_empty_disjunction_matches_nothing():
    assert not FALSE.matches({"created_by": 7})
    assert TRUE.matches({})
    assert or_() == FALSE


def test_ownership_needs_a_field():
    with pytest.raises(ValueError):
        ownership_predicate(7, ())


def test_unknown_column_is_rejected():
    with pytest.raises(ValueError):
        to_sqlalchemy(Eq("owner", 7), WorkOrder)


@pytest_asyncio.fixture()
async def work_orders(engine, session_factory):
    async with engine.begin() as conn:
        await conn.run_sync(_Base.metadata.create_all)

    async with session_factory() as session:
        session.add_all([
            WorkOrder(id=1, status="open", created_by=7, assigned_user_ids=[]),
            WorkOrder(id=2, status="open", created_by=8, assigned_user_ids=[7, 9]),
            WorkOrder(id=3, status="open", created_by=8, assigned_user_ids=[9]),
            WorkOrder(id=4, status="closed", created_by=7, assigned_user_ids=None),
        ])
        await session.commit()
        yield session


async def _ids(session, predicate) -> List[int]:
    result = await session.execute(
        select(WorkOrder.id).where(to_sqlalchemy(predicate, WorkOrder)).order_by(WorkOrder.id)
    )
    return list(result.scalars().all())


@pytest.mark.asyncio
async def test_compiled_filter_selects_owned_rows(work_orders):
    ctx = OwnershipContext(user_id=7, role_id=1, module="work_order", has_view_all=False)
    owner_fields = ("created_by", OwnerField("assigned_user_ids", many=True))

    assert await _ids(work_orders, apply_ownership_filter(None, ctx, owner_fields)) == [1, 2, 4]
    assert await _ids(work_orders, apply_ownership_filter(Eq("status", "open"), ctx, owner_fields)) == [1, 2]


@pytest.mark.asyncio
async def test_compiled_constants(work_orders):
    assert await _ids(work_orders, TRUE) == [1, 2, 3, 4]
    assert await _ids(work_orders, FALSE) == []
