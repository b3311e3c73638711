from __future__ import annotations

from datetime import date
from typing import Any
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from clinicflow.core.errors import NotFoundError, ValidationFailedError
from clinicflow.models import Habit, HabitProgress, User

_FIELDS = ("title", "description", "category", "order", "is_active")


async def create_habit(session: AsyncSession, user: User, data: dict[str, Any]) -> Habit:
    if data.get("order") is None:
        last = await session.scalar(
            select(Habit.order).where(Habit.user_id == user.id).order_by(Habit.order.desc()).limit(1)
        )
        data["order"] = 0 if last is None else last + 1
    habit = Habit(user_id=user.id, **{k: v for k, v in data.items() if k in _FIELDS and v is not None})
    session.add(habit)
    await session.flush()
    return habit


async def get_habit(session: AsyncSession, user: User, habit_id: UUID) -> Habit:
    habit = await session.get(Habit, habit_id)
    if habit is None or habit.user_id != user.id or not habit.is_active:
        raise NotFoundError("Habit not found")
    return habit


async def update_habit(session: AsyncSession, user: User, habit_id: UUID, data: dict[str, Any]) -> Habit:
    habit = await get_habit(session, user, habit_id)
    for key, value in data.items():
        if key in _FIELDS and value is not None:
            setattr(habit, key, value)
    await session.flush()
    return habit


async def delete_habit(session: AsyncSession, user: User, habit_id: UUID) -> None:
    habit = await get_habit(session, user, habit_id)
    habit.is_active = False
    await session.flush()


async def toggle_progress(session: AsyncSession, user: User, habit_id: UUID, day: date) -> dict[str, Any]:
    habit = await get_habit(session, user, habit_id)
    row = (
        await session.execute(
            select(HabitProgress).where(HabitProgress.habit_id == habit.id, HabitProgress.date == day)
        )
    ).scalar_one_or_none()

    if row is None:
        row = HabitProgress(habit_id=habit.id, date=day, is_checked=True)
        session.add(row)
        is_update = False
    else:
        row.is_checked = not row.is_checked
        is_update = True
    await session.flush()
    return {"date": day, "is_checked": row.is_checked, "is_update": is_update}


async def list_with_progress(
    session: AsyncSession, user: User, *, start: date, end: date
) -> list[dict[str, Any]]:
    if end < start:
        raise ValidationFailedError("end must not be before start")

    habits = list(
        (
            await session.execute(
                select(Habit)
                .where(Habit.user_id == user.id, Habit.is_active.is_(True))
                .order_by(Habit.order, Habit.created_at)
            )
        ).scalars()
    )
    if not habits:
        return []

    rows = await session.execute(
        select(HabitProgress).where(
            HabitProgress.habit_id.in_([h.id for h in habits]),
            HabitProgress.date >= start,
            HabitProgress.date <= end,
        )
    )
    by_habit: dict[UUID, list[HabitProgress]] = {h.id: [] for h in habits}
    for p in rows.scalars():
        by_habit[p.habit_id].append(p)

    return [
        {
            "habit": h,
            "progress": [
                {"date": p.date, "is_checked": p.is_checked}
                for p in sorted(by_habit[h.id], key=lambda p: p.date)
            ],
        }
        for h in habits
    ]
