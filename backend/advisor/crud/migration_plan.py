"""CRUD operations for migration plans."""

import uuid
from datetime import datetime

from sqlalchemy import delete, desc, select
from sqlalchemy.ext.asyncio import AsyncSession

from advisor.core.exceptions import InvalidStatusTransitionError
from advisor.models.migration_plan import (
    PLAN_STATUS_TRANSITIONS,
    MigrationPlan,
    MigrationPlanStatus,
)
from advisor.schemas.migration_plan import MigrationPlan as MigrationPlanSchema
from advisor.schemas.migration_plan import MigrationPlanUpdate


async def create_migration_plan(
    db: AsyncSession, plan_in: MigrationPlanSchema, created_by: str | None = None
) -> MigrationPlan:
    """
    Store a generated migration plan.

    Args:
        db: Database session
        plan_in: Generated plan
        created_by: Optional user or system that requested the plan

    Returns:
        Created migration plan object
    """
    plan = MigrationPlan(
        resource_id=plan_in.resource_id,
        resource_type=plan_in.resource_type,
        current_provider=plan_in.current_provider.value,
        target_provider=plan_in.target_provider.value,
        strategy=plan_in.recommended_strategy.key.value,
        complexity_level=plan_in.complexity_level.value,
        estimated_savings=plan_in.estimated_savings,
        estimated_timeframe=plan_in.estimated_timeframe,
        plan=plan_in.model_dump(mode="json"),
        status=MigrationPlanStatus.CREATED.value,
        created_by=created_by,
    )
    db.add(plan)
    await db.commit()
    await db.refresh(plan)
    return plan


async def get_migration_plan_by_id(db: AsyncSession, plan_id: uuid.UUID) -> MigrationPlan | None:
    """
    Get migration plan by ID.

    Args:
        db: Database session
        plan_id: Migration plan UUID

    Returns:
        Migration plan object or None if not found
    """
    result = await db.execute(select(MigrationPlan).where(MigrationPlan.id == plan_id))
    return result.scalar_one_or_none()


async def get_migration_plans(
    db: AsyncSession,
    status: MigrationPlanStatus | None = None,
    resource_id: str | None = None,
    skip: int = 0,
    limit: int = 100,
) -> list[MigrationPlan]:
    """
    List migration plans, newest first.

    Args:
        db: Database session
        status: Optional status filter
        resource_id: Optional resource filter
        skip: Number of records to skip
        limit: Maximum number of records to return

    Returns:
        List of migration plan objects
    """
    query = select(MigrationPlan)
    if status:
        query = query.where(MigrationPlan.status == status.value)
    if resource_id:
        query = query.where(MigrationPlan.resource_id == resource_id)

    result = await db.execute(
        query.order_by(desc(MigrationPlan.created_at)).offset(skip).limit(limit)
    )
    return list(result.scalars().all())


async def update_migration_plan(
    db: AsyncSession, plan_id: uuid.UUID, plan_update: MigrationPlanUpdate
) -> MigrationPlan | None:
    """
    Update a migration plan.

    Status changes must follow PLAN_STATUS_TRANSITIONS. Entering in_progress
    records ``started_at`` the first time; reaching completed or failed
    records ``completed_at``.

    Args:
        db: Database session
        plan_id: Migration plan UUID
        plan_update: Fields to update

    Returns:
        Updated migration plan object or None if not found

    Raises:
        InvalidStatusTransitionError: If the status change is not allowed
    """
    plan = await get_migration_plan_by_id(db, plan_id)

    if not plan:
        return None

    update_data = plan_update.model_dump(exclude_unset=True)
    new_status = update_data.pop("status", None)

    if new_status is not None and new_status.value != plan.status:
        current = MigrationPlanStatus(plan.status)
        if new_status not in PLAN_STATUS_TRANSITIONS[current]:
            raise InvalidStatusTransitionError(current.value, new_status.value)

        plan.status = new_status.value
        if new_status == MigrationPlanStatus.IN_PROGRESS and plan.started_at is None:
            plan.started_at = datetime.now()
        if new_status in (MigrationPlanStatus.COMPLETED, MigrationPlanStatus.FAILED):
            plan.completed_at = datetime.now()

    for field, value in update_data.items():
        setattr(plan, field, value)

    await db.commit()
    await db.refresh(plan)
    return plan


async def delete_migration_plan(db: AsyncSession, plan_id: uuid.UUID) -> bool:
    """
    Delete a migration plan.

    Returns:
        True if a plan was deleted
    """
    result = await db.execute(delete(MigrationPlan).where(MigrationPlan.id == plan_id))
    await db.commit()
    return result.rowcount > 0
