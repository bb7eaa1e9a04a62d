"""CRUD operations for stored recommendations."""

import uuid

from sqlalchemy import desc, select
from sqlalchemy.ext.asyncio import AsyncSession

from advisor.core.exceptions import InvalidStatusTransitionError
from advisor.models.recommendation import (
    RECOMMENDATION_STATUS_TRANSITIONS,
    RecommendationRecord,
    RecommendationStatus,
)
from advisor.schemas.recommendation import Recommendation


async def upsert_recommendation(db: AsyncSession, recommendation: Recommendation) -> RecommendationRecord:
    """
    Insert or refresh the recommendation for a resource.

    A refreshed recommendation that changes the target provider goes back
    to pending review; otherwise the review status is kept.

    Args:
        db: Database session
        recommendation: Freshly generated recommendation

    Returns:
        Stored recommendation record
    """
    result = await db.execute(
        select(RecommendationRecord).where(
            RecommendationRecord.resource_id == recommendation.resource_id
        )
    )
    record = result.scalar_one_or_none()

    values = {
        "resource_type": recommendation.resource_type,
        "current_provider": recommendation.current_provider.value,
        "recommended_provider": recommendation.recommended_provider.value,
        "estimated_savings": recommendation.estimated_savings,
        "confidence_score": recommendation.confidence_score,
        "complexity_level": recommendation.migration_complexity.level.value,
        "reasoning": list(recommendation.reasoning),
        "details": recommendation.model_dump(mode="json"),
    }

    if record is None:
        record = RecommendationRecord(resource_id=recommendation.resource_id, **values)
        db.add(record)
    else:
        if record.recommended_provider != values["recommended_provider"]:
            record.status = RecommendationStatus.PENDING.value
        for field, value in values.items():
            setattr(record, field, value)

    await db.commit()
    await db.refresh(record)
    return record


async def get_recommendation_by_id(
    db: AsyncSession, recommendation_id: uuid.UUID
) -> RecommendationRecord | None:
    result = await db.execute(
        select(RecommendationRecord).where(RecommendationRecord.id == recommendation_id)
    )
    return result.scalar_one_or_none()


async def get_recommendation_by_resource(
    db: AsyncSession, resource_id: str
) -> RecommendationRecord | None:
    result = await db.execute(
        select(RecommendationRecord).where(RecommendationRecord.resource_id == resource_id)
    )
    return result.scalar_one_or_none()


async def get_recommendations(
    db: AsyncSession,
    status: RecommendationStatus | None = None,
    moves_only: bool = False,
    skip: int = 0,
    limit: int = 100,
) -> list[RecommendationRecord]:
    """
    List stored recommendations, highest savings first.

    Args:
        db: Database session
        status: Optional review status filter
        moves_only: Only recommendations that change provider
        skip: Number of records to skip
        limit: Maximum number of records to return

    Returns:
        List of recommendation records
    """
    query = select(RecommendationRecord)
    if status:
        query = query.where(RecommendationRecord.status == status.value)
    if moves_only:
        query = query.where(
            RecommendationRecord.recommended_provider != RecommendationRecord.current_provider
        )

    result = await db.execute(
        query.order_by(desc(RecommendationRecord.estimated_savings)).offset(skip).limit(limit)
    )
    return list(result.scalars().all())


async def update_recommendation_status(
    db: AsyncSession, recommendation_id: uuid.UUID, status: RecommendationStatus
) -> RecommendationRecord | None:
    """
    Move a recommendation through its review lifecycle.

    Raises:
        InvalidStatusTransitionError: If the status change is not allowed
    """
    record = await get_recommendation_by_id(db, recommendation_id)

    if not record:
        return None

    current = RecommendationStatus(record.status)
    if status != current:
        if status not in RECOMMENDATION_STATUS_TRANSITIONS[current]:
            raise InvalidStatusTransitionError(current.value, status.value)
        record.status = status.value

    await db.commit()
    await db.refresh(record)
    return record
