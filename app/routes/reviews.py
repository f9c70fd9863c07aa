# Review endpoints: create/delete a review and read a property's reviews and rating breakdown.
import math

from fastapi import APIRouter, Depends, Query, Response, status

from .. import models, schemas
from ..rate_limit import rate_limit
from ..services.reviews import ReviewService
from .auth import get_current_user, require_seeker
from .deps import get_review_service

router = APIRouter()


@router.post(
    "/reviews",
    response_model=schemas.ReviewRead,
    status_code=status.HTTP_201_CREATED,
    dependencies=[Depends(rate_limit("review"))],
)
def create_review(
    payload: schemas.ReviewCreate,
    service: ReviewService = Depends(get_review_service),
    user: models.User = Depends(require_seeker),
) -> models.Review:
    return service.create_review(user.id, payload.booking_id, payload.rating, payload.review)


@router.delete(
    "/reviews/{review_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    dependencies=[Depends(rate_limit("review"))],
)
def delete_review(
    review_id: int,
    service: ReviewService = Depends(get_review_service),
    user: models.User = Depends(get_current_user),
) -> Response:
    service.delete_review(review_id, actor_id=user.id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.get("/properties/{property_id}/reviews", response_model=schemas.ReviewListResponse)
def list_property_reviews(
    property_id: int,
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=50),
    service: ReviewService = Depends(get_review_service),
) -> schemas.ReviewListResponse:
    items, total = service.list_property_reviews(property_id, page=page, limit=limit)
    return schemas.ReviewListResponse(
        reviews=[schemas.ReviewRead.model_validate(r) for r in items],
        pagination=schemas.Pagination(page=page, limit=limit, total=total, pages=math.ceil(total / limit)),
    )


@router.get("/properties/{property_id}/rating", response_model=schemas.RatingStats)
def property_rating(
    property_id: int,
    service: ReviewService = Depends(get_review_service),
) -> schemas.RatingStats:
    return schemas.RatingStats(**service.rating_stats(property_id))
