"""
Review service: submission, editing, helpful marks and product aggregates
"""

from datetime import datetime
from decimal import Decimal, ROUND_HALF_UP
from typing import Optional
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, update, func, UniqueConstraint
from sqlalchemy.exc import IntegrityError
import logging

from app.core.config import settings
from app.core.exceptions import (
    ConflictException,
    DuplicateReviewException,
    InvalidRatingException,
    MissingFieldException,
    ProductNotFoundException,
    ReviewNotFoundException,
    UnauthorizedException,
    ValidationException,
)
from app.models.product import Product
from app.models.review import Review, ReviewHelpfulVote, ReviewStatus
from app.schemas.review import ProductReviewsResponse, ReviewResponse, ReviewSort
from app.services.review_eligibility import ReviewEligibilityResolver
from app.utils.helpers import parse_uuid
from app.utils.pagination import paginate

logger = logging.getLogger(__name__)

ONE_DECIMAL = Decimal("0.1")

_SORT_ORDER = {
    ReviewSort.NEWEST: (Review.created_at.desc(),),
    ReviewSort.HELPFUL: (Review.helpful_count.desc(), Review.created_at.desc()),
    ReviewSort.RATING_HIGH: (Review.rating.desc(), Review.created_at.desc()),
    ReviewSort.RATING_LOW: (Review.rating.asc(), Review.created_at.desc()),
}


def _is_blank(value) -> bool:
    return value is None or (isinstance(value, str) and not value.strip())


REVIEW_UNIQUE_CONSTRAINT = "uq_product_user_order_review"


def is_duplicate_review_error(exc: IntegrityError) -> bool:
    """
    True when ``exc`` is a violation of the one-review-per-order constraint

    PostgreSQL names the constraint in its message; SQLite lists the
    constrained columns instead.
    """
    message = str(exc.orig)
    if REVIEW_UNIQUE_CONSTRAINT in message:
        return True
    columns = ", ".join(
        f"reviews.{column.name}" for column in _review_unique_constraint().columns
    )
    return "UNIQUE constraint failed" in message and columns in message


def _review_unique_constraint() -> UniqueConstraint:
    return next(
        constraint
        for constraint in Review.__table__.constraints
        if constraint.name == REVIEW_UNIQUE_CONSTRAINT
    )


class ReviewService:
    """Reviews of products, tied to the order they were bought in"""

    def __init__(self, db: AsyncSession, resolver: Optional[ReviewEligibilityResolver] = None):
        self.db = db
        self.resolver = resolver or ReviewEligibilityResolver(db)

    # Validation

    @staticmethod
    def validate_rating(rating) -> int:
        if isinstance(rating, bool) or not isinstance(rating, int):
            raise InvalidRatingException("Rating must be a whole number between 1 and 5")
        if rating < 1 or rating > 5:
            raise InvalidRatingException()
        return rating

    @staticmethod
    def validate_content(title: Optional[str] = None, comment: Optional[str] = None) -> None:
        if title is not None and len(title.strip()) > settings.REVIEW_TITLE_MAX_LENGTH:
            raise ValidationException(
                f"Review title cannot exceed {settings.REVIEW_TITLE_MAX_LENGTH} characters"
            )
        if comment is not None and len(comment) > settings.REVIEW_COMMENT_MAX_LENGTH:
            raise ValidationException(
                f"Review comment cannot exceed {settings.REVIEW_COMMENT_MAX_LENGTH} characters"
            )

    # Lookups

    async def get_product(self, product_id) -> Product:
        pid = parse_uuid(product_id)
        product = await self.db.get(Product, pid) if pid else None
        if product is None:
            raise ProductNotFoundException(product_id)
        return product

    async def get_review(self, review_id) -> Review:
        rid = parse_uuid(review_id)
        review = await self.db.get(Review, rid) if rid else None
        if review is None:
            raise ReviewNotFoundException(review_id)
        return review

    async def get_owned_review(self, review_id, user_id) -> Review:
        review = await self.get_review(review_id)
        if str(review.user_id) != str(user_id):
            raise UnauthorizedException("You do not have permission to modify this review")
        return review

    # Commands

    async def submit_review(
        self,
        user_id,
        product_id,
        order_id,
        rating,
        title: Optional[str],
        comment: Optional[str],
        user_name: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> Review:
        """
        Create a review for a product bought in ``order_id``

        The order is re-checked here even when eligibility was resolved
        earlier, since it may have changed in between. The unique
        (product, user, order) constraint settles concurrent submissions.
        """
        missing = [
            name
            for name, value in (("title", title), ("comment", comment), ("rating", rating), ("order_id", order_id))
            if _is_blank(value)
        ]
        if missing:
            raise MissingFieldException(*missing)

        rating = self.validate_rating(rating)
        self.validate_content(title, comment)

        product = await self.get_product(product_id)
        order = await self.resolver.check_order_for_review(user_id, product.id, order_id, now=now)

        # Fast path for a friendlier error; the constraint below is authoritative
        if await self.resolver.find_review(product.id, user_id, order.id) is not None:
            raise DuplicateReviewException()

        review = Review(
            product_id=product.id,
            user_id=parse_uuid(user_id),
            order_id=order.id,
            user_name=user_name,
            rating=rating,
            title=title.strip(),
            comment=comment,
            helpful_count=0,
            status=ReviewStatus.APPROVED,
        )

        try:
            self.db.add(review)
            await self.db.flush()
        except IntegrityError as exc:
            await self.db.rollback()
            if is_duplicate_review_error(exc):
                raise DuplicateReviewException() from exc
            raise

        await self.recompute_product_rating(product.id)
        await self.db.refresh(review)
        logger.info("Review %s created for product %s from order %s", review.id, product.id, order.id)
        return review

    async def update_review(
        self,
        review_id,
        user_id,
        title: Optional[str] = None,
        comment: Optional[str] = None,
        rating=None,
    ) -> Review:
        """Owner edits title, comment or rating; blank values are left as they were"""
        review = await self.get_owned_review(review_id, user_id)

        if rating is not None:
            rating = self.validate_rating(rating)
        self.validate_content(title, comment)

        if not _is_blank(title):
            review.title = title.strip()
        if not _is_blank(comment):
            review.comment = comment
        if rating is not None:
            review.rating = rating

        await self.recompute_product_rating(review.product_id)
        await self.db.refresh(review)
        return review

    async def delete_review(self, review_id, user_id) -> None:
        review = await self.get_owned_review(review_id, user_id)
        product_id = review.product_id

        await self.db.delete(review)
        await self.recompute_product_rating(product_id)
        logger.info("Review %s deleted by user %s", review_id, user_id)

    async def toggle_helpful(self, review_id, user_id) -> Review:
        """Mark a review helpful, or take the mark back if already given"""
        review = await self.get_review(review_id)
        uid = parse_uuid(user_id)

        vote = next((v for v in review.helpful_votes if v.user_id == uid), None)
        try:
            if vote is not None:
                review.helpful_votes.remove(vote)
                review.helpful_count = max(0, (review.helpful_count or 0) - 1)
            else:
                review.helpful_votes.append(ReviewHelpfulVote(user_id=uid))
                review.helpful_count = (review.helpful_count or 0) + 1
            await self.db.commit()
        except IntegrityError as exc:
            await self.db.rollback()
            raise ConflictException("Helpful mark changed by another request") from exc
        except Exception:
            await self.db.rollback()
            raise

        await self.db.refresh(review)
        return review

    async def recompute_product_rating(self, product_id) -> Product:
        """
        Recompute a product's average rating and review count from all of
        its approved reviews, then commit
        """
        try:
            await self.db.flush()

            result = await self.db.execute(
                select(func.count(Review.id), func.coalesce(func.sum(Review.rating), 0)).where(
                    Review.product_id == product_id,
                    Review.status == ReviewStatus.APPROVED,
                )
            )
            count, total = result.one()

            if count:
                average = (Decimal(int(total)) / Decimal(count)).quantize(ONE_DECIMAL, ROUND_HALF_UP)
            else:
                average = Decimal("0")

            await self.db.execute(
                update(Product)
                .where(Product.id == product_id)
                .values(rating=average, review_count=count)
                .execution_options(synchronize_session=False)
            )
            await self.db.commit()
        except Exception:
            await self.db.rollback()
            raise

        product = await self.db.get(Product, product_id)
        if product is None:
            raise ProductNotFoundException(product_id)
        await self.db.refresh(product)
        return product

    # Queries

    async def list_product_reviews(
        self,
        product_id,
        page: int = 1,
        size: int = settings.DEFAULT_PAGE_SIZE,
        sort=ReviewSort.NEWEST,
    ) -> ProductReviewsResponse:
        """Approved reviews of a product with average and star distribution"""
        product = await self.get_product(product_id)

        try:
            sort = ReviewSort(sort)
        except ValueError:
            sort = ReviewSort.NEWEST

        approved = (Review.product_id == product.id, Review.status == ReviewStatus.APPROVED)

        query = select(Review).where(*approved).order_by(*_SORT_ORDER[sort], Review.id)
        page_data = await paginate(self.db, query, page=page, size=size)

        distribution = {5: 0, 4: 0, 3: 0, 2: 0, 1: 0}
        rows = await self.db.execute(
            select(Review.rating, func.count(Review.id)).where(*approved).group_by(Review.rating)
        )
        for rating, count in rows.all():
            distribution[int(rating)] = count

        total_reviews = sum(distribution.values())
        rating_sum = sum(star * count for star, count in distribution.items())
        average = (
            float((Decimal(rating_sum) / Decimal(total_reviews)).quantize(ONE_DECIMAL, ROUND_HALF_UP))
            if total_reviews
            else 0.0
        )

        return ProductReviewsResponse(
            reviews=[ReviewResponse.model_validate(review) for review in page_data["items"]],
            total_reviews=total_reviews,
            average_rating=average,
            rating_distribution=distribution,
            current_page=page_data["page"],
            total_pages=page_data["pages"],
        )
