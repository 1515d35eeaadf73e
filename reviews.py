"""
Review aggregation for catalog items.

A catalog item keeps its reviews embedded; rating and num_reviews are
derived from that list every time a review is added.
"""
from typing import Iterable, Tuple

import structlog
from pymongo.collection import Collection

from database import parse_object_id, save_document, utcnow
from errors import AlreadyReviewedError, NotFoundError
from schemas import Review

logger = structlog.get_logger(__name__)


def aggregate_rating(reviews: Iterable[dict]) -> Tuple[float, int]:
    """Return (mean rating, review count); an empty list rates 0."""
    ratings = [r.get("rating", 0) for r in reviews]
    if not ratings:
        return 0, 0
    return sum(ratings) / len(ratings), len(ratings)


def add_review(
    collection: Collection,
    item_id: str,
    user_id: str,
    user_name: str,
    rating: int,
    comment: str,
    label: str = "Product",
) -> dict:
    item = collection.find_one({"_id": parse_object_id(item_id, label)})
    if not item:
        raise NotFoundError(f"{label} not found")

    reviews = item.get("reviews") or []
    if any(str(r.get("user")) == str(user_id) for r in reviews):
        logger.info("review_rejected_duplicate", item_id=item_id, user_id=user_id)
        raise AlreadyReviewedError(f"{label} already reviewed")

    review = Review(user=str(user_id), name=user_name, rating=rating, comment=comment, created_at=utcnow())
    reviews.append(review.model_dump())

    item["reviews"] = reviews
    item["rating"], item["num_reviews"] = aggregate_rating(reviews)
    save_document(collection.database, collection.name, item)

    logger.info("review_added", item_id=item_id, user_id=user_id, rating=rating, num_reviews=item["num_reviews"])
    return item
