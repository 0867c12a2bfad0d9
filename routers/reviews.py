# routers/reviews.py
"""
Property reviews. Both routes are public.
"""
import logging
from typing import Optional

from fastapi import APIRouter, Depends
from pymongo import DESCENDING
from pymongo.database import Database

from database import REVIEWS, get_db, utcnow
from errors import ValidationError
from rate_limit import rate_limited
from schemas import ReviewCreate
from serializers import serialize_doc

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/reviews", tags=["reviews"], dependencies=[Depends(rate_limited)])


@router.get("")
def list_reviews(propertyId: Optional[str] = None, db: Database = Depends(get_db)):
    if not propertyId:
        raise ValidationError("Property ID required")
    cursor = db[REVIEWS].find({"propertyId": propertyId}).sort("createdAt", DESCENDING)
    return {"success": True, "data": [serialize_doc(doc) for doc in cursor]}


@router.post("", status_code=201)
def create_review(payload: ReviewCreate, db: Database = Depends(get_db)):
    review = {
        "propertyId": payload.property_id,
        "rating": payload.rating,
        "comment": payload.comment,
        "userName": payload.user_name,
        "userEmail": payload.user_email,
        "createdAt": utcnow(),
    }
    db[REVIEWS].insert_one(review)
    logger.info("Review for property %s by %s", payload.property_id, payload.user_email)
    return {"success": True, "data": serialize_doc(review)}
