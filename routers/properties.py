# routers/properties.py
"""
Property listings.

GET routes are public. Creating a listing needs a signed-in user; editing,
deleting and managing images is limited to the listing's owner (matched
by e-mail) or an admin.
"""
import logging
import math
import re
import time
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, File, Query, Request, UploadFile
from pymongo import DESCENDING, ReturnDocument
from pymongo.database import Database

import audit
import media
from auth import Identity, get_current_user
from database import PROPERTIES, get_db, utcnow
from errors import NotFoundError, ValidationError
from policy import require_owner_or_admin
from rate_limit import rate_limited
from schemas import PropertyCreate, PropertyUpdate
from serializers import serialize_doc, to_object_id

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/properties", tags=["properties"], dependencies=[Depends(rate_limited)])

MAX_PAGE_SIZE = 500
MAX_IMAGES = 10


def _get_property(db: Database, property_id: str) -> Dict[str, Any]:
    prop = db[PROPERTIES].find_one({"_id": to_object_id(property_id, "property")})
    if not prop:
        raise NotFoundError("Property not found")
    return prop


def _image_ids(prop: Dict[str, Any]) -> List[str]:
    ids = list(prop.get("imagePublicIds") or [])
    if prop.get("imagePublicId") and prop["imagePublicId"] not in ids:
        ids.append(prop["imagePublicId"])
    return ids


@router.get("")
def list_properties(
    type: Optional[str] = None,
    category: Optional[str] = None,
    location: Optional[str] = Query(None, description="Case-insensitive substring match"),
    createdBy: Optional[str] = None,
    createdByEmail: Optional[str] = None,
    limit: int = 100,
    page: int = 1,
    db: Database = Depends(get_db),
):
    if limit > MAX_PAGE_SIZE:
        raise ValidationError(f"Limit cannot exceed {MAX_PAGE_SIZE}")
    if limit < 1:
        raise ValidationError("Limit must be greater than 0")
    if page < 1:
        raise ValidationError("Page must be greater than 0")

    filter_: Dict[str, Any] = {}
    if type:
        filter_["type"] = type
    if category:
        filter_["category"] = category
    if location:
        filter_["location"] = {"$regex": re.escape(location), "$options": "i"}
    if createdBy:
        filter_["createdBy"] = createdBy
    if createdByEmail:
        filter_["createdByEmail"] = createdByEmail.strip().lower()

    total = db[PROPERTIES].count_documents(filter_)
    cursor = db[PROPERTIES].find(filter_).sort("createdAt", DESCENDING).skip((page - 1) * limit).limit(limit)
    items = [serialize_doc(doc) for doc in cursor]
    logger.debug("Fetched %d properties (total %d) filter=%s", len(items), total, filter_)
    return {
        "success": True,
        "count": len(items),
        "totalCount": total,
        "page": page,
        "totalPages": math.ceil(total / limit),
        "data": items,
    }


@router.post("", status_code=201)
def create_property(
    payload: PropertyCreate,
    request: Request,
    db: Database = Depends(get_db),
    current: Identity = Depends(get_current_user),
):
    now = utcnow()
    doc = payload.model_dump()
    doc.update({
        "images": [],
        "imagePublicIds": [],
        "image": "",
        "imagePublicId": "",
        "createdBy": current.user_id,
        "createdByEmail": current.email,
        "createdByName": current.name or current.email,
        "createdAt": now,
        "updatedAt": now,
    })
    inserted_id = db[PROPERTIES].insert_one(doc).inserted_id
    doc["_id"] = inserted_id
    logger.info("Property %s created by %s", inserted_id, current.email)

    audit.record(
        db, request, "PROPERTY_CREATED", current,
        propertyId=str(inserted_id),
        propertyTitle=doc["title"],
        propertyLocation=doc["location"],
    )
    return {"success": True, "message": "Property saved successfully", "data": serialize_doc(doc)}


@router.get("/{property_id}")
def get_property(property_id: str, db: Database = Depends(get_db)):
    return {"success": True, "data": serialize_doc(_get_property(db, property_id))}


@router.put("/{property_id}")
def update_property(
    property_id: str,
    payload: PropertyUpdate,
    request: Request,
    db: Database = Depends(get_db),
    current: Identity = Depends(get_current_user),
):
    existing = _get_property(db, property_id)
    require_owner_or_admin(current, existing.get("createdByEmail"),
                           "Access denied: You can only edit your own properties")

    changes = payload.changes()
    changes["updatedAt"] = utcnow()
    changes["lastUpdatedBy"] = current.user_id
    updated = db[PROPERTIES].find_one_and_update(
        {"_id": existing["_id"]},
        {"$set": changes},
        return_document=ReturnDocument.AFTER,
    )
    if updated is None:
        raise NotFoundError("Property not found")

    audit.record(
        db, request, "PROPERTY_UPDATED", current,
        propertyId=str(existing["_id"]),
        propertyTitle=updated.get("title"),
        updatedFields=sorted(changes),
    )
    return {"success": True, "message": "Property updated successfully", "data": serialize_doc(updated)}


@router.delete("/{property_id}")
def delete_property(
    property_id: str,
    request: Request,
    db: Database = Depends(get_db),
    current: Identity = Depends(get_current_user),
):
    existing = _get_property(db, property_id)
    require_owner_or_admin(current, existing.get("createdByEmail"),
                           "Access denied: You can only delete your own properties")

    image_ids = _image_ids(existing)
    removed = media.destroy_all(image_ids)
    if removed < len(image_ids):
        logger.warning("Property %s: %d of %d images could not be removed", existing["_id"],
                       len(image_ids) - removed, len(image_ids))

    result = db[PROPERTIES].delete_one({"_id": existing["_id"]})
    if result.deleted_count == 0:
        raise NotFoundError("Property not found")

    audit.record(
        db, request, "PROPERTY_DELETED", current,
        propertyId=str(existing["_id"]),
        deletedPropertyTitle=existing.get("title"),
        deletedPropertyLocation=existing.get("location"),
        deletedImagePublicIds=image_ids,
    )
    return {
        "success": True,
        "message": "Property deleted successfully",
        "deletedProperty": {
            "_id": str(existing["_id"]),
            "title": existing.get("title"),
            "location": existing.get("location"),
        },
    }


@router.post("/{property_id}/images")
def add_property_images(
    property_id: str,
    request: Request,
    images: List[UploadFile] = File(...),
    db: Database = Depends(get_db),
    current: Identity = Depends(get_current_user),
):
    existing = _get_property(db, property_id)
    require_owner_or_admin(current, existing.get("createdByEmail"),
                           "Access denied: You can only edit your own properties")

    files = []
    for upload in images:
        raw = upload.file.read()
        if not raw:
            continue
        media.validate_image(upload.filename, upload.content_type, len(raw), media.PROPERTY_IMAGE_MAX_BYTES)
        files.append(raw)
    if not files:
        raise ValidationError("At least one image is required")

    urls = list(existing.get("images") or [])
    public_ids = list(existing.get("imagePublicIds") or [])
    if len(urls) + len(files) > MAX_IMAGES:
        raise ValidationError(f"Maximum {MAX_IMAGES} images allowed")

    uploaded: List[str] = []
    stamp = int(time.time() * 1000)
    try:
        for i, raw in enumerate(files):
            url, public_id = media.upload_image(
                raw, media.PROPERTY_FOLDER, f"property_{current.user_id}_{stamp}_{i}",
                media.PROPERTY_TRANSFORMATION,
            )
            uploaded.append(public_id)
            urls.append(url)
            public_ids.append(public_id)
    except Exception:
        media.destroy_all(uploaded)
        raise

    updated = db[PROPERTIES].find_one_and_update(
        {"_id": existing["_id"]},
        {"$set": {
            "images": urls,
            "imagePublicIds": public_ids,
            "image": urls[0],
            "imagePublicId": public_ids[0],
            "updatedAt": utcnow(),
            "lastUpdatedBy": current.user_id,
        }},
        return_document=ReturnDocument.AFTER,
    )
    if updated is None:
        media.destroy_all(uploaded)
        raise NotFoundError("Property not found")

    audit.record(
        db, request, "PROPERTY_IMAGES_ADDED", current,
        propertyId=str(existing["_id"]),
        imageCount=len(uploaded),
    )
    return {"success": True, "message": f"Uploaded {len(uploaded)} images", "data": serialize_doc(updated)}


@router.delete("/{property_id}/images/{public_id:path}")
def remove_property_image(
    property_id: str,
    public_id: str,
    request: Request,
    db: Database = Depends(get_db),
    current: Identity = Depends(get_current_user),
):
    existing = _get_property(db, property_id)
    require_owner_or_admin(current, existing.get("createdByEmail"),
                           "Access denied: You can only edit your own properties")

    public_ids = list(existing.get("imagePublicIds") or [])
    if public_id not in public_ids:
        raise NotFoundError("Image not found")
    index = public_ids.index(public_id)
    urls = list(existing.get("images") or [])
    del public_ids[index]
    if index < len(urls):
        del urls[index]

    media.destroy(public_id)
    updated = db[PROPERTIES].find_one_and_update(
        {"_id": existing["_id"]},
        {"$set": {
            "images": urls,
            "imagePublicIds": public_ids,
            "image": urls[0] if urls else "",
            "imagePublicId": public_ids[0] if public_ids else "",
            "updatedAt": utcnow(),
            "lastUpdatedBy": current.user_id,
        }},
        return_document=ReturnDocument.AFTER,
    )
    if updated is None:
        raise NotFoundError("Property not found")

    audit.record(db, request, "PROPERTY_IMAGE_REMOVED", current,
                 propertyId=str(existing["_id"]), imagePublicId=public_id)
    return {"success": True, "message": "Image removed", "data": serialize_doc(updated)}
