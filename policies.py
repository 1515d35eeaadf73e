"""Store policies kept in a single document."""

from typing import Optional

import structlog
from fastapi import APIRouter, Depends
from pymongo.database import Database

from auth import Principal, require_admin
from database import get_db, serialize_doc, utcnow
from schemas import CamelModel, Policy

logger = structlog.get_logger(__name__)

router = APIRouter(prefix="/api/policies", tags=["policies"])


class PolicyUpdateBody(CamelModel):
    shipping_policy: Optional[str] = None
    refund_policy: Optional[str] = None
    terms_and_conditions: Optional[str] = None
    privacy_policy: Optional[str] = None


def get_policies(db: Database) -> dict:
    doc = db["policies"].find_one({})
    if not doc:
        return Policy().model_dump()
    return serialize_doc(doc)


def update_policies(db: Database, changes: dict) -> dict:
    existing = db["policies"].find_one({}) or {}
    merged = {**Policy().model_dump(), **{k: v for k, v in existing.items() if k != "_id"}}
    merged.update({k: v for k, v in changes.items() if v is not None})
    merged["updated_at"] = utcnow()
    if "_id" in existing:
        db["policies"].replace_one({"_id": existing["_id"]}, merged)
    else:
        db["policies"].insert_one(merged)
    return get_policies(db)


@router.get("")
def read_policies(db: Database = Depends(get_db)):
    return get_policies(db)


@router.put("")
def write_policies(body: PolicyUpdateBody, admin: Principal = Depends(require_admin), db: Database = Depends(get_db)):
    logger.info("policies_updated", by=admin.id)
    return update_policies(db, body.model_dump())
