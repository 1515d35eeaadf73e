"""
Catalog: products, accessories, full marine setups and categories.

The three sellable kinds share one router factory; they differ only in
collection, labels and whether they reference a category.
"""
import math
import re
from typing import List, Optional

import structlog
from fastapi import APIRouter, Depends, File, Form, Query, UploadFile
from pydantic import Field
from pymongo import DESCENDING
from pymongo.database import Database

from auth import Principal, get_current_user, require_admin
from config import Settings, get_settings
from database import (
    create_document,
    get_db,
    is_object_id,
    parse_object_id,
    save_document,
    serialize_doc,
)
from errors import AppError, NotFoundError, ValidationError
from reviews import add_review
from schemas import CamelModel, CatalogItem, Category
from uploads import discard_images, save_image, save_images

logger = structlog.get_logger(__name__)

PAGE_SIZE = 10

SORT_OPTIONS = {
    "popularity": [("num_reviews", DESCENDING)],
    "rating": [("rating", DESCENDING)],
    "date": [("created_at", DESCENDING)],
}


class CatalogKind:
    def __init__(
        self,
        prefix: str,
        collection: str,
        label: str,
        list_key: str,
        has_category: bool = True,
        images_required: bool = False,
        default_sort: str = "popularity",
        keyword_matches_category: bool = False,
    ):
        self.prefix = prefix
        self.collection = collection
        self.label = label
        self.list_key = list_key
        self.has_category = has_category
        self.images_required = images_required
        self.default_sort = default_sort
        self.keyword_matches_category = keyword_matches_category


PRODUCTS = CatalogKind(
    "/api/products", "products", "Product", "products",
    images_required=True, keyword_matches_category=True,
)
ACCESSORIES = CatalogKind("/api/accessories", "accessories", "Accessory", "accessories", default_sort="date")
MARINE_SETUPS = CatalogKind(
    "/api/full-marine-setup", "full_marine_setups", "Product", "products",
    has_category=False, default_sort="date",
)


# ----------------------- Categories -----------------------
def resolve_category(db: Database, value: Optional[str]):
    """Accept a category id or name; unknown names are created on the fly."""
    if not value:
        raise ValidationError("Invalid category")
    if is_object_id(value):
        category = db["categories"].find_one({"_id": parse_object_id(value, "Category")})
        if not category:
            raise ValidationError("Invalid category")
        return category["_id"]

    category = db["categories"].find_one({"name": value})
    if not category:
        category = create_document(
            db, "categories", Category(name=value, description=f"Category for {value}")
        )
        logger.info("category_created_implicitly", name=value)
    return category["_id"]


def _category_ids_by_name(db: Database, names: List[str]):
    return [c["_id"] for c in db["categories"].find({"name": {"$in": names}}, {"_id": 1})]


def _name_regex(keyword: str) -> dict:
    return {"$regex": re.escape(keyword), "$options": "i"}


def build_filter(
    db: Database,
    kind: CatalogKind,
    keyword: Optional[str] = None,
    categories: Optional[List[str]] = None,
    min_price: Optional[float] = None,
    max_price: Optional[float] = None,
) -> dict:
    filt = {}
    if keyword:
        if kind.keyword_matches_category:
            matching = [c["_id"] for c in db["categories"].find({"name": _name_regex(keyword)}, {"_id": 1})]
            filt["$or"] = [{"name": _name_regex(keyword)}, {"category": {"$in": matching}}]
        else:
            filt["name"] = _name_regex(keyword)

    if categories and kind.has_category:
        ids = _category_ids_by_name(db, categories)
        # unknown category names do not narrow the listing
        if ids:
            filt["category"] = {"$in": ids}

    if min_price is not None or max_price is not None:
        price = {}
        if min_price is not None:
            price["$gte"] = min_price
        if max_price is not None:
            price["$lte"] = max_price
        filt["price"] = price
    return filt


def _with_category(db: Database, docs: List[dict], fields=("name",)) -> List[dict]:
    ids = {d.get("category") for d in docs if d.get("category") is not None}
    projection = {f: 1 for f in fields}
    lookup = {c["_id"]: serialize_doc(c) for c in db["categories"].find({"_id": {"$in": list(ids)}}, projection)}
    out = []
    for doc in docs:
        item = serialize_doc(doc)
        if doc.get("category") is not None:
            item["category"] = lookup.get(doc["category"])
        out.append(item)
    return out


def list_items(
    db: Database,
    kind: CatalogKind,
    page: int = 1,
    keyword: Optional[str] = None,
    categories: Optional[List[str]] = None,
    min_price: Optional[float] = None,
    max_price: Optional[float] = None,
    sort_by: Optional[str] = None,
) -> dict:
    filt = build_filter(db, kind, keyword, categories, min_price, max_price)
    sort = SORT_OPTIONS.get(sort_by or kind.default_sort, SORT_OPTIONS[kind.default_sort])
    collection = db[kind.collection]

    count = collection.count_documents(filt)
    docs = list(collection.find(filt).sort(sort).skip(PAGE_SIZE * (page - 1)).limit(PAGE_SIZE))
    return {kind.list_key: _with_category(db, docs), "page": page, "pages": math.ceil(count / PAGE_SIZE)}


def top_items(db: Database, kind: CatalogKind, limit: int = 3) -> List[dict]:
    return [serialize_doc(d) for d in db[kind.collection].find({}).sort("rating", DESCENDING).limit(limit)]


def category_facets(db: Database, kind: CatalogKind) -> List[dict]:
    counts = db[kind.collection].aggregate(
        [
            {"$match": {"category": {"$ne": None}}},
            {"$group": {"_id": "$category", "count": {"$sum": 1}}},
        ]
    )
    counts = {row["_id"]: row["count"] for row in counts}
    facets = []
    for category in db["categories"].find({"_id": {"$in": list(counts)}}):
        facets.append(
            {
                "id": str(category["_id"]),
                "name": category.get("name"),
                "image": category.get("image"),
                "count": counts[category["_id"]],
            }
        )
    return facets


def get_item(db: Database, kind: CatalogKind, item_id: str) -> dict:
    doc = db[kind.collection].find_one({"_id": parse_object_id(item_id, kind.label)})
    if not doc:
        raise NotFoundError(f"{kind.label} not found")
    return _with_category(db, [doc], fields=("name", "description", "image"))[0]


def create_item(db: Database, kind: CatalogKind, data: dict) -> dict:
    if kind.images_required and not data.get("images"):
        raise ValidationError("At least one image is required")
    if kind.has_category:
        data["category"] = resolve_category(db, data.get("category"))
    else:
        data.pop("category", None)

    item = CatalogItem(**{k: v for k, v in data.items() if k != "category"})
    doc = item.model_dump()
    doc["category"] = data.get("category")
    doc = create_document(db, kind.collection, doc)
    logger.info("catalog_item_created", kind=kind.collection, item_id=str(doc["_id"]), name=doc["name"])
    return doc


def update_item(db: Database, kind: CatalogKind, item_id: str, changes: dict) -> dict:
    doc = db[kind.collection].find_one({"_id": parse_object_id(item_id, kind.label)})
    if not doc:
        raise NotFoundError(f"{kind.label} not found")

    changes = {k: v for k, v in changes.items() if v is not None}
    if not changes.get("images"):
        changes.pop("images", None)
    if "category" in changes:
        if kind.has_category:
            changes["category"] = resolve_category(db, changes["category"])
        else:
            changes.pop("category")
    if "price" in changes and changes["price"] < 0:
        raise ValidationError("Price must be non-negative")
    if "stock" in changes and changes["stock"] < 0:
        raise ValidationError("Stock must be non-negative")

    doc.update(changes)
    save_document(db, kind.collection, doc)
    logger.info("catalog_item_updated", kind=kind.collection, item_id=item_id, fields=sorted(changes))
    return doc


def delete_item(db: Database, kind: CatalogKind, item_id: str) -> None:
    res = db[kind.collection].delete_one({"_id": parse_object_id(item_id, kind.label)})
    if res.deleted_count == 0:
        raise NotFoundError(f"{kind.label} not found")
    logger.info("catalog_item_deleted", kind=kind.collection, item_id=item_id)


# ----------------------- Routes -----------------------
class ReviewBody(CamelModel):
    rating: int = Field(..., ge=1, le=5)
    comment: str = ""


def build_catalog_router(kind: CatalogKind) -> APIRouter:
    router = APIRouter(prefix=kind.prefix, tags=[kind.collection])

    @router.get("")
    def list_route(
        page: int = Query(1, alias="pageNumber", ge=1),
        keyword: Optional[str] = None,
        category: Optional[List[str]] = Query(None),
        min_price: Optional[float] = Query(None, alias="minPrice"),
        max_price: Optional[float] = Query(None, alias="maxPrice"),
        sort_by: Optional[str] = Query(None, alias="sortBy"),
        db: Database = Depends(get_db),
    ):
        return list_items(db, kind, page, keyword, category, min_price, max_price, sort_by)

    @router.get("/top")
    def top_route(db: Database = Depends(get_db)):
        return top_items(db, kind)

    if kind.has_category:

        @router.get("/categories")
        def facets_route(db: Database = Depends(get_db)):
            return category_facets(db, kind)

    @router.get("/{item_id}")
    def get_route(item_id: str, db: Database = Depends(get_db)):
        return get_item(db, kind, item_id)

    @router.post("", status_code=201)
    def create_route(
        name: str = Form(...),
        description: str = Form(...),
        price: float = Form(..., ge=0),
        stock: int = Form(0, ge=0),
        category: Optional[str] = Form(None),
        additional_info: str = Form("", alias="additionalInfo"),
        images: Optional[List[UploadFile]] = File(None),
        admin: Principal = Depends(require_admin),
        db: Database = Depends(get_db),
        settings: Settings = Depends(get_settings),
    ):
        data = {
            "name": name,
            "description": description,
            "price": price,
            "stock": stock,
            "category": category,
            "additional_info": additional_info or "",
            "images": save_images(images, settings),
        }
        try:
            return serialize_doc(create_item(db, kind, data))
        except AppError:
            discard_images(data["images"], settings)
            raise

    @router.put("/{item_id}")
    def update_route(
        item_id: str,
        name: Optional[str] = Form(None),
        description: Optional[str] = Form(None),
        price: Optional[float] = Form(None),
        stock: Optional[int] = Form(None),
        category: Optional[str] = Form(None),
        additional_info: Optional[str] = Form(None, alias="additionalInfo"),
        images: Optional[List[UploadFile]] = File(None),
        admin: Principal = Depends(require_admin),
        db: Database = Depends(get_db),
        settings: Settings = Depends(get_settings),
    ):
        changes = {
            "name": name,
            "description": description,
            "price": price,
            "stock": stock,
            "category": category,
            "additional_info": additional_info,
            "images": save_images(images, settings),
        }
        try:
            return serialize_doc(update_item(db, kind, item_id, changes))
        except AppError:
            discard_images(changes["images"], settings)
            raise

    @router.delete("/{item_id}")
    def delete_route(item_id: str, admin: Principal = Depends(require_admin), db: Database = Depends(get_db)):
        delete_item(db, kind, item_id)
        return {"message": f"{kind.label} removed"}

    @router.post("/{item_id}/reviews", status_code=201)
    def review_route(
        item_id: str,
        body: ReviewBody,
        user: Principal = Depends(get_current_user),
        db: Database = Depends(get_db),
    ):
        add_review(db[kind.collection], item_id, user.id, user.name, body.rating, body.comment, kind.label)
        return {"message": "Review added"}

    return router


product_router = build_catalog_router(PRODUCTS)
accessory_router = build_catalog_router(ACCESSORIES)
marine_setup_router = build_catalog_router(MARINE_SETUPS)


# ----------------------- Category routes -----------------------
category_router = APIRouter(prefix="/api/categories", tags=["categories"])


def _category_or_404(db: Database, category_id: str) -> dict:
    category = db["categories"].find_one({"_id": parse_object_id(category_id, "Category")})
    if not category:
        raise NotFoundError("Category not found")
    return category


@category_router.get("")
def list_categories(db: Database = Depends(get_db)):
    categories = []
    for category in db["categories"].find({}):
        item = serialize_doc(category)
        item["product_count"] = db["products"].count_documents({"category": category["_id"]})
        categories.append(item)
    return categories


@category_router.get("/{category_id}")
def get_category(category_id: str, db: Database = Depends(get_db)):
    return serialize_doc(_category_or_404(db, category_id))


@category_router.post("", status_code=201)
def create_category(
    name: Optional[str] = Form(None),
    description: Optional[str] = Form(None),
    image: Optional[UploadFile] = File(None),
    admin: Principal = Depends(require_admin),
    db: Database = Depends(get_db),
    settings: Settings = Depends(get_settings),
):
    name = (name or "").strip()
    description = (description or "").strip()
    if not name or not description:
        missing = " ".join(f for f, v in (("name", name), ("description", description)) if not v)
        raise ValidationError(f"Missing required fields: {missing}")

    filename = save_image(image, settings) if image is not None and image.filename else None
    doc = create_document(db, "categories", Category(name=name, description=description, image=filename))
    logger.info("category_created", category_id=str(doc["_id"]), name=name)
    return serialize_doc(doc)


@category_router.put("/{category_id}")
def update_category(
    category_id: str,
    name: Optional[str] = Form(None),
    description: Optional[str] = Form(None),
    image: Optional[UploadFile] = File(None),
    admin: Principal = Depends(require_admin),
    db: Database = Depends(get_db),
    settings: Settings = Depends(get_settings),
):
    category = _category_or_404(db, category_id)
    if name:
        category["name"] = name.strip()
    if description:
        category["description"] = description.strip()
    if image is not None and image.filename:
        category["image"] = save_image(image, settings)
    save_document(db, "categories", category)
    return serialize_doc(category)


@category_router.delete("/{category_id}")
def delete_category(category_id: str, admin: Principal = Depends(require_admin), db: Database = Depends(get_db)):
    res = db["categories"].delete_one({"_id": parse_object_id(category_id, "Category")})
    if res.deleted_count == 0:
        raise NotFoundError("Category not found")
    return {"message": "Category removed"}
