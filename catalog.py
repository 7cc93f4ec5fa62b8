"""
Catalog store: categories and the products filed under them.

A product always points at an existing category; the reference is checked
on create and again whenever an update changes it. Category names are kept
lowercase and unique.
"""
from datetime import datetime, timezone
from typing import Any, Dict, List

import structlog
from bson import ObjectId
from pymongo.database import Database
from pymongo.errors import DuplicateKeyError

from database import create_document, get_documents, serialize_doc
from errors import BadRequest, Conflict, NotFound
from schemas import Category, Product

logger = structlog.get_logger(__name__)


def normalize_category(name: str) -> str:
    name = (name or "").strip().lower()
    if not name:
        raise BadRequest("Please provide the category name")
    return name


def _require_category(db: Database, category_id: ObjectId) -> Dict[str, Any]:
    doc = db["category"].find_one({"_id": category_id})
    if not doc:
        raise NotFound("Category not found")
    return doc


# Categories
def add_category(db: Database, name: str) -> str:
    name = normalize_category(name)
    if db["category"].find_one({"name": name}):
        raise Conflict(f"Category {name} already exists")
    try:
        category_id = create_document(db, "category", Category(name=name))
    except DuplicateKeyError:
        raise Conflict(f"Category {name} already exists")
    logger.info("category added", category_id=category_id, name=name)
    return category_id


def list_categories(db: Database) -> List[Dict[str, Any]]:
    return [serialize_doc(c) for c in get_documents(db, "category")]


def rename_category(db: Database, category_id: ObjectId, name: str) -> None:
    _require_category(db, category_id)
    name = normalize_category(name)
    clash = db["category"].find_one({"name": name, "_id": {"$ne": category_id}})
    if clash:
        raise Conflict(f"Category {name} already exists")
    try:
        db["category"].update_one(
            {"_id": category_id},
            {"$set": {"name": name, "updated_at": datetime.now(timezone.utc)}},
        )
    except DuplicateKeyError:
        raise Conflict(f"Category {name} already exists")
    logger.info("category renamed", category_id=str(category_id), name=name)


def remove_category(db: Database, category_id: ObjectId) -> None:
    result = db["category"].delete_one({"_id": category_id})
    if not result.deleted_count:
        raise NotFound("Category not found")
    logger.info("category removed", category_id=str(category_id))


# Products
def add_product(db: Database, product: Product) -> str:
    _require_category(db, product.category_id)
    product_id = create_document(db, "product", product)
    logger.info("product added", product_id=product_id, category_id=str(product.category_id))
    return product_id


def get_product(db: Database, product_id: ObjectId) -> Dict[str, Any]:
    doc = db["product"].find_one({"_id": product_id})
    if not doc:
        raise NotFound("Product not found")
    return serialize_doc(doc)


def products_in_category(db: Database, category_id: ObjectId) -> List[Dict[str, Any]]:
    _require_category(db, category_id)
    return [serialize_doc(p) for p in get_documents(db, "product", {"category_id": category_id})]


def update_product(db: Database, product_id: ObjectId, updates: Dict[str, Any]) -> None:
    if not updates:
        raise BadRequest("No updates provided")
    if not db["product"].find_one({"_id": product_id}):
        raise NotFound("Product not found")
    if "category_id" in updates:
        _require_category(db, updates["category_id"])
    updates["updated_at"] = datetime.now(timezone.utc)
    db["product"].update_one({"_id": product_id}, {"$set": updates})
    logger.info("product updated", product_id=str(product_id), fields=sorted(updates))


def remove_product(db: Database, product_id: ObjectId) -> None:
    result = db["product"].delete_one({"_id": product_id})
    if not result.deleted_count:
        raise NotFound("Product not found")
    logger.info("product removed", product_id=str(product_id))
