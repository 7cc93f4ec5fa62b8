"""
Cart state machine.

The cart is a list of (product, quantity) lines embedded in the account.
A product appears at most once and every quantity stays within
[MIN_QUANTITY, MAX_QUANTITY]; the increase/decrease operations refuse to
step past either bound rather than clamping or deleting the line.
"""
from typing import Any, Dict, List

import structlog
from bson import ObjectId
from pymongo.database import Database

from accounts import load_account, mutate_account
from database import serialize_doc
from errors import BadRequest, Conflict, LimitExceeded, NotFound
from schemas import MAX_QUANTITY, MIN_QUANTITY, Account, CartLine

logger = structlog.get_logger(__name__)


# Transitions on an in-memory Account
def add_line(account: Account, product_id: ObjectId, quantity: int = 1) -> CartLine:
    if not MIN_QUANTITY <= quantity <= MAX_QUANTITY:
        raise BadRequest(f"Quantity must be between {MIN_QUANTITY} and {MAX_QUANTITY}")
    if account.find_line(product_id) is not None:
        raise Conflict("Product already in cart")
    line = CartLine(product_id=product_id, quantity=quantity)
    account.cart.append(line)
    return line


def _require_line(account: Account, product_id: ObjectId) -> CartLine:
    line = account.find_line(product_id)
    if line is None:
        raise NotFound("Product not found in cart")
    return line


def increase_line(account: Account, product_id: ObjectId) -> CartLine:
    line = _require_line(account, product_id)
    if line.quantity >= MAX_QUANTITY:
        raise LimitExceeded(f"You Cannot add more than {MAX_QUANTITY} items")
    line.quantity += 1
    return line


def decrease_line(account: Account, product_id: ObjectId) -> CartLine:
    line = _require_line(account, product_id)
    if line.quantity <= MIN_QUANTITY:
        raise LimitExceeded(f"You cannot decrease less than {MIN_QUANTITY} item.")
    line.quantity -= 1
    return line


# Store-backed operations
def list_cart(db: Database, user_id: ObjectId) -> List[Dict[str, Any]]:
    account = load_account(db, user_id)
    return [serialize_doc(line.public()) for line in account.cart]


def add_to_cart(db: Database, user_id: ObjectId, product_id: ObjectId, quantity: int = 1, retries: int = 3) -> None:
    # make sure the account exists before looking at the product
    load_account(db, user_id)
    product = db["product"].find_one({"_id": product_id, "availability": True})
    if not product:
        raise NotFound("Product is not available")

    mutate_account(db, user_id, lambda account: add_line(account, product_id, quantity), retries)
    logger.info("cart line added", user_id=str(user_id), product_id=str(product_id), quantity=quantity)


def remove_from_cart(db: Database, user_id: ObjectId, product_id: ObjectId) -> None:
    result = db["user"].update_one(
        {"_id": user_id, "cart.product_id": product_id},
        {"$pull": {"cart": {"product_id": product_id}}, "$inc": {"version": 1}},
    )
    if not result.matched_count:
        raise NotFound("Product not found in cart")
    logger.info("cart line removed", user_id=str(user_id), product_id=str(product_id))


def increase_quantity(db: Database, user_id: ObjectId, product_id: ObjectId, retries: int = 3) -> int:
    line = mutate_account(db, user_id, lambda account: increase_line(account, product_id), retries)
    logger.info("cart quantity increased", user_id=str(user_id), product_id=str(product_id), quantity=line.quantity)
    return line.quantity


def decrease_quantity(db: Database, user_id: ObjectId, product_id: ObjectId, retries: int = 3) -> int:
    line = mutate_account(db, user_id, lambda account: decrease_line(account, product_id), retries)
    logger.info("cart quantity decreased", user_id=str(user_id), product_id=str(product_id), quantity=line.quantity)
    return line.quantity
