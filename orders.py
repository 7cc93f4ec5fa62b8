"""
Order state machine.

An order is created from one cart line plus a snapshot of the selected
address, and afterwards only its status moves:

    pending -> processing -> shipped -> delivered -> return -> returned

``cancelled`` is terminal and reachable from any status except delivered
and returned. Status writes are compare-and-set on the current status so
two concurrent transitions cannot both succeed.

Placing an order first claims the cart line (a versioned account write that
stamps the line with the new order id), then stores the order, then pulls
the claimed line. A second placement for the same line finds the claim and
is refused, so one cart line yields at most one order.
"""
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Dict, List, Tuple

import structlog
from bson import ObjectId
from pymongo import DESCENDING
from pymongo.database import Database
from pymongo.errors import PyMongoError

from accounts import load_account, mutate_account
from database import serialize_doc
from errors import (
    BadRequest,
    CartSyncError,
    Conflict,
    Forbidden,
    Internal,
    NotFound,
    ShopError,
    Unauthenticated,
)
from schemas import Account, AddressSnapshot, CartLine, Order, OrderStatus, Role

logger = structlog.get_logger(__name__)

NEXT_STATUS = {
    OrderStatus.PENDING: OrderStatus.PROCESSING,
    OrderStatus.PROCESSING: OrderStatus.SHIPPED,
    OrderStatus.SHIPPED: OrderStatus.DELIVERED,
    OrderStatus.RETURN: OrderStatus.RETURNED,
}

NOT_CANCELLABLE = (OrderStatus.DELIVERED, OrderStatus.RETURNED, OrderStatus.CANCELLED)

STAFF_ROLES = (Role.SELLER, Role.ADMIN)

# a claim older than this belongs to a placement that died before storing its order
CLAIM_TIMEOUT = timedelta(seconds=30)


# Transition rules
def check_return(status: OrderStatus) -> OrderStatus:
    if status != OrderStatus.DELIVERED:
        raise BadRequest("Order cannot be returned")
    return OrderStatus.RETURN


def check_cancel(status: OrderStatus) -> OrderStatus:
    if status in NOT_CANCELLABLE:
        raise BadRequest(f"{status.value} Order cannot be cancelled")
    return OrderStatus.CANCELLED


def check_advance(status: OrderStatus, target: OrderStatus) -> OrderStatus:
    if NEXT_STATUS.get(status) != target:
        raise BadRequest(f"Order cannot move from {status.value} to {target.value}")
    return target


def _as_utc(value: datetime) -> datetime:
    return value if value.tzinfo else value.replace(tzinfo=timezone.utc)


def claim_line(
    account: Account,
    product_id: ObjectId,
    order_id: ObjectId,
    now: datetime,
    order_exists: Callable[[ObjectId], bool],
) -> Tuple[CartLine, AddressSnapshot]:
    line = account.find_line(product_id)
    if line is None:
        raise NotFound("Product not found in cart")
    if line.order_id is not None:
        if order_exists(line.order_id):
            raise Conflict(f"Order {line.order_id} was already placed for this product")
        if now - _as_utc(line.claimed_at or now) < CLAIM_TIMEOUT:
            raise Conflict("An order for this product is already being placed")

    selected = account.selected_addresses()
    if len(selected) != 1:
        raise BadRequest("Please select an address before placing the order")

    line.order_id = order_id
    line.claimed_at = now
    return line, selected[0].snapshot()


# Store-backed operations
def _find_own_order(db: Database, user_id: ObjectId, order_id: ObjectId) -> Dict[str, Any]:
    doc = db["order"].find_one({"_id": order_id, "user_id": user_id})
    if not doc:
        raise NotFound("Order not found")
    return doc


def _set_status(db: Database, doc: Dict[str, Any], target: OrderStatus) -> Dict[str, Any]:
    result = db["order"].update_one(
        {"_id": doc["_id"], "status": doc["status"]},
        {"$set": {"status": target.value, "updated_at": datetime.now(timezone.utc)}},
    )
    if not result.modified_count:
        raise Conflict("Order status changed concurrently, please retry")
    logger.info("order status changed", order_id=str(doc["_id"]), previous=doc["status"], status=target.value)
    return serialize_doc({**doc, "status": target.value})


def list_orders(db: Database, user_id: ObjectId) -> List[Dict[str, Any]]:
    load_account(db, user_id)
    cursor = db["order"].find({"user_id": user_id}).sort("order_date", DESCENDING)
    return [serialize_doc(doc) for doc in cursor]


def order_details(db: Database, user_id: ObjectId, order_id: ObjectId) -> Dict[str, Any]:
    return serialize_doc(_find_own_order(db, user_id, order_id))


def place_order(db: Database, user_id: ObjectId, product_id: ObjectId, retries: int = 3) -> Dict[str, Any]:
    try:
        account = load_account(db, user_id)
    except NotFound:
        raise Unauthenticated("User not found")

    # An earlier placement stored its order but could not drop the line: finish that cleanup.
    stale = account.find_line(product_id)
    if stale is not None and stale.order_id is not None and _order_exists(db, stale.order_id):
        _pull_claimed_line(db, user_id, product_id, stale.order_id)
        raise Conflict(f"Order {stale.order_id} was already placed for this product")

    order_id = ObjectId()
    now = datetime.now(timezone.utc)
    line, address = mutate_account(
        db,
        user_id,
        lambda acc: claim_line(acc, product_id, order_id, now, lambda oid: _order_exists(db, oid)),
        retries,
    )

    order = Order(
        id=order_id,
        user_id=account.id,
        product_id=line.product_id,
        quantity=line.quantity,
        address=address,
        role=account.role,
        order_date=now,
    )
    try:
        db["order"].insert_one(order.to_document())
    except PyMongoError:
        _release_claim(db, user_id, product_id, order_id, retries)
        raise
    logger.info("order placed", order_id=str(order_id), user_id=str(user_id), product_id=str(product_id))

    # The order is already stored; a failed cleanup is reported, not rolled back.
    _pull_claimed_line(db, user_id, product_id, order_id)
    return serialize_doc(order.to_document())


def _order_exists(db: Database, order_id: ObjectId) -> bool:
    return db["order"].find_one({"_id": order_id}) is not None


def _pull_claimed_line(db: Database, user_id: ObjectId, product_id: ObjectId, order_id: ObjectId) -> None:
    try:
        result = db["user"].update_one(
            {"_id": user_id},
            {"$pull": {"cart": {"product_id": product_id, "order_id": order_id}}, "$inc": {"version": 1}},
        )
    except PyMongoError as e:
        logger.error("cart cleanup failed after order", order_id=str(order_id), error=str(e))
        raise CartSyncError(str(order_id), str(e)) from e
    if not result.modified_count:
        logger.warning("cart line already gone after order", order_id=str(order_id), product_id=str(product_id))


def _release_claim(db: Database, user_id: ObjectId, product_id: ObjectId, order_id: ObjectId, retries: int) -> None:
    def release(account):
        line = account.find_line(product_id)
        if line is not None and line.order_id == order_id:
            line.order_id = None
            line.claimed_at = None

    try:
        mutate_account(db, user_id, release, retries)
    except (PyMongoError, ShopError) as e:
        # the claim expires after CLAIM_TIMEOUT anyway
        logger.error("cart claim release failed", order_id=str(order_id), error=str(e))


def _current_status(doc: Dict[str, Any]) -> OrderStatus:
    try:
        return OrderStatus(doc.get("status"))
    except ValueError:
        raise Internal(f"Order {doc['_id']} has unknown status {doc.get('status')!r}")


def mark_returned(db: Database, user_id: ObjectId, order_id: ObjectId) -> Dict[str, Any]:
    doc = _find_own_order(db, user_id, order_id)
    return _set_status(db, doc, check_return(_current_status(doc)))


def cancel(db: Database, user_id: ObjectId, order_id: ObjectId) -> Dict[str, Any]:
    doc = _find_own_order(db, user_id, order_id)
    return _set_status(db, doc, check_cancel(_current_status(doc)))


def advance(db: Database, user_id: ObjectId, order_id: ObjectId, target: OrderStatus) -> Dict[str, Any]:
    account = load_account(db, user_id)
    if account.role not in STAFF_ROLES:
        raise Forbidden("Only sellers and admins can update order status")
    doc = db["order"].find_one({"_id": order_id})
    if not doc:
        raise NotFound("Order not found")
    return _set_status(db, doc, check_advance(_current_status(doc), target))
