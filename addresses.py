"""Address book and the single selected address used for checkout."""
from typing import Any, Dict, List

import structlog
from bson import ObjectId
from pymongo.database import Database

from accounts import load_account, mutate_account
from database import serialize_doc
from errors import NotFound
from schemas import Account, Address

logger = structlog.get_logger(__name__)


def _select_only(account: Account, address_id: ObjectId) -> None:
    for addr in account.addresses:
        addr.is_selected = addr.id == address_id


def append_address(account: Account, address: Address) -> Address:
    account.addresses.append(address)
    if address.is_selected:
        _select_only(account, address.id)
    return address


def select_address(account: Account, address_id: ObjectId) -> Address:
    chosen = next((addr for addr in account.addresses if addr.id == address_id), None)
    if chosen is None:
        raise NotFound("Address not found")
    _select_only(account, address_id)
    return chosen


def list_addresses(db: Database, user_id: ObjectId) -> List[Dict[str, Any]]:
    account = load_account(db, user_id)
    return [serialize_doc(addr.model_dump(by_alias=True)) for addr in account.addresses]


def add_address(db: Database, user_id: ObjectId, address: Address, retries: int = 3) -> str:
    mutate_account(db, user_id, lambda account: append_address(account, address), retries)
    logger.info("address added", user_id=str(user_id), address_id=str(address.id), selected=address.is_selected)
    return str(address.id)


def select(db: Database, user_id: ObjectId, address_id: ObjectId, retries: int = 3) -> None:
    mutate_account(db, user_id, lambda account: select_address(account, address_id), retries)
    logger.info("address selected", user_id=str(user_id), address_id=str(address_id))
