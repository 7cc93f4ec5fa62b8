"""
Account store: signup, login and the versioned read-modify-write used by
the cart and address operations.
"""
from typing import Any, Callable, Dict, Optional, Tuple, TypeVar

import structlog
from bson import ObjectId
from pymongo.database import Database
from pymongo.errors import DuplicateKeyError

from database import serialize_doc
from errors import Conflict, NotFound, Unauthenticated
from schemas import Account
from security import CredentialVerifier, PasswordHasher

logger = structlog.get_logger(__name__)

T = TypeVar("T")

PUBLIC_FIELDS_EXCLUDED = ("password_hash", "version")


def public_view(doc: Dict[str, Any]) -> Dict[str, Any]:
    return serialize_doc({k: v for k, v in doc.items() if k not in PUBLIC_FIELDS_EXCLUDED})


def load_account(db: Database, user_id: ObjectId) -> Account:
    doc = db["user"].find_one({"_id": user_id})
    if not doc:
        raise NotFound("User not found")
    return Account.model_validate(doc)


def mutate_account(
    db: Database,
    user_id: ObjectId,
    change: Callable[[Account], T],
    retries: int = 3,
) -> T:
    """Apply ``change`` to the stored account and save it with a version check.

    ``change`` mutates the Account in place and may raise a ShopError to
    abort. If another writer saved the account in between, the change is
    re-applied to a fresh copy, up to ``retries`` attempts.
    """
    for attempt in range(1, retries + 1):
        account = load_account(db, user_id)
        result = change(account)
        saved = db["user"].update_one(
            {"_id": user_id, "version": account.version},
            {
                "$set": {
                    "cart": [line.model_dump() for line in account.cart],
                    "addresses": [addr.model_dump(by_alias=True) for addr in account.addresses],
                },
                "$inc": {"version": 1},
            },
        )
        if saved.matched_count:
            return result
        logger.warning("account write lost version race", user_id=str(user_id), attempt=attempt)
    raise Conflict("Account was modified concurrently, please retry")


def signup(db: Database, hasher: PasswordHasher, name: str, email: str, password: str, phone: str) -> str:
    email_taken = db["user"].find_one({"email": email}) is not None
    phone_taken = db["user"].find_one({"phone": phone}) is not None
    if email_taken or phone_taken:
        raise Conflict(f"{_taken_label(email_taken, phone_taken)} already registered")

    account = Account(name=name, email=email, phone=phone, password_hash=hasher.hash(password))
    try:
        db["user"].insert_one(account.model_dump(by_alias=True))
    except DuplicateKeyError:
        # lost a race with a concurrent signup for the same email or phone
        raise Conflict("Email or Phone number already registered")
    logger.info("account registered", user_id=str(account.id))
    return str(account.id)


def _taken_label(email_taken: bool, phone_taken: bool) -> str:
    if email_taken and phone_taken:
        return "Email & Phone Number"
    return "Email" if email_taken else "Phone number"


def login(
    db: Database,
    hasher: PasswordHasher,
    verifier: CredentialVerifier,
    email: str,
    password: str,
) -> Tuple[str, Dict[str, Any]]:
    doc = db["user"].find_one({"email": email})
    if not doc:
        raise NotFound("User not found")
    if not hasher.verify(password, doc.get("password_hash", "")):
        raise Unauthenticated("Wrong Credentials")
    token = verifier.issue(doc["_id"])
    logger.info("login succeeded", user_id=str(doc["_id"]))
    return token, public_view(doc)


def details(db: Database, user_id: ObjectId) -> Dict[str, Any]:
    doc: Optional[Dict[str, Any]] = db["user"].find_one({"_id": user_id})
    if not doc:
        raise NotFound("User not found")
    return public_view(doc)
