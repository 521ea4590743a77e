"""
Notification fan-out.

A flat collection of per-recipient messages. Order placement and status
changes append to it; readers filter by their own recipient id ("admin" for
the store owner, the user id for shoppers). Each recipient keeps at most
NOTIFICATION_LIMIT messages, oldest pruned first.
"""
from typing import List, Optional

import structlog
from pymongo import DESCENDING

from config import NOTIFICATION_LIMIT
from database import db, get_documents, now_utc
from schemas import ADMIN_RECIPIENT, Notification, NotificationType

logger = structlog.get_logger(__name__)

COLLECTION = "notification"


def short_id(order_id: str) -> str:
    """Human-friendly order code: the last six characters of the id."""
    return order_id[-6:]


def recipient_for(user: dict) -> str:
    if user.get("role") == "admin":
        return ADMIN_RECIPIENT
    return user["id"]


def push(notifications: List[Notification]) -> List[str]:
    """Append notifications in a single write and enforce the per-recipient cap."""
    if not notifications:
        return []
    stamp = now_utc()
    docs = []
    for n in notifications:
        doc = n.model_dump()
        doc["created_at"] = stamp
        doc["updated_at"] = stamp
        docs.append(doc)
    result = db[COLLECTION].insert_many(docs)
    for recipient in {d["recipient_id"] for d in docs}:
        _prune(recipient)
    logger.info("notifications_pushed", count=len(docs), recipients=sorted({d["recipient_id"] for d in docs}))
    return [str(i) for i in result.inserted_ids]


def _prune(recipient_id: str):
    stale = (
        db[COLLECTION]
        .find({"recipient_id": recipient_id}, {"_id": 1})
        .sort([("created_at", DESCENDING), ("_id", DESCENDING)])
        .skip(NOTIFICATION_LIMIT)
    )
    stale_ids = [d["_id"] for d in stale]
    if stale_ids:
        db[COLLECTION].delete_many({"_id": {"$in": stale_ids}})


def notify_order_placed(order_id: str, user: dict) -> List[str]:
    code = short_id(order_id)
    return push([
        Notification(
            recipient_id=ADMIN_RECIPIENT,
            message=f"New Order #{code} from {user['name']}",
            type=NotificationType.ORDER,
            order_id=order_id,
        ),
        Notification(
            recipient_id=user["id"],
            message=f"Order #{code} placed successfully! Status: Pending Review",
            type=NotificationType.ORDER,
            order_id=order_id,
        ),
    ])


def notify_status_changed(order_id: str, owner_id: str, status: str) -> List[str]:
    code = short_id(order_id)
    return push([
        Notification(
            recipient_id=owner_id,
            message=f"Order #{code} update: {status}",
            type=NotificationType.ORDER,
            order_id=order_id,
        ),
        Notification(
            recipient_id=ADMIN_RECIPIENT,
            message=f"Order #{code} marked as {status}",
            type=NotificationType.ORDER,
            order_id=order_id,
        ),
    ])


def notify_welcome(user_id: str, name: str, store_name: str) -> List[str]:
    return push([Notification(recipient_id=user_id, message=f"Welcome to {store_name}, {name}!", type=NotificationType.INFO)])


def notify_review(product_name: str, rating: int, author: str) -> List[str]:
    return push([
        Notification(
            recipient_id=ADMIN_RECIPIENT,
            message=f"New {rating}★ review on \"{product_name}\" by {author}",
            type=NotificationType.INFO,
        )
    ])


def list_for(recipient_id: str, unread_only: bool = False) -> List[dict]:
    flt = {"recipient_id": recipient_id}
    if unread_only:
        flt["read"] = False
    return get_documents(COLLECTION, flt, limit=NOTIFICATION_LIMIT)


def unread_count(recipient_id: str) -> int:
    return db[COLLECTION].count_documents({"recipient_id": recipient_id, "read": False})


def mark_read(notification_id, recipient_id: str) -> Optional[dict]:
    """Flag one notification as read; None when it does not belong to the recipient."""
    doc = db[COLLECTION].find_one({"_id": notification_id})
    if not doc or doc.get("recipient_id") != recipient_id:
        return None
    db[COLLECTION].update_one({"_id": notification_id}, {"$set": {"read": True, "updated_at": now_utc()}})
    doc["read"] = True
    return doc


def mark_all_read(recipient_id: str) -> int:
    res = db[COLLECTION].update_many(
        {"recipient_id": recipient_id, "read": False},
        {"$set": {"read": True, "updated_at": now_utc()}},
    )
    return res.modified_count


def delete_for(recipient_id: str) -> int:
    return db[COLLECTION].delete_many({"recipient_id": recipient_id}).deleted_count
