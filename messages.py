"""Customer contact messages. Anyone may send one; admins read, reply and delete."""
import logging
from datetime import datetime, timezone
from typing import Any, Dict

from pymongo import ReturnDocument

from database import create_document, to_object_id
from errors import InvalidInput, NotFound
from products import paginate
from schemas import Message as MessageSchema

logger = logging.getLogger(__name__)

DEFAULT_LIMIT = 20
MAX_LIMIT = 50


def _message_id(message_id: str):
    obj_id = to_object_id(message_id)
    if obj_id is None:
        raise InvalidInput("Invalid message ID")
    return obj_id


def create_message(db, name: str, email: str, subject: str, message: str) -> Dict[str, Any]:
    doc = MessageSchema(
        name=name.strip(),
        email=email.strip().lower(),
        subject=subject,
        message=message.strip(),
    )
    message_id = create_document("message", doc, database=db)
    logger.info("Message %s received (%s)", message_id, subject)
    created = db["message"].find_one({"_id": to_object_id(message_id)}, {"createdAt": 1})
    return {"id": message_id, "createdAt": created["createdAt"]}


def list_messages(db, page: int = 1, limit: int = DEFAULT_LIMIT) -> Dict[str, Any]:
    total = db["message"].count_documents({})
    unread = db["message"].count_documents({"isRead": False})
    pages = paginate(page, limit, total, max_limit=MAX_LIMIT, default_limit=DEFAULT_LIMIT)
    messages = list(
        db["message"].find({}).sort("createdAt", -1).skip(pages["skip"]).limit(pages["limit"])
    )
    return {
        "messages": messages,
        "pagination": {
            "totalMessages": pages["totalItems"],
            "unreadMessages": unread,
            "currentPage": pages["currentPage"],
            "totalPages": pages["totalPages"],
            "hasNextPage": pages["hasNextPage"],
            "hasPrevPage": pages["hasPrevPage"],
            "limit": pages["limit"],
        },
    }


def mark_as_read(db, message_id: str) -> Dict[str, Any]:
    updated = db["message"].find_one_and_update(
        {"_id": _message_id(message_id)},
        {"$set": {"isRead": True, "updatedAt": datetime.now(timezone.utc)}},
        return_document=ReturnDocument.AFTER,
    )
    if not updated:
        raise NotFound("Message not found")
    return updated


def reply_to_message(db, message_id: str, reply: str) -> Dict[str, Any]:
    now = datetime.now(timezone.utc)
    updated = db["message"].find_one_and_update(
        {"_id": _message_id(message_id)},
        {"$set": {"adminReply": reply.strip(), "repliedAt": now, "isRead": True, "updatedAt": now}},
        return_document=ReturnDocument.AFTER,
    )
    if not updated:
        raise NotFound("Message not found")
    logger.info("Message %s replied", message_id)
    return updated


def delete_message(db, message_id: str) -> None:
    res = db["message"].delete_one({"_id": _message_id(message_id)})
    if res.deleted_count == 0:
        raise NotFound("Message not found")
