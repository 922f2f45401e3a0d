# docchat/persistence/conversations.py

import logging
import re
import uuid
from typing import List, Optional

from docchat.config import CHAT_TITLE_MAX_LENGTH, DEFAULT_CHAT_TITLE
from docchat.persistence.json_store import JsonStore, utcnow_iso

logger = logging.getLogger(__name__)

_CONVERSATION_ID_PATTERN = re.compile(r"^[0-9a-f]{32}$")


def is_valid_conversation_id(value: str) -> bool:
    return bool(value) and bool(_CONVERSATION_ID_PATTERN.match(value))


def generate_title(query: str, max_length: int = CHAT_TITLE_MAX_LENGTH) -> str:
    """First characters of the opening question, with an ellipsis if cut."""

    title = query[:max_length]

    if len(query) > max_length:
        title += "..."

    return title.strip() or DEFAULT_CHAT_TITLE


def make_message(role: str, content: str, sources: Optional[list] = None) -> dict:

    message = {"role": role, "content": content, "timestamp": utcnow_iso()}

    if sources is not None:
        message["sources"] = sources

    return message


class ConversationStore(JsonStore):

    def find_owned(self, conversation_id: str, user_id: str) -> Optional[dict]:

        record = self._records.get(conversation_id)

        if record is None or record["user_id"] != user_id:
            return None

        return dict(record)

    def append_exchange(
        self,
        user_id: str,
        user_message: dict,
        assistant_message: dict,
        conversation_id: Optional[str] = None,
    ) -> dict:
        """
        Append a user/assistant pair to an owned conversation, or open a
        new conversation when the id is missing or not owned by the caller.
        """

        now = utcnow_iso()

        with self._lock:

            record = self._records.get(conversation_id) if conversation_id else None

            if record is not None and record["user_id"] != user_id:
                record = None

            if record is None:

                created = True
                record = {
                    "id": uuid.uuid4().hex,
                    "user_id": user_id,
                    "title": generate_title(user_message["content"]),
                    "messages": [],
                    "created_at": now,
                    "updated_at": now,
                }

            else:

                created = False
                record = dict(record, messages=list(record["messages"]))

            record["messages"].extend([user_message, assistant_message])
            record["updated_at"] = now

            self._put(record)

        if created:
            logger.info(
                "Conversation created",
                extra={"conversation_id": record["id"], "user_id": user_id},
            )

        return dict(record)

    def list_for_user(self, user_id: str) -> List[dict]:

        with self._lock:
            records = [
                {
                    "id": record["id"],
                    "title": record["title"],
                    "created_at": record["created_at"],
                    "updated_at": record["updated_at"],
                    "message_count": len(record["messages"]),
                }
                for record in self._records.values()
                if record["user_id"] == user_id
            ]

        records.sort(key=lambda r: r["updated_at"], reverse=True)

        return records

    def delete(self, conversation_id: str, user_id: str) -> bool:

        with self._lock:

            record = self._records.get(conversation_id)

            if record is None or record["user_id"] != user_id:
                return False

            self._drop([conversation_id])

        return True

    def delete_all_for_user(self, user_id: str) -> int:

        with self._lock:

            doomed = [cid for cid, r in self._records.items() if r["user_id"] == user_id]

            if doomed:
                self._drop(doomed)

        return len(doomed)
