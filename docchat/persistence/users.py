# docchat/persistence/users.py

"""
User registry with a per-user monthly usage accumulator.

The accumulator is keyed by a YYYY-MM marker: a request in a new month
replaces the totals instead of adding to them. The compare-and-reset runs
under the store lock, so concurrent requests from one user never lose
an update.
"""

import logging
from datetime import datetime
from typing import Optional

from docchat.persistence.json_store import JsonStore, utcnow_iso

logger = logging.getLogger(__name__)

ROLES = ("user", "admin")


def month_marker(now: Optional[datetime] = None) -> str:

    now = now or datetime.utcnow()

    return f"{now.year}-{now.month:02d}"


class UserStore(JsonStore):

    def create(self, user_id: str, username: str, role: str = "user") -> dict:

        if role not in ROLES:
            raise ValueError(f"Unknown role: {role}")

        with self._lock:

            if user_id in self._records:
                raise ValueError(f"User {user_id} already exists")

            record = {
                "id": user_id,
                "username": username,
                "role": role,
                "created_at": utcnow_iso(),
                "usage_month_marker": None,
                "current_month_prompt_tokens": 0,
                "current_month_completion_tokens": 0,
                "current_month_cost": 0.0,
            }

            self._put(record)

        logger.info("User created", extra={"user_id": user_id, "role": role})

        return dict(record)

    def find_by_id(self, user_id: str) -> Optional[dict]:

        if not user_id:
            return None

        record = self._records.get(user_id)

        return dict(record) if record else None

    def record_usage(
        self,
        user_id: str,
        prompt_tokens: int,
        completion_tokens: int,
        cost: float,
        marker: Optional[str] = None,
    ) -> dict:

        marker = marker or month_marker()

        with self._lock:

            current = self._records.get(user_id)

            if current is None:
                raise KeyError(user_id)

            record = dict(current)

            if record.get("usage_month_marker") == marker:

                record["current_month_prompt_tokens"] += prompt_tokens
                record["current_month_completion_tokens"] += completion_tokens
                record["current_month_cost"] += cost

            else:

                logger.info(
                    "Resetting monthly usage",
                    extra={
                        "user_id": user_id,
                        "previous_marker": record.get("usage_month_marker"),
                        "marker": marker,
                    },
                )

                record["usage_month_marker"] = marker
                record["current_month_prompt_tokens"] = prompt_tokens
                record["current_month_completion_tokens"] = completion_tokens
                record["current_month_cost"] = cost

            self._put(record)

        return self.get_usage(user_id)

    def get_usage(self, user_id: str) -> Optional[dict]:

        record = self._records.get(user_id)

        if record is None:
            return None

        prompt_tokens = record.get("current_month_prompt_tokens", 0)
        completion_tokens = record.get("current_month_completion_tokens", 0)

        return {
            "usage_month_marker": record.get("usage_month_marker"),
            "prompt_tokens": prompt_tokens,
            "completion_tokens": completion_tokens,
            "total_tokens": prompt_tokens + completion_tokens,
            "estimated_cost": record.get("current_month_cost", 0.0),
        }
