from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional, Protocol

from pymongo import ASCENDING, DESCENDING

Record = Dict[str, Any]


class DataStore(Protocol):
    """Read-only queries the assistant needs from the booking database."""

    def list_active_waste_categories(self) -> List[Record]:  # pragma: no cover - interface
        ...

    def get_user(self, user_id: str) -> Optional[Record]:  # pragma: no cover - interface
        ...

    def list_user_bookings(self, user_id: str, statuses: Optional[Iterable[str]] = None, limit: int = 12) -> List[Record]:  # pragma: no cover - interface
        ...

    def count_user_bookings(self, user_id: str, statuses: Iterable[str]) -> int:  # pragma: no cover - interface
        ...

    def list_driver_bookings(self, driver_id: str, limit: int = 15) -> List[Record]:  # pragma: no cover - interface
        ...

    def count_bookings(self) -> int:  # pragma: no cover - interface
        ...

    def booking_status_counts(self) -> Dict[str, int]:  # pragma: no cover - interface
        ...

    def count_unassigned_bookings(self, statuses: Iterable[str]) -> int:  # pragma: no cover - interface
        ...

    def list_notifications(self, user_id: str, limit: int = 30) -> List[Record]:  # pragma: no cover - interface
        ...

    def sum_points(self, user_id: str, since: Optional[datetime] = None, until: Optional[datetime] = None) -> int:  # pragma: no cover - interface
        ...

    def list_points_transactions(self, user_id: str, limit: int = 5) -> List[Record]:  # pragma: no cover - interface
        ...


def _with_id(document: Optional[Record]) -> Optional[Record]:
    if document is None:
        return None
    record = dict(document)
    record["id"] = str(record.pop("_id", record.get("id", "")))
    return record


class MongoDataStore:
    """pymongo implementation of :class:`DataStore`."""

    def __init__(self, database) -> None:
        self._db = database

    def list_active_waste_categories(self) -> List[Record]:
        cursor = self._db["waste_categories"].find({"is_active": True}).sort("name", ASCENDING)
        return [_with_id(doc) for doc in cursor]

    def get_user(self, user_id: str) -> Optional[Record]:
        return _with_id(self._db["users"].find_one({"_id": user_id}))

    def list_user_bookings(self, user_id: str, statuses: Optional[Iterable[str]] = None, limit: int = 12) -> List[Record]:
        query: Record = {"user_id": user_id}
        if statuses is not None:
            query["status"] = {"$in": list(statuses)}
        cursor = self._db["bookings"].find(query).sort("created_at", DESCENDING).limit(limit)
        return [_with_id(doc) for doc in cursor]

    def count_user_bookings(self, user_id: str, statuses: Iterable[str]) -> int:
        return self._db["bookings"].count_documents({"user_id": user_id, "status": {"$in": list(statuses)}})

    def list_driver_bookings(self, driver_id: str, limit: int = 15) -> List[Record]:
        cursor = self._db["bookings"].find({"driver_id": driver_id}).sort("scheduled_date", ASCENDING).limit(limit)
        return [_with_id(doc) for doc in cursor]

    def count_bookings(self) -> int:
        return self._db["bookings"].count_documents({})

    def booking_status_counts(self) -> Dict[str, int]:
        pipeline = [{"$group": {"_id": "$status", "count": {"$sum": 1}}}]
        return {str(row["_id"]): int(row["count"]) for row in self._db["bookings"].aggregate(pipeline)}

    def count_unassigned_bookings(self, statuses: Iterable[str]) -> int:
        return self._db["bookings"].count_documents({"driver_id": None, "status": {"$in": list(statuses)}})

    def list_notifications(self, user_id: str, limit: int = 30) -> List[Record]:
        query = {"$or": [{"user_id": user_id}, {"user_id": None}]}
        cursor = self._db["notifications"].find(query).sort("created_at", DESCENDING).limit(limit)
        return [_with_id(doc) for doc in cursor]

    def sum_points(self, user_id: str, since: Optional[datetime] = None, until: Optional[datetime] = None) -> int:
        match: Record = {"user_id": user_id}
        window: Record = {}
        if since is not None:
            window["$gte"] = since
        if until is not None:
            window["$lt"] = until
        if window:
            match["awarded_at"] = window
        pipeline = [{"$match": match}, {"$group": {"_id": None, "total": {"$sum": "$points_awarded"}}}]
        rows = list(self._db["points_transactions"].aggregate(pipeline))
        return int(rows[0]["total"]) if rows else 0

    def list_points_transactions(self, user_id: str, limit: int = 5) -> List[Record]:
        cursor = (
            self._db["points_transactions"].find({"user_id": user_id}).sort("awarded_at", DESCENDING).limit(limit)
        )
        return [_with_id(doc) for doc in cursor]
