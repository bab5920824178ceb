from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from pymongo import MongoClient


@dataclass
class MongoClientFactory:
    uri: str
    db_name: str
    timeout_ms: int = 5000
    _client: Any = field(default=None, init=False, repr=False)

    def get_database(self):
        if self._client is None:
            self._client = MongoClient(
                self.uri,
                serverSelectionTimeoutMS=self.timeout_ms,
                connectTimeoutMS=self.timeout_ms,
                socketTimeoutMS=self.timeout_ms,
            )
        return self._client[self.db_name]

    def get_collection(self, collection_name: str):
        return self.get_database()[collection_name]
