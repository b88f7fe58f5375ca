"""
Profile Repository

Storage interface for the two collections the merge touches:
- user_profiles: raw profile inputs (linkedin_content, cv_content, ...)
- user_summaries: the generated summary for a profile

Guest rows carry a session_id and no user_id. Converting a guest row means
setting user_id and clearing the temporary markers.
"""

import logging
from abc import ABC, abstractmethod
from typing import Any, Dict, Optional

from pymongo import MongoClient
from pymongo.database import Database

logger = logging.getLogger(__name__)

PROFILES_COLLECTION = "user_profiles"
SUMMARIES_COLLECTION = "user_summaries"


def temp_filter(session_id: str) -> Dict[str, Any]:
    """Match guest rows for a session. user_id None matches null or missing."""
    return {"session_id": session_id, "user_id": None}


class ProfileRepositoryInterface(ABC):
    """
    Abstract interface for profile and summary storage.

    Implementations:
    - MongoProfileRepository: pymongo-backed
    - in-memory fakes in tests

    Errors propagate to the caller.
    """

    @abstractmethod
    def find_user_profile(self, user_id: str) -> Optional[Dict[str, Any]]:
        pass

    @abstractmethod
    def find_temp_profile(self, session_id: str) -> Optional[Dict[str, Any]]:
        pass

    @abstractmethod
    def update_user_profile(self, user_id: str, fields: Dict[str, Any]) -> int:
        """Set fields on the user's profile. Returns modified count."""
        pass

    @abstractmethod
    def convert_temp_profile(self, session_id: str, fields: Dict[str, Any]) -> int:
        """Set fields on the session's guest profile. Returns modified count."""
        pass

    @abstractmethod
    def delete_temp_profiles(self, session_id: str) -> int:
        pass

    @abstractmethod
    def find_user_summary(self, user_id: str) -> Optional[Dict[str, Any]]:
        pass

    @abstractmethod
    def find_temp_summary(self, session_id: str) -> Optional[Dict[str, Any]]:
        pass

    @abstractmethod
    def update_user_summary(self, user_id: str, fields: Dict[str, Any]) -> int:
        pass

    @abstractmethod
    def convert_temp_summary(self, session_id: str, fields: Dict[str, Any]) -> int:
        pass

    @abstractmethod
    def delete_temp_summaries(self, session_id: str) -> int:
        pass

    def ping(self) -> bool:
        """Check backend connectivity."""
        return True


class MongoProfileRepository(ProfileRepositoryInterface):
    """
    MongoDB implementation.

    The client is created on first use and reused; PyMongo pools
    connections internally.
    """

    def __init__(
        self,
        mongodb_uri: str,
        database: str = "engage",
        client: Optional[MongoClient] = None,
    ):
        """
        Args:
            mongodb_uri: MongoDB connection string
            database: Database name
            client: Pre-built client (tests pass a MagicMock)
        """
        self._mongodb_uri = mongodb_uri
        self._database_name = database
        self._client = client
        self._db: Optional[Database] = None

    def _get_db(self) -> Database:
        if self._db is None:
            if self._client is None:
                self._client = MongoClient(self._mongodb_uri)
            self._db = self._client[self._database_name]
            logger.info(f"Profile repository connected: {self._database_name}")
        return self._db

    def _profiles(self):
        return self._get_db()[PROFILES_COLLECTION]

    def _summaries(self):
        return self._get_db()[SUMMARIES_COLLECTION]

    def find_user_profile(self, user_id: str) -> Optional[Dict[str, Any]]:
        return self._profiles().find_one({"user_id": user_id})

    def find_temp_profile(self, session_id: str) -> Optional[Dict[str, Any]]:
        return self._profiles().find_one(temp_filter(session_id))

    def update_user_profile(self, user_id: str, fields: Dict[str, Any]) -> int:
        result = self._profiles().update_one({"user_id": user_id}, {"$set": fields})
        return result.modified_count

    def convert_temp_profile(self, session_id: str, fields: Dict[str, Any]) -> int:
        result = self._profiles().update_one(temp_filter(session_id), {"$set": fields})
        return result.modified_count

    def delete_temp_profiles(self, session_id: str) -> int:
        return self._profiles().delete_many(temp_filter(session_id)).deleted_count

    def find_user_summary(self, user_id: str) -> Optional[Dict[str, Any]]:
        return self._summaries().find_one({"user_id": user_id})

    def find_temp_summary(self, session_id: str) -> Optional[Dict[str, Any]]:
        return self._summaries().find_one(temp_filter(session_id))

    def update_user_summary(self, user_id: str, fields: Dict[str, Any]) -> int:
        result = self._summaries().update_one({"user_id": user_id}, {"$set": fields})
        return result.modified_count

    def convert_temp_summary(self, session_id: str, fields: Dict[str, Any]) -> int:
        result = self._summaries().update_one(temp_filter(session_id), {"$set": fields})
        return result.modified_count

    def delete_temp_summaries(self, session_id: str) -> int:
        return self._summaries().delete_many(temp_filter(session_id)).deleted_count

    def ping(self) -> bool:
        try:
            self._get_db().command("ping")
            return True
        except Exception as e:
            logger.warning(f"MongoDB ping failed: {e}")
            return False
