"""
Profile Merge Service

Moves a guest's temporary profile and summary onto an authenticated user.

Steps:
1. Find the user's existing profile, if any
2. Find the guest profile for the session (404 when absent)
3. Find the guest summary for the session
4. Either fill the existing profile from the guest profile, or convert the
   guest profile in place
5. Either overwrite the existing summary from the guest summary, or convert
   the guest summary in place
6. Delete leftover guest rows for the session

Running it again after a success finds no guest profile and raises
GuestProfileNotFoundError, so rows are never duplicated.
"""

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Callable, Dict, Optional

from ..errors import GuestProfileNotFoundError, MergeError
from ..models import utc_now
from .repository import ProfileRepositoryInterface

logger = logging.getLogger(__name__)

PROFILE_CONTENT_FIELDS = ("linkedin_content", "additional_details", "cv_content")

SUMMARY_FIELDS = (
    "experience",
    "education",
    "expertise",
    "achievements",
    "overall_blurb",
    "combined_experience_highlights",
    "combined_education_highlights",
    "key_skills",
    "domain_expertise",
    "technical_expertise",
    "value_proposition_summary",
)

UPDATED_EXISTING_PROFILE = "updated_existing_profile"
CONVERTED_TEMP_PROFILE = "converted_temp_profile"
UPDATED_EXISTING_SUMMARY = "updated_existing_summary"
CONVERTED_TEMP_SUMMARY = "converted_temp_summary"


@dataclass
class MergeResult:
    """What the merge did to the profile and (optionally) the summary."""
    action: str
    summary: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        result = {"action": self.action}
        if self.summary:
            result["summary"] = self.summary
        return result


class ProfileMergeService:
    """
    Server-side guest-to-user merge.

    Args:
        repository: Profile and summary storage
        clock: Returns the current UTC datetime
    """

    def __init__(
        self,
        repository: ProfileRepositoryInterface,
        clock: Callable[[], datetime] = utc_now,
    ):
        self._repository = repository
        self._clock = clock

    def link_guest_profile(self, user_id: str, session_id: str) -> MergeResult:
        """
        Merge the session's guest rows into the user's rows.

        Raises:
            ValueError: user_id or session_id missing
            GuestProfileNotFoundError: no guest profile for the session
            MergeError: storage failure during the merge
        """
        if not user_id or not session_id:
            raise ValueError("Missing required fields: sessionId and userId are required")

        logger.info(f"Attempting to link guest profile with session {session_id} to user {user_id}")

        try:
            existing_profile = self._repository.find_user_profile(user_id)
            temp_profile = self._repository.find_temp_profile(session_id)
            if temp_profile is None:
                raise GuestProfileNotFoundError(session_id)
            temp_summary = self._repository.find_temp_summary(session_id)

            now = self._clock()
            if existing_profile is not None:
                result = MergeResult(action=self._merge_into_existing_profile(
                    user_id, existing_profile, temp_profile, now
                ))
            else:
                self._repository.convert_temp_profile(session_id, {
                    "user_id": user_id,
                    "is_temporary": False,
                    "temp_created_at": None,
                    "updated_at": now,
                })
                result = MergeResult(action=CONVERTED_TEMP_PROFILE)

            if temp_summary is not None:
                result.summary = self._merge_summary(user_id, session_id, temp_summary, now)

            self._cleanup(session_id)

        except (GuestProfileNotFoundError, MergeError):
            raise
        except Exception as e:
            logger.error(f"Error linking guest profile for session {session_id}: {e}")
            raise MergeError(f"Failed to link guest profile: {e}") from e

        logger.info(f"Linked session {session_id} to user {user_id}: {result.to_dict()}")
        return result

    def _merge_into_existing_profile(
        self,
        user_id: str,
        existing: Dict[str, Any],
        temp: Dict[str, Any],
        now: datetime,
    ) -> str:
        fields: Dict[str, Any] = {
            name: temp.get(name) or existing.get(name)
            for name in PROFILE_CONTENT_FIELDS
        }
        fields.update({
            "updated_at": now,
            "is_temporary": False,
            "temp_created_at": None,
            "session_id": None,
        })
        self._repository.update_user_profile(user_id, fields)
        return UPDATED_EXISTING_PROFILE

    def _merge_summary(
        self,
        user_id: str,
        session_id: str,
        temp_summary: Dict[str, Any],
        now: datetime,
    ) -> str:
        existing_summary = self._repository.find_user_summary(user_id)
        if existing_summary is not None:
            fields = {name: temp_summary.get(name) for name in SUMMARY_FIELDS}
            fields.update({"updated_at": now, "session_id": None})
            self._repository.update_user_summary(user_id, fields)
            self._repository.delete_temp_summaries(session_id)
            return UPDATED_EXISTING_SUMMARY

        self._repository.convert_temp_summary(session_id, {
            "user_id": user_id,
            "session_id": None,
            "updated_at": now,
        })
        return CONVERTED_TEMP_SUMMARY

    def _cleanup(self, session_id: str) -> None:
        """Remove leftover guest profiles. Failures only warn."""
        try:
            removed = self._repository.delete_temp_profiles(session_id)
            if removed:
                logger.info(f"Removed {removed} leftover guest profile(s) for session {session_id}")
        except Exception as e:
            logger.warning(f"Error during cleanup of remaining temporary profiles: {e}")

    def has_linked_profile(self, user_id: str) -> bool:
        """True if the user owns a non-temporary profile."""
        profile = self._repository.find_user_profile(user_id)
        return bool(profile) and not profile.get("is_temporary", False)

    def ping(self) -> bool:
        return self._repository.ping()
