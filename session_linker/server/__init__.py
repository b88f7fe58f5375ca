"""
Profile merge service: moves guest profile rows onto a user account.
"""

from .app import create_app
from .merge import MergeResult, ProfileMergeService
from .repository import MongoProfileRepository, ProfileRepositoryInterface

__all__ = [
    "MergeResult",
    "MongoProfileRepository",
    "ProfileMergeService",
    "ProfileRepositoryInterface",
    "create_app",
]
