"""
Guest-to-user linking: records, retry policy, merge client and reconciler.
"""

from .client import HttpLinkFunction, LinkFunction
from .reconciler import LinkingReconciler
from .records import LinkAttemptStore, claim_key, record_key
from .retry import RetryPolicy

__all__ = [
    "HttpLinkFunction",
    "LinkAttemptStore",
    "LinkFunction",
    "LinkingReconciler",
    "RetryPolicy",
    "claim_key",
    "record_key",
]
