"""Import all models for Alembic or metadata creation."""

from casewatch.models.blockchain import BlockchainTransaction
from casewatch.models.case import AIClassification, Case, CaseActivity
from casewatch.models.document import Document, DocumentAccessLog, DocumentShare, DocumentTemplate
from casewatch.models.notification import Notification, NotificationPreference, ScheduledNotification
from casewatch.models.secure_entry import SecureEntry
from casewatch.models.tier import TierHistory, TierPermission, UserTier
from casewatch.models.user import User

__all__ = [
    "User",
    "Case",
    "CaseActivity",
    "AIClassification",
    "Document",
    "DocumentTemplate",
    "DocumentAccessLog",
    "DocumentShare",
    "UserTier",
    "TierPermission",
    "TierHistory",
    "BlockchainTransaction",
    "SecureEntry",
    "Notification",
    "ScheduledNotification",
    "NotificationPreference",
]
