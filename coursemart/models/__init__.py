"""Models package - exports all SQLAlchemy models."""
# Accounts
from coursemart.models.app_user import AppUser, UserRole
from coursemart.models.student import Student

# Catalog pricing
from coursemart.models.course import Course
from coursemart.models.promo_code import (
    PromoCode, PromoType, DiscountType, PromoAllowedUser, PromoRedemption
)

# Ledger
from coursemart.models.transaction import Transaction, TransactionStatus
from coursemart.models.transaction_line_item import TransactionLineItem
from coursemart.models.wallet_ledger import WalletLedgerEntry, WalletEntryReason

# Group purchases
from coursemart.models.group_tier import GroupTier
from coursemart.models.group_purchase import (
    GroupPurchase, GroupPurchaseStatus, GroupMember, GroupMemberRole
)
from coursemart.models.enrollment import Enrollment, EnrollmentStatus

# Notifications
from coursemart.models.notification_outbox import NotificationOutbox

__all__ = [
    'AppUser', 'UserRole', 'Student',
    'Course', 'PromoCode', 'PromoType', 'DiscountType', 'PromoAllowedUser', 'PromoRedemption',
    'Transaction', 'TransactionStatus', 'TransactionLineItem',
    'WalletLedgerEntry', 'WalletEntryReason',
    'GroupTier', 'GroupPurchase', 'GroupPurchaseStatus', 'GroupMember', 'GroupMemberRole',
    'Enrollment', 'EnrollmentStatus',
    'NotificationOutbox',
]
