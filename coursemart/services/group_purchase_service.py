"""
Group purchase coordinator.

Lifecycle: PENDING_PAYMENT -> ACTIVE -> COMPLETED.

A creator pays the tier's group price up front; invitees join for free until
the group is full. The completing join releases the creator's cashback (funded
by the tutor's wallet) and a separate fan-out unit enrolls every member.

Writes to a GroupPurchase row are serialized by SELECT ... FOR UPDATE and by
the optimistic ``version`` column; a join that loses the race is rolled back
and retried from a fresh read.
"""
import logging
import secrets
import string
from dataclasses import dataclass
from datetime import datetime, timezone
from decimal import Decimal
from typing import Optional, Tuple

from flask import current_app, has_app_context
from sqlalchemy import or_
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from coursemart.exceptions import (
    CommerceError, BusinessLogicError, NotFoundError, AlreadyEnrolledError, InvalidTierError,
    DuplicateActiveGroupError, GroupNotOpenError, GroupFullError,
    InviteCodeExhaustedError, ConcurrentUpdateError
)
from coursemart.identity import Identity
from coursemart.models import (
    AppUser, UserRole, Student, Course, GroupTier, GroupPurchase, GroupPurchaseStatus,
    GroupMember, GroupMemberRole, Enrollment, EnrollmentStatus,
    WalletLedgerEntry, WalletEntryReason
)
from coursemart.services.checkout_service import (
    CheckoutResult, find_enrolled_course_ids, get_pricing_settings, open_gateway_session
)
from coursemart.services.ledger_service import get_transaction_by_reference, record_checkout
from coursemart.services.notification_service import queue_notification
from coursemart.services.paystack_client import PaystackClient, new_reference
from coursemart.services.pricing_service import compute_checkout_totals, round_currency

logger = logging.getLogger(__name__)

INVITE_CODE_PREFIX = 'GRP-'
INVITE_CODE_LENGTH = 8
INVITE_CODE_ALPHABET = string.ascii_uppercase + string.digits

OPEN_STATUSES = (GroupPurchaseStatus.PENDING_PAYMENT, GroupPurchaseStatus.ACTIVE)
OPEN_GROUP_INDEX = 'uq_group_purchase_open_creator'


def generate_invite_code() -> str:
    """Random ``GRP-XXXXXXXX`` code (uppercase letters and digits)."""
    suffix = ''.join(secrets.choice(INVITE_CODE_ALPHABET) for _ in range(INVITE_CODE_LENGTH))
    return f"{INVITE_CODE_PREFIX}{suffix}"


def compute_cashback(group_price, cashback_percent, size: int) -> Tuple[Decimal, Decimal]:
    """
    Cashback economics of a tier.

    Returns:
        (cashback_total, cashback_per_member); per-member is 0 for a
        degenerate tier with no invitee slots.
    """
    cashback_total = round_currency(Decimal(group_price) * Decimal(cashback_percent or 0))
    invitee_slots = int(size) - 1
    if invitee_slots <= 0:
        return cashback_total, Decimal('0.00')
    return cashback_total, round_currency(cashback_total / invitee_slots)


def _is_invite_code_collision(error: IntegrityError) -> bool:
    return 'invite_code' in str(getattr(error, 'orig', error)).lower()


def _is_open_group_conflict(error: IntegrityError) -> bool:
    message = str(getattr(error, 'orig', error)).lower()
    return OPEN_GROUP_INDEX in message or ('unique' in message and 'creator_id' in message)


@dataclass(frozen=True)
class _GroupPricedCourse:
    """Course view priced at a tier's group price."""
    id: int
    tutor_id: int
    category: Optional[str]
    current_price: Decimal
    base_price: Optional[Decimal] = None
    price: Optional[Decimal] = None


@dataclass(frozen=True)
class JoinResult:
    group_purchase_id: int
    joined: bool
    completed: bool
    member_count: int
    member_limit: int

    def to_dict(self):
        return {
            'group_purchase_id': self.group_purchase_id,
            'joined': self.joined,
            'completed': self.completed,
            'member_count': self.member_count,
            'member_limit': self.member_limit,
        }


class GroupPurchaseCoordinator:
    """Coordinates group creation, joins, completion and settlement."""

    def __init__(
        self,
        db_session: Session,
        gateway: Optional[PaystackClient] = None,
        invite_code_attempts: Optional[int] = None,
        join_max_retries: Optional[int] = None
    ):
        """
        Args:
            db_session: SQLAlchemy session
            gateway: Payment gateway client (built from config when needed)
            invite_code_attempts: Max invite code allocations before failing
            join_max_retries: Max re-reads after losing a concurrent join race
        """
        self.db = db_session
        self.gateway = gateway

        cfg = current_app.config if has_app_context() else {}
        self.invite_code_attempts = invite_code_attempts or cfg.get('INVITE_CODE_MAX_ATTEMPTS', 5)
        self.join_max_retries = join_max_retries if join_max_retries is not None else cfg.get('GROUP_JOIN_MAX_RETRIES', 3)

    # =====================================================
    # CREATION
    # =====================================================

    def begin_group_checkout(
        self,
        identity: Identity,
        course_id: int,
        tier_id: int,
        callback_url: Optional[str] = None
    ) -> CheckoutResult:
        """
        Create a group for a course tier and open the creator's payment session.

        Group, creator membership and the priced transaction are written in
        one unit. The gateway is called only after that unit committed.

        Raises:
            NotFoundError, BusinessLogicError, InvalidTierError,
            DuplicateActiveGroupError, AlreadyEnrolledError: nothing persisted
            InviteCodeExhaustedError: no unique code could be allocated
            GatewayError: group and PENDING transaction were persisted
        """
        settings = get_pricing_settings()

        try:
            course = self.db.get(Course, course_id)
            if not course or not course.active:
                raise NotFoundError('Course not found')
            if not course.group_buying_enabled:
                raise BusinessLogicError('Group purchase is not enabled for this course')

            tier = self.db.query(GroupTier).filter(
                GroupTier.id == tier_id,
                GroupTier.course_id == course_id,
                GroupTier.is_active == True  # noqa: E712
            ).first()
            if not tier:
                raise InvalidTierError('Group tier not found')
            if tier.size < 2 or Decimal(tier.group_price) <= 0:
                raise InvalidTierError('Invalid group tier configuration')

            # Serializes concurrent group checkouts by the same creator
            creator = self.db.query(AppUser).filter(
                AppUser.id == identity.user_id
            ).with_for_update().first()
            if not creator:
                raise NotFoundError('User not found')

            existing_group = self.db.query(GroupPurchase.id).filter(
                GroupPurchase.course_id == course_id,
                GroupPurchase.creator_id == identity.user_id,
                GroupPurchase.status.in_(OPEN_STATUSES)
            ).first()
            if existing_group:
                raise DuplicateActiveGroupError()

            if find_enrolled_course_ids(self.db, identity.user_id, [course_id]):
                raise AlreadyEnrolledError()

            group_price = round_currency(tier.group_price)
            cashback_total, cashback_per_member = compute_cashback(
                group_price, tier.cashback_percent, tier.size
            )
            totals = compute_checkout_totals(
                [_GroupPricedCourse(
                    id=course.id,
                    tutor_id=course.tutor_id,
                    category=course.category,
                    current_price=group_price
                )],
                None,
                vat_rate=settings['vat_rate'],
                commission_rates=settings['commission_rates']
            )
            tier_size = tier.size
            currency = course.currency or settings['currency']
            course_title = course.title

            group = self._insert_group_with_unique_code(
                course_id=course_id,
                tier_id=tier_id,
                creator_id=identity.user_id,
                member_limit=tier_size,
                group_price=group_price,
                cashback_total=cashback_total,
                cashback_per_member=cashback_per_member
            )

            self.db.add(GroupMember(
                group_purchase_id=group.id,
                user_id=identity.user_id,
                role=GroupMemberRole.CREATOR.value
            ))

            metadata = {
                'group_purchase_id': group.id,
                'course_id': course_id,
                'tier_id': tier_id,
                'type': 'group_purchase',
            }
            transaction = record_checkout(
                self.db,
                user_id=identity.user_id,
                totals=totals,
                reference=new_reference(),
                currency=currency,
                course_id=course_id,
                group_purchase_id=group.id,
                description=f'Group purchase for {course_title}',
                metadata=metadata
            )
            self.db.commit()

        except CommerceError:
            self.db.rollback()
            raise
        except Exception:
            self.db.rollback()
            logger.exception(f"[GROUP] Unexpected error creating group for course {course_id}")
            raise

        logger.info(
            f"[GROUP] Group {group.invite_code} created by user {identity.user_id} "
            f"(size {tier_size}, cashback {cashback_total})"
        )

        init = open_gateway_session(
            self.gateway, identity, transaction, callback_url,
            metadata=dict(metadata, user_id=identity.user_id)
        )

        return CheckoutResult(
            authorization_url=init['authorization_url'],
            access_code=init.get('access_code'),
            reference=transaction.transaction_id,
            transaction_id=transaction.id,
            amount=transaction.amount,
            group_purchase_id=group.id,
            invite_code=group.invite_code
        )

    def _insert_group_with_unique_code(self, **fields) -> GroupPurchase:
        """
        Insert the group, retrying with a fresh invite code on a uniqueness
        violation. Runs before any other write of the unit, so a rollback only
        discards the failed insert. A second open group for the same creator
        and course is rejected by the database as DuplicateActiveGroupError.
        """
        for attempt in range(1, self.invite_code_attempts + 1):
            group = GroupPurchase(
                invite_code=generate_invite_code(),
                status=GroupPurchaseStatus.PENDING_PAYMENT,
                member_count=1,
                cashback_earned=Decimal('0.00'),
                cashback_released=False,
                **fields
            )
            self.db.add(group)
            try:
                self.db.flush()
                return group
            except IntegrityError as e:
                self.db.rollback()
                if _is_open_group_conflict(e):
                    raise DuplicateActiveGroupError()
                if not _is_invite_code_collision(e):
                    raise
                logger.warning(f"[GROUP] Invite code collision (attempt {attempt}/{self.invite_code_attempts})")

        raise InviteCodeExhaustedError(self.invite_code_attempts)

    # =====================================================
    # ACTIVATION (creator payment confirmed)
    # =====================================================

    def activate_group(self, reference_or_group_id, paid_at: Optional[datetime] = None) -> GroupPurchase:
        """
        Open a group for joining once the creator's payment has cleared.
        Idempotent: an ACTIVE or COMPLETED group is returned unchanged.

        Args:
            reference_or_group_id: Group id, or the gateway reference of the
                creator's transaction
            paid_at: Payment confirmation time (defaults to now)
        """
        group_purchase_id = reference_or_group_id
        try:
            if isinstance(reference_or_group_id, str) and not reference_or_group_id.isdigit():
                transaction = get_transaction_by_reference(self.db, reference_or_group_id)
                if not transaction or not transaction.group_purchase_id:
                    raise NotFoundError('Group not found')
                group_purchase_id = transaction.group_purchase_id

            group = self.db.query(GroupPurchase).filter(
                GroupPurchase.id == group_purchase_id
            ).with_for_update().first()
            if not group:
                raise NotFoundError('Group not found')

            if group.status != GroupPurchaseStatus.PENDING_PAYMENT:
                self.db.rollback()
                return group

            group.status = GroupPurchaseStatus.ACTIVE
            group.paid_at = paid_at or datetime.now(timezone.utc)

            queue_notification(
                self.db,
                user_id=group.creator_id,
                category='group_purchase_started',
                title='Group Purchase Started',
                message='Your group is live. Share your invite link to unlock access faster.',
                action_url=f'/group/{group.invite_code}',
                payload={'course_id': group.course_id, 'action_label': 'View Group'}
            )
            self.db.commit()

        except CommerceError:
            self.db.rollback()
            raise
        except Exception:
            self.db.rollback()
            logger.exception(f"[GROUP] Error activating group {group_purchase_id}")
            raise

        logger.info(f"[GROUP] Group {group.invite_code} is now ACTIVE")
        return group

    # =====================================================
    # JOINING
    # =====================================================

    def join_group(self, identity: Identity, invite_code: str) -> JoinResult:
        """
        Join a group by invite code.

        Re-joining is a successful no-op. When the join fills the group, the
        completion fan-out runs right after the join commits. A re-join on a
        completed group whose fan-out never landed runs it again.

        Raises:
            NotFoundError, GroupNotOpenError, GroupFullError, AlreadyEnrolledError
            ConcurrentUpdateError: retries against concurrent writers exhausted
        """
        invite_code = (invite_code or '').strip().upper()

        for attempt in range(self.join_max_retries + 1):
            try:
                result = self._join_once(identity, invite_code)
            except (StaleDataError, IntegrityError) as e:
                # Another writer got to the row first; re-read and re-check
                self.db.rollback()
                logger.warning(
                    f"[GROUP] Join race on {invite_code} for user {identity.user_id} "
                    f"(attempt {attempt + 1}): {type(e).__name__}"
                )
                continue
            except CommerceError:
                self.db.rollback()
                raise
            except Exception:
                self.db.rollback()
                logger.exception(f"[GROUP] Unexpected error joining {invite_code}")
                raise

            if result.completed or (
                not result.joined and self._fanout_pending(result.group_purchase_id, identity.user_id)
            ):
                self.run_completion_fanout(result.group_purchase_id)
            return result

        raise ConcurrentUpdateError()

    def _fanout_pending(self, group_purchase_id: int, user_id: int) -> bool:
        """A completed group whose member is still not enrolled missed its fan-out."""
        group = self.db.get(GroupPurchase, group_purchase_id)
        if not group or group.status != GroupPurchaseStatus.COMPLETED:
            return False
        if find_enrolled_course_ids(self.db, user_id, [group.course_id]):
            return False
        logger.warning(f"[GROUP] Fan-out missing for {group.invite_code}, re-running on re-join")
        return True

    def _join_once(self, identity: Identity, invite_code: str) -> JoinResult:
        group = self.db.query(GroupPurchase).filter(
            GroupPurchase.invite_code == invite_code
        ).with_for_update().first()
        if not group:
            raise NotFoundError('Group not found')

        already_member = self.db.query(GroupMember.id).filter(
            GroupMember.group_purchase_id == group.id,
            GroupMember.user_id == identity.user_id
        ).first()
        if already_member:
            result = JoinResult(group.id, False, False, group.member_count, group.member_limit)
            self.db.rollback()
            return result

        if group.status != GroupPurchaseStatus.ACTIVE:
            raise GroupNotOpenError()
        if group.is_full:
            raise GroupFullError()
        if find_enrolled_course_ids(self.db, identity.user_id, [group.course_id]):
            raise AlreadyEnrolledError()

        return self.apply_join(group, identity.user_id)

    def apply_join(self, group: GroupPurchase, user_id: int) -> JoinResult:
        """
        Write one membership against an already-read group row and commit.

        The UPDATE is conditioned on the version read with ``group``; a stale
        read raises StaleDataError and nothing is written.
        """
        next_count = group.member_count + 1
        if next_count > group.member_limit:
            raise GroupFullError()

        self.db.add(GroupMember(
            group_purchase_id=group.id,
            user_id=user_id,
            role=GroupMemberRole.MEMBER.value
        ))

        cashback_total = Decimal(group.cashback_total or 0)
        cashback_earned = min(
            cashback_total,
            Decimal(group.cashback_per_member or 0) * max(0, next_count - 1)
        )
        should_complete = next_count >= group.member_limit

        group.member_count = next_count
        group.cashback_earned = cashback_earned
        if should_complete:
            group.status = GroupPurchaseStatus.COMPLETED
            group.completed_at = datetime.now(timezone.utc)
            group.cashback_released = True
            if cashback_total > 0:
                self._settle_cashback(group, cashback_total)
        else:
            queue_notification(
                self.db,
                user_id=group.creator_id,
                category='group_member_joined',
                title='New Group Member',
                message=f'A new member joined your group ({next_count}/{group.member_limit}).',
                action_url=f'/group/{group.invite_code}',
                payload={'course_id': group.course_id, 'action_label': 'View Group'}
            )

        self.db.flush()
        self.db.commit()

        logger.info(
            f"[GROUP] User {user_id} joined {group.invite_code} "
            f"({next_count}/{group.member_limit}){' - COMPLETED' if should_complete else ''}"
        )
        return JoinResult(group.id, True, should_complete, next_count, group.member_limit)

    def _settle_cashback(self, group: GroupPurchase, amount: Decimal):
        """Credit the creator and debit the course tutor, inside the join unit."""
        tutor_id = self.db.query(Course.tutor_id).filter(Course.id == group.course_id).scalar()
        user_ids = sorted({group.creator_id, tutor_id})

        # Lock wallets in id order
        users = {
            user.id: user for user in self.db.query(AppUser).filter(
                AppUser.id.in_(user_ids)
            ).order_by(AppUser.id).with_for_update().all()
        }

        movements = [
            (group.creator_id, amount, WalletEntryReason.GROUP_CASHBACK_CREDIT),
            (tutor_id, -amount, WalletEntryReason.GROUP_CASHBACK_DEBIT),
        ]
        for user_id, delta, reason in movements:
            user = users[user_id]
            user.wallet_balance = Decimal(user.wallet_balance or 0) + delta
            self.db.add(WalletLedgerEntry(
                user_id=user_id,
                amount=delta,
                balance_after=user.wallet_balance,
                reason=reason.value,
                group_purchase_id=group.id
            ))

        logger.info(
            f"[GROUP] Cashback {amount} released for {group.invite_code}: "
            f"creator {group.creator_id} credited, tutor {tutor_id} debited"
        )

    # =====================================================
    # COMPLETION FAN-OUT
    # =====================================================

    def run_completion_fanout(self, group_purchase_id: int) -> int:
        """
        Enroll every member of a completed group and promote plain users to students.

        Safe to re-run: enrollments and student profiles are only created when
        missing, and only USER roles are promoted.

        Returns:
            Number of enrollments created by this run
        """
        for attempt in range(2):
            try:
                return self._fanout_once(group_purchase_id)
            except IntegrityError:
                # A concurrent run inserted the same rows; the second pass skips them
                self.db.rollback()
                logger.warning(f"[GROUP] Fan-out for group {group_purchase_id} collided, retrying")
            except CommerceError:
                self.db.rollback()
                raise
            except Exception:
                self.db.rollback()
                logger.exception(f"[GROUP] Fan-out failed for group {group_purchase_id}")
                raise
        raise ConcurrentUpdateError('Completion fan-out could not be applied, please retry')

    def _fanout_once(self, group_purchase_id: int) -> int:
        group = self.db.get(GroupPurchase, group_purchase_id)
        if not group:
            raise NotFoundError('Group not found')
        if group.status != GroupPurchaseStatus.COMPLETED:
            raise BusinessLogicError('Group is not completed yet')

        course_id = group.course_id
        member_ids = [
            row[0] for row in self.db.query(GroupMember.user_id).filter(
                GroupMember.group_purchase_id == group.id
            ).all()
        ]

        enrolled = {
            row[0] for row in self.db.query(Enrollment.user_id).filter(
                Enrollment.course_id == course_id,
                Enrollment.user_id.in_(member_ids)
            ).all()
        }
        now = datetime.now(timezone.utc)
        created = 0
        for user_id in member_ids:
            if user_id in enrolled:
                continue
            self.db.add(Enrollment(
                user_id=user_id,
                course_id=course_id,
                status=EnrollmentStatus.ACTIVE.value,
                group_purchase_id=group.id,
                enrolled_at=now
            ))
            queue_notification(
                self.db,
                user_id=user_id,
                category='group_purchase_completed',
                title='Group Complete',
                message='Your group is full. Your course access is now unlocked!',
                action_url='/student',
                payload={'course_id': course_id, 'action_label': 'Go to Dashboard'}
            )
            created += 1

        upgrade_ids = [
            row[0] for row in self.db.query(AppUser.id).filter(
                AppUser.id.in_(member_ids),
                AppUser.role == UserRole.USER.value
            ).all()
        ]
        if upgrade_ids:
            self.db.query(AppUser).filter(
                AppUser.id.in_(upgrade_ids),
                AppUser.role == UserRole.USER.value
            ).update({AppUser.role: UserRole.STUDENT.value}, synchronize_session='fetch')

            with_profile = {
                row[0] for row in self.db.query(Student.user_id).filter(
                    Student.user_id.in_(upgrade_ids)
                ).all()
            }
            for user_id in upgrade_ids:
                if user_id not in with_profile:
                    self.db.add(Student(user_id=user_id, interests=[], goals=[]))

        self.db.commit()
        logger.info(
            f"[GROUP] Fan-out for group {group_purchase_id}: {created} enrollments, "
            f"{len(upgrade_ids)} promoted to STUDENT"
        )
        return created

    # =====================================================
    # LOOKUPS
    # =====================================================

    def get_group_by_invite(self, invite_code: str) -> GroupPurchase:
        """Resolve an invite deep link (``/group/<invite_code>``)."""
        group = self.db.query(GroupPurchase).filter(
            GroupPurchase.invite_code == (invite_code or '').strip().upper()
        ).first()
        if not group:
            raise NotFoundError('Group not found')
        return group

    def get_my_group(self, user_id: int, course_id: int) -> Optional[GroupPurchase]:
        """The group a user created or joined for a course, if any."""
        return self.db.query(GroupPurchase).filter(
            GroupPurchase.course_id == course_id,
            or_(
                GroupPurchase.creator_id == user_id,
                GroupPurchase.members.any(GroupMember.user_id == user_id)
            )
        ).order_by(GroupPurchase.created_at.desc()).first()
