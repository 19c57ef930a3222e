"""
Transaction ledger - persistence of checkout attempts.
Writes join the caller's unit of work: nothing here commits.
"""
from typing import Optional, Dict, Any

from sqlalchemy.orm import Session

from coursemart.models import (
    Transaction, TransactionLineItem, TransactionStatus, PromoRedemption
)
from coursemart.services.pricing_service import CheckoutTotals


def record_checkout(
    session: Session,
    user_id: int,
    totals: CheckoutTotals,
    reference: str,
    currency: str = 'NGN',
    course_id: Optional[int] = None,
    group_purchase_id: Optional[int] = None,
    description: Optional[str] = None,
    metadata: Optional[Dict[str, Any]] = None
) -> Transaction:
    """
    Persist a PENDING transaction with one line item per priced course.

    The promo is recorded only when it actually discounted a line, together
    with a redemption row that holds its usage slot.

    Args:
        session: SQLAlchemy session (caller commits or rolls back)
        user_id: Buyer
        totals: Output of compute_checkout_totals
        reference: Gateway reference, unique per attempt
        currency: ISO currency code
        course_id: Set for single-course checkouts
        group_purchase_id: Set for group checkouts
        description: Human readable label
        metadata: Free-form JSON stored with the transaction

    Returns:
        The flushed Transaction
    """
    promo_code_id = totals.promo.id if totals.promo and totals.promo_applied else None

    transaction = Transaction(
        user_id=user_id,
        course_id=course_id,
        group_purchase_id=group_purchase_id,
        promo_code_id=promo_code_id,
        status=TransactionStatus.PENDING,
        amount=totals.total_amount,
        subtotal_amount=totals.subtotal_amount,
        discount_amount=totals.discount_amount,
        vat_amount=totals.vat_amount,
        tutor_share_amount=totals.tutor_share_amount,
        platform_share_amount=totals.platform_share_amount,
        currency=currency,
        payment_method='PAYSTACK',
        transaction_id=reference,
        description=description,
        metadata_json=metadata or {}
    )
    session.add(transaction)

    for line in totals.line_items:
        transaction.line_items.append(TransactionLineItem(
            course_id=line.course_id,
            tutor_id=line.tutor_id,
            list_price=line.list_price,
            effective_price=line.effective_price,
            discount_amount=line.discount_amount,
            discounted_price=line.discounted_price,
            vat_amount=line.vat_amount,
            total_amount=line.total_amount,
            tutor_share_amount=line.tutor_share_amount,
            platform_share_amount=line.platform_share_amount,
            promo_code_id=line.promo_code_id,
            promo_type=line.promo_type,
            promo_discount_type=line.promo_discount_type,
            promo_discount_value=line.promo_discount_value
        ))

    session.flush()

    if promo_code_id:
        session.add(PromoRedemption(
            promo_code_id=promo_code_id,
            user_id=user_id,
            transaction_id=transaction.id,
            discount_amount=totals.discount_amount
        ))
        session.flush()

    return transaction


def get_transaction_by_reference(session: Session, reference: str) -> Optional[Transaction]:
    return session.query(Transaction).filter(Transaction.transaction_id == reference).first()
