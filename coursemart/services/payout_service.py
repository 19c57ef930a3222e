"""
Payout setup - bank account verification and Paystack recipient registration.
"""
import logging
from typing import Optional, List, Dict, Any

from sqlalchemy.orm import Session

from coursemart.exceptions import CommerceError, BusinessLogicError, NotFoundError
from coursemart.identity import Identity
from coursemart.models import AppUser
from coursemart.services.paystack_client import PaystackClient, get_gateway

logger = logging.getLogger(__name__)


def list_banks(gateway: Optional[PaystackClient] = None) -> List[Dict[str, Any]]:
    """Banks supported for payouts, as ``{name, code}`` pairs."""
    gateway = gateway or get_gateway()
    return [
        {'name': bank.get('name'), 'code': bank.get('code')}
        for bank in gateway.list_banks()
        if bank.get('active', True)
    ]


def _check_account_input(bank_code: str, account_number: str):
    if not bank_code:
        raise BusinessLogicError('Bank is required')
    if not account_number or not account_number.isdigit() or len(account_number) != 10:
        raise BusinessLogicError('Account number must be 10 digits')


def verify_bank_account(gateway: Optional[PaystackClient], bank_code: str, account_number: str) -> Dict[str, Any]:
    """
    Resolve an account number at a bank.

    Returns:
        Dict with account_name and account_number
    """
    account_number = (account_number or '').strip()
    _check_account_input(bank_code, account_number)

    gateway = gateway or get_gateway()
    data = gateway.resolve_account(account_number, bank_code)
    return {
        'account_name': data.get('account_name'),
        'account_number': data.get('account_number', account_number),
    }


def save_bank_details(
    session: Session,
    identity: Identity,
    bank_code: str,
    account_number: str,
    gateway: Optional[PaystackClient] = None,
    bank_name: Optional[str] = None
) -> AppUser:
    """
    Verify and store a user's payout account.

    Registers a transfer recipient and, for tutors and mentors without one, a
    settlement subaccount. Gateway calls happen before anything is written.

    Raises:
        BusinessLogicError: Malformed input
        GatewayError: Account could not be resolved or registered
    """
    account_number = (account_number or '').strip()
    _check_account_input(bank_code, account_number)
    gateway = gateway or get_gateway()

    try:
        user = session.get(AppUser, identity.user_id)
        if not user:
            raise NotFoundError('User not found')

        resolved = gateway.resolve_account(account_number, bank_code)
        account_name = resolved.get('account_name') or user.full_name or identity.email

        recipient = gateway.create_transfer_recipient(
            name=account_name,
            account_number=account_number,
            bank_code=bank_code
        )

        subaccount_code = user.subaccount_code
        if user.is_tutor() and not subaccount_code:
            subaccount = gateway.create_subaccount(
                business_name=user.full_name or account_name,
                settlement_bank=bank_code,
                account_number=account_number,
                percentage_charge=0,
                contact_email=user.email
            )
            subaccount_code = subaccount.get('subaccount_code')

        user.bank_name = bank_name or bank_code
        user.account_number = account_number
        user.recipient_code = recipient.get('recipient_code')
        user.subaccount_code = subaccount_code
        session.commit()

    except CommerceError:
        session.rollback()
        raise
    except Exception:
        session.rollback()
        logger.exception(f"[PAYOUT] Error saving bank details for user {identity.user_id}")
        raise

    logger.info(f"[PAYOUT] Bank details saved for user {identity.user_id}")
    return user
