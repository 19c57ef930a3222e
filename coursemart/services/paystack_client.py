"""Paystack API client for checkout sessions and tutor payouts."""
import logging
import os
import secrets
from typing import Dict, Any, List, Optional

import requests
from flask import current_app, has_app_context

from coursemart.exceptions import GatewayError

logger = logging.getLogger(__name__)


def new_reference() -> str:
    """Mint a fresh gateway reference (128 random bits) for one payment attempt."""
    return f"ps_{secrets.token_hex(16)}"


class PaystackClient:
    """Client for the Paystack REST API."""

    BASE_URL = "https://api.paystack.co"
    DEFAULT_TIMEOUT = 10

    def __init__(
        self,
        secret_key: Optional[str] = None,
        base_url: Optional[str] = None,
        timeout: Optional[float] = None,
        http: Optional[requests.Session] = None
    ):
        """
        Initialize Paystack client.

        Args:
            secret_key: Paystack secret key. If None, reads from env PAYSTACK_SECRET_KEY
            base_url: API root, defaults to the public Paystack API
            timeout: Per-request timeout in seconds
            http: requests.Session to reuse (tests inject a stub here)
        """
        self.secret_key = secret_key or os.getenv('PAYSTACK_SECRET_KEY')
        if not self.secret_key:
            raise ValueError("PAYSTACK_SECRET_KEY is required")

        self.base_url = (base_url or self.BASE_URL).rstrip('/')
        self.timeout = timeout or self.DEFAULT_TIMEOUT
        self.http = http or requests.Session()
        self.headers = {
            'Authorization': f'Bearer {self.secret_key}',
            'Content-Type': 'application/json'
        }

    @classmethod
    def from_config(cls, config) -> 'PaystackClient':
        return cls(
            secret_key=config.get('PAYSTACK_SECRET_KEY'),
            base_url=config.get('PAYSTACK_BASE_URL'),
            timeout=config.get('PAYSTACK_TIMEOUT'),
        )

    def _request(self, method: str, path: str, action: str, **kwargs) -> Any:
        """
        Send a request and unwrap Paystack's ``{status, message, data}`` envelope.

        Raises:
            GatewayError: On transport errors, non-2xx responses, non-JSON
                bodies, or a falsy ``status`` flag
        """
        url = f"{self.base_url}{path}"
        try:
            response = self.http.request(
                method, url, headers=self.headers, timeout=self.timeout, **kwargs
            )
        except requests.RequestException as e:
            logger.error(f"[PAYSTACK] {action} transport error: {e}")
            raise GatewayError(f"Paystack {action} failed: {e}")

        try:
            body = response.json()
        except ValueError:
            logger.error(f"[PAYSTACK] {action} returned non-JSON body ({response.status_code})")
            raise GatewayError(f"Paystack {action} failed", http_status=response.status_code)

        if not response.ok or not body.get('status'):
            message = body.get('message') or f"Paystack {action} failed"
            logger.error(f"[PAYSTACK] {action} rejected ({response.status_code}): {message}")
            raise GatewayError(message, http_status=response.status_code, response=body)

        return body.get('data')

    def initialize_transaction(
        self,
        email: str,
        amount_minor: int,
        reference: str,
        callback_url: Optional[str] = None,
        metadata: Optional[Dict[str, Any]] = None
    ) -> Dict[str, Any]:
        """
        Open a hosted payment session.

        Args:
            email: Payer email
            amount_minor: Amount in kobo
            reference: Local idempotency key, minted per attempt
            callback_url: Where Paystack redirects after payment
            metadata: Echoed back by verify

        Returns:
            Dict with authorization_url, access_code and reference
        """
        payload = {
            'email': email,
            'amount': int(amount_minor),
            'reference': reference,
        }
        if callback_url:
            payload['callback_url'] = callback_url
        if metadata:
            payload['metadata'] = metadata

        logger.info(f"[PAYSTACK] Initializing transaction {reference} ({amount_minor} minor units)")
        data = self._request('POST', '/transaction/initialize', 'initialize', json=payload)
        logger.info(f"[PAYSTACK] Transaction initialized: {reference}")
        return data

    def verify_transaction(self, reference: str) -> Dict[str, Any]:
        """Fetch the remote state of a payment (status, amount, metadata, ...)."""
        logger.info(f"[PAYSTACK] Verifying transaction {reference}")
        return self._request('GET', f'/transaction/verify/{reference}', 'verify')

    def transfer(
        self,
        amount_minor: int,
        recipient_code: str,
        reference: str,
        reason: Optional[str] = None
    ) -> Dict[str, Any]:
        """Pay out from the platform balance to a transfer recipient."""
        payload = {
            'source': 'balance',
            'amount': int(amount_minor),
            'recipient': recipient_code,
            'reference': reference,
        }
        if reason:
            payload['reason'] = reason

        logger.info(f"[PAYSTACK] Transfer {reference} to {recipient_code}")
        return self._request('POST', '/transfer', 'transfer', json=payload)

    def create_transfer_recipient(self, name: str, account_number: str, bank_code: str,
                                  currency: str = 'NGN') -> Dict[str, Any]:
        payload = {
            'type': 'nuban',
            'name': name,
            'account_number': account_number,
            'bank_code': bank_code,
            'currency': currency,
        }
        return self._request('POST', '/transferrecipient', 'create recipient', json=payload)

    def resolve_account(self, account_number: str, bank_code: str) -> Dict[str, Any]:
        params = {'account_number': account_number, 'bank_code': bank_code}
        return self._request('GET', '/bank/resolve', 'resolve account', params=params)

    def list_banks(self, country: str = 'nigeria') -> List[Dict[str, Any]]:
        return self._request('GET', '/bank', 'list banks', params={'country': country}) or []

    def create_subaccount(
        self,
        business_name: str,
        settlement_bank: str,
        account_number: str,
        percentage_charge: float = 0,
        contact_email: Optional[str] = None
    ) -> Dict[str, Any]:
        payload = {
            'business_name': business_name,
            'settlement_bank': settlement_bank,
            'account_number': account_number,
            'percentage_charge': percentage_charge,
        }
        if contact_email:
            payload['primary_contact_email'] = contact_email
        return self._request('POST', '/subaccount', 'create subaccount', json=payload)


def get_gateway() -> PaystackClient:
    """Build a client from the current app config (or the environment outside a request)."""
    if has_app_context():
        return PaystackClient.from_config(current_app.config)
    return PaystackClient()
