import pytest
from decimal import Decimal
import uuid

from sqlalchemy.orm import sessionmaker

from config import TestConfig
from coursemart import create_app
from coursemart import database
from coursemart.database import create_schema, drop_schema, get_session
from coursemart.exceptions import GatewayError
from coursemart.identity import Identity
from coursemart.models import (
    AppUser, Course, GroupTier, PromoCode, UserRole
)


class FakeGateway:
    """In-memory stand-in for PaystackClient that records every call."""

    def __init__(self, fail_initialize=False):
        self.fail_initialize = fail_initialize
        self.initialized = []
        self.recipients = []
        self.subaccounts = []

    def initialize_transaction(self, email, amount_minor, reference, callback_url=None, metadata=None):
        self.initialized.append({
            'email': email,
            'amount_minor': amount_minor,
            'reference': reference,
            'callback_url': callback_url,
            'metadata': metadata,
        })
        if self.fail_initialize:
            raise GatewayError('Gateway unavailable', http_status=503)
        return {
            'authorization_url': f'https://checkout.paystack.com/{reference}',
            'access_code': f'ac_{reference[-6:]}',
            'reference': reference,
        }

    def list_banks(self, country='nigeria'):
        return [
            {'name': 'Access Bank', 'code': '044', 'active': True},
            {'name': 'Closed Bank', 'code': '999', 'active': False},
        ]

    def resolve_account(self, account_number, bank_code):
        return {'account_name': 'ADA LOVELACE', 'account_number': account_number}

    def create_transfer_recipient(self, name, account_number, bank_code, currency='NGN'):
        self.recipients.append(account_number)
        return {'recipient_code': f'RCP_{account_number}'}

    def create_subaccount(self, business_name, settlement_bank, account_number,
                          percentage_charge=0, contact_email=None):
        self.subaccounts.append(account_number)
        return {'subaccount_code': f'ACCT_{account_number}'}


@pytest.fixture(scope='session')
def app():
    """Create application instance for testing."""
    return create_app(TestConfig)


@pytest.fixture(autouse=True)
def schema(app):
    """Fresh tables for every test, inside an application context."""
    with app.app_context():
        create_schema()
        yield
        get_session().remove()
        drop_schema()


@pytest.fixture(scope='function')
def client(app):
    """Create test client."""
    return app.test_client()


@pytest.fixture(scope='function')
def session():
    """Create database session for testing."""
    session = get_session()
    yield session
    session.rollback()
    session.close()


@pytest.fixture(scope='function')
def other_session():
    """Independent session on the same engine, acting as a second request."""
    session = sessionmaker(bind=database.engine, autoflush=False)()
    yield session
    session.rollback()
    session.close()


@pytest.fixture
def gateway():
    return FakeGateway()


@pytest.fixture
def failing_gateway():
    return FakeGateway(fail_initialize=True)


@pytest.fixture
def make_user(session):
    """Factory for users with a unique email."""
    def _make(role=UserRole.USER.value, full_name='Test User'):
        suffix = str(uuid.uuid4())[:8]
        user = AppUser(
            email=f'{role.lower()}-{suffix}@test.com',
            full_name=full_name,
            role=role,
            active=True,
            wallet_balance=Decimal('0.00')
        )
        session.add(user)
        session.commit()
        return user
    return _make


@pytest.fixture
def tutor(make_user):
    return make_user(role=UserRole.TUTOR.value, full_name='Tutor One')


@pytest.fixture
def buyer(make_user):
    return make_user(full_name='Buyer One')


@pytest.fixture
def make_course(session, tutor):
    """Factory for active courses owned by the tutor fixture."""
    def _make(base_price='50000', current_price='35000', price=None, category='design',
              group_buying_enabled=True, owner=None):
        course = Course(
            tutor_id=(owner or tutor).id,
            title=f'Course {str(uuid.uuid4())[:6]}',
            category=category,
            currency='NGN',
            base_price=Decimal(base_price) if base_price is not None else None,
            current_price=Decimal(current_price) if current_price is not None else None,
            price=Decimal(price) if price is not None else None,
            group_buying_enabled=group_buying_enabled,
            active=True
        )
        session.add(course)
        session.commit()
        return course
    return _make


@pytest.fixture
def course(make_course):
    return make_course()


@pytest.fixture
def tier(session, course):
    """Tier from the reference example: 5 seats, 10000, 10% cashback."""
    tier = GroupTier(
        course_id=course.id,
        size=5,
        group_price=Decimal('10000.00'),
        cashback_percent=Decimal('0.1'),
        is_active=True
    )
    session.add(tier)
    session.commit()
    return tier


@pytest.fixture
def make_promo(session):
    def _make(code=None, **fields):
        fields.setdefault('promo_type', 'PLATFORM')
        fields.setdefault('discount_type', 'PERCENT')
        fields.setdefault('discount_value', Decimal('10'))
        fields.setdefault('is_global', True)
        fields.setdefault('is_active', True)
        promo = PromoCode(code=code or f'SAVE{str(uuid.uuid4())[:6].upper()}', **fields)
        session.add(promo)
        session.commit()
        return promo
    return _make


@pytest.fixture
def identity_for():
    """Build the Identity a request for this user would carry."""
    def _identity(user):
        return Identity(user_id=user.id, email=user.email, full_name=user.full_name)
    return _identity


@pytest.fixture
def login(client):
    """Put a user id in the Flask session of the test client."""
    def _login(user_id):
        with client.session_transaction() as sess:
            sess['user_id'] = user_id
        return client
    return _login
