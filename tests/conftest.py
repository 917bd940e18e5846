"""
Pytest configuration and fixtures for FixIt backend tests
"""
import pytest
import os
from datetime import timedelta

from fixit import create_app, db
from fixit.auth import generate_token
from fixit.models import Booking, JobOffer, PayoutRequest, Technician, User, utcnow
from fixit.services.earnings import compute_shares


@pytest.fixture(scope='function')
def app():
    """Create application instance with an empty in-memory database"""
    os.environ['FLASK_ENV'] = 'testing'
    app = create_app('testing')

    with app.app_context():
        db.create_all()
        yield app
        db.session.remove()
        db.drop_all()


@pytest.fixture(scope='function')
def client(app):
    """Create test client"""
    return app.test_client()


@pytest.fixture(scope='function')
def db_session(app):
    return db.session


def _headers(user):
    return {
        'Authorization': f'Bearer {generate_token(user.id)}',
        'Content-Type': 'application/json',
    }


# Factory fixtures
@pytest.fixture
def user_factory(db_session):
    """Factory for creating users of any role"""
    counter = {'n': 0}

    def _create_user(**kwargs):
        counter['n'] += 1
        defaults = {
            'email': f"user{counter['n']}@example.com",
            'name': f"User {counter['n']}",
            'phone': '555-0000',
            'role': 'customer',
        }
        defaults.update(kwargs)
        user = User(**defaults)
        db_session.add(user)
        db_session.commit()
        return user

    return _create_user


@pytest.fixture
def technician_factory(db_session, user_factory):
    """Factory for creating technicians (with their user row)"""
    def _create_technician(**kwargs):
        created_at = kwargs.pop('created_at', None)
        user = user_factory(role='technician')
        defaults = {
            'user_id': user.id,
            'name': user.name,
            'phone': '555-1111',
            'status': 'active',
            'is_available': True,
            'specializations': ['ac_repair'],
        }
        defaults.update(kwargs)
        technician = Technician(**defaults)
        if created_at is not None:
            technician.created_at = created_at
        db_session.add(technician)
        db_session.commit()
        return technician

    return _create_technician


@pytest.fixture
def booking_factory(db_session, customer):
    """Factory for creating bookings, by default awaiting payment"""
    def _create_booking(**kwargs):
        defaults = {
            'customer_id': customer.id,
            'service_name': 'AC Repair',
            'address': '12 Palm Street',
            'scheduled_at': utcnow() + timedelta(days=1),
            'amount': 1000,
            'status': 'pending',
            'payment_status': 'pending',
        }
        defaults.update(kwargs)
        booking = Booking(**defaults)
        db_session.add(booking)
        db_session.commit()
        return booking

    return _create_booking


@pytest.fixture
def completed_booking_factory(booking_factory):
    """Completed bookings with an earnings snapshot at a given commission"""
    def _create(technician, amount, commission=30, **kwargs):
        shares = compute_shares(amount, commission)
        now = utcnow()
        return booking_factory(
            technician_id=technician.id,
            amount=amount,
            status='completed',
            payment_status='paid',
            technician_earnings=shares.technician_share,
            admin_commission=shares.admin_share,
            admin_commission_percentage=commission,
            confirmed_at=now,
            accepted_at=now,
            started_at=now,
            completed_at=kwargs.pop('completed_at', now),
            **kwargs
        )

    return _create


@pytest.fixture
def offer_factory(db_session):
    def _create_offer(booking, technician, **kwargs):
        now = utcnow()
        defaults = {
            'booking_id': booking.id,
            'technician_id': technician.id,
            'status': 'pending',
            'service_name': booking.service_name,
            'address': booking.address,
            'amount': booking.amount,
            'created_at': now,
            'expires_at': now + timedelta(minutes=30),
        }
        defaults.update(kwargs)
        offer = JobOffer(**defaults)
        db_session.add(offer)
        db_session.commit()
        return offer

    return _create_offer


@pytest.fixture
def settled_payout_factory(db_session):
    """Payout requests that already own their bookings"""
    def _create(technician, bookings, status='paid'):
        payout = PayoutRequest(
            technician_id=technician.id,
            amount=sum(b.technician_earnings for b in bookings),
            booking_ids=[b.id for b in bookings],
            payment_method='bank_transfer',
            account_details={'account_number': '0001'},
            status=status,
            processed_at=utcnow() if status in ('approved', 'paid') else None,
        )
        db_session.add(payout)
        db_session.flush()
        for booking in bookings:
            booking.payout_request_id = payout.id
        db_session.commit()
        return payout

    return _create


@pytest.fixture
def customer(user_factory):
    return user_factory(role='customer', name='Dana Customer')


@pytest.fixture
def admin(user_factory):
    return user_factory(role='admin', name='Ops Admin')


@pytest.fixture
def technician(technician_factory):
    return technician_factory(name='Sam Technician')


@pytest.fixture
def paid_booking(booking_factory):
    """A confirmed, paid booking waiting for a technician"""
    return booking_factory(status='confirmed', payment_status='paid', confirmed_at=utcnow())


@pytest.fixture
def customer_headers(customer):
    return _headers(customer)


@pytest.fixture
def admin_headers(admin):
    return _headers(admin)


@pytest.fixture
def technician_headers(technician):
    return _headers(technician.user)


@pytest.fixture
def headers_for():
    return _headers


@pytest.fixture
def api_key_headers(app):
    return {
        'X-API-Key': app.config['API_KEY'],
        'Content-Type': 'application/json',
    }
