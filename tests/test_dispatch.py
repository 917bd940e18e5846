"""
Job offer dispatch and acceptance tests for FixIt
"""
import json
from datetime import timedelta

import pytest
from sqlalchemy import event, update

from fixit import db
from fixit.errors import (
    BookingNotEligible,
    OfferNoLongerAvailable,
    OfferNotFound,
    TechnicianNotFound,
    ValidationError,
)
from fixit.models import Booking, JobOffer, Notification, utcnow
from fixit.services import dispatch
from fixit.services.dispatch import (
    SimpleEligibilityFilter,
    accept_offer,
    assign_booking,
    decline_offer,
    dispatch_booking,
    expire_stale_offers,
    handle_payment_confirmation,
)


class TestPaymentConfirmation:

    def test_paid_event_confirms_and_dispatches(self, client, db_session, api_key_headers,
                                                booking_factory, technician_factory):
        base = utcnow() - timedelta(hours=1)
        technicians = [technician_factory(created_at=base + timedelta(seconds=i)) for i in range(6)]
        booking = booking_factory()

        response = client.post('/api/payments/confirmation', headers=api_key_headers, json={
            'booking_id': booking.id,
            'amount': 1000,
            'payment_status': 'paid',
        })

        assert response.status_code == 200
        data = json.loads(response.data)
        assert data['booking']['status'] == 'confirmed'
        assert data['booking']['payment_status'] == 'paid'
        assert data['offers_created'] == 5

        offers = JobOffer.query.filter_by(booking_id=booking.id).all()
        assert {o.technician_id for o in offers} == {t.id for t in technicians[:5]}
        assert all(o.status == 'pending' for o in offers)
        assert all(o.estimated_earnings == 700 for o in offers)
        assert all(o.expires_at - o.created_at == timedelta(minutes=30) for o in offers)

    def test_replayed_event_is_a_noop(self, db_session, booking_factory, technician):
        booking = booking_factory()
        handle_payment_confirmation(booking.id, 1000, 'paid')
        booking_again, offers = handle_payment_confirmation(booking.id, 1000, 'paid')

        assert offers == []
        assert booking_again.status == 'confirmed'
        assert JobOffer.query.filter_by(booking_id=booking.id).count() == 1

    def test_amount_mismatch_rejected(self, client, db_session, api_key_headers, booking_factory):
        booking = booking_factory()
        response = client.post('/api/payments/confirmation', headers=api_key_headers, json={
            'booking_id': booking.id,
            'amount': 900,
            'payment_status': 'paid',
        })
        assert response.status_code == 400
        assert db_session.get(Booking, booking.id).status == 'pending'

    def test_requires_api_key(self, client, booking_factory):
        booking = booking_factory()
        response = client.post('/api/payments/confirmation', headers={'X-API-Key': 'nope'}, json={
            'booking_id': booking.id,
            'amount': 1000,
            'payment_status': 'paid',
        })
        assert response.status_code == 401

    def test_unknown_booking(self, client, api_key_headers):
        response = client.post('/api/payments/confirmation', headers=api_key_headers, json={
            'booking_id': 'missing',
            'amount': 1000,
            'payment_status': 'paid',
        })
        assert response.status_code == 404
        assert json.loads(response.data)['code'] == 'booking_not_found'

    def test_dispatch_failure_keeps_payment(self, db_session, booking_factory, technician, monkeypatch):
        def broken_dispatch(*args, **kwargs):
            raise RuntimeError('offer store unavailable')

        monkeypatch.setattr(dispatch, 'dispatch_booking', broken_dispatch)
        booking = booking_factory()

        confirmed, offers = handle_payment_confirmation(booking.id, 1000, 'paid')

        assert offers == []
        db_session.expire_all()
        stored = db_session.get(Booking, booking.id)
        assert stored.status == 'confirmed'
        assert stored.payment_status == 'paid'

    def test_refund_cancels_unassigned_booking(self, db_session, paid_booking, technician, offer_factory):
        offer = offer_factory(paid_booking, technician)

        booking, _ = handle_payment_confirmation(paid_booking.id, None, 'refunded')

        assert booking.payment_status == 'refunded'
        assert booking.status == 'cancelled'
        assert db_session.get(JobOffer, offer.id).status == 'expired'

    def test_refund_cancels_assigned_booking(self, db_session, paid_booking, technician, offer_factory):
        offer = offer_factory(paid_booking, technician)
        accept_offer(technician, offer.id)

        booking, _ = handle_payment_confirmation(paid_booking.id, None, 'refunded')

        assert booking.status == 'cancelled'
        assert booking.cancellation_reason == 'Payment refunded'
        assert technician.is_available is True
        assert Notification.query.filter_by(
            recipient_id=technician.id, title='Booking Cancelled',
        ).count() == 1

    def test_refund_during_work_alerts_admins(self, db_session, booking_factory, technician):
        booking = booking_factory(technician_id=technician.id, status='in_progress', payment_status='paid')

        booking, _ = handle_payment_confirmation(booking.id, None, 'refunded')

        assert booking.status == 'in_progress'
        assert booking.payment_status == 'refunded'
        assert Notification.query.filter_by(recipient_type='admin', title='Refund On Active Booking').count() == 1


class TestEligibility:

    def test_falls_back_to_active_unavailable_technicians(self, db_session, paid_booking,
                                                          technician_factory):
        idle = [technician_factory(is_available=False) for _ in range(2)]
        technician_factory(status='suspended', is_available=False)

        offers = dispatch_booking(paid_booking)
        db_session.commit()

        assert len(offers) == 2
        assert {o.technician_id for o in offers} == {t.id for t in idle}
        assert all(t.is_available for t in idle)

    def test_no_technicians_creates_no_offers(self, db_session, paid_booking):
        assert dispatch_booking(paid_booking) == []

    def test_fan_out_cap(self, db_session, paid_booking, technician_factory):
        for _ in range(4):
            technician_factory()
        offers = dispatch_booking(paid_booking, strategy=SimpleEligibilityFilter(fan_out=2))
        assert len(offers) == 2

    def test_skips_technicians_with_live_offer(self, db_session, paid_booking, technician, offer_factory):
        offer_factory(paid_booking, technician)
        assert dispatch_booking(paid_booking) == []

    def test_unpaid_booking_not_dispatched(self, booking_factory):
        with pytest.raises(BookingNotEligible):
            dispatch_booking(booking_factory())

    def test_distance_recorded_when_both_locations_known(self, db_session, booking_factory, technician_factory):
        technician_factory(current_lat=25.2048, current_lng=55.2708)
        booking = booking_factory(status='confirmed', payment_status='paid', lat=25.2769, lng=55.2962)

        offers = dispatch_booking(booking)

        assert offers[0].distance_km == pytest.approx(8.4, abs=0.5)

    def test_technicians_are_notified(self, db_session, paid_booking, technician):
        offers = dispatch_booking(paid_booking)
        db_session.commit()

        notification = Notification.query.filter_by(recipient_id=technician.id, type='job_offer').one()
        assert notification.data['offer_id'] == offers[0].id


class TestAcceptOffer:

    def test_first_accept_wins(self, client, db_session, paid_booking, technician, technician_factory,
                               offer_factory, technician_headers, headers_for):
        rival = technician_factory()
        mine = offer_factory(paid_booking, technician)
        theirs = offer_factory(paid_booking, rival)

        response = client.post(f'/api/technicians/offers/{mine.id}/accept', headers=technician_headers)
        assert response.status_code == 200
        assert json.loads(response.data)['booking_id'] == paid_booking.id

        response = client.post(f'/api/technicians/offers/{theirs.id}/accept', headers=headers_for(rival.user))
        assert response.status_code == 409
        data = json.loads(response.data)
        assert data['error'] == 'This job offer is no longer available'
        assert data['code'] == 'offer_no_longer_available'

        booking = db_session.get(Booking, paid_booking.id)
        assert booking.technician_id == technician.id
        assert booking.accepted_at is not None
        assert db_session.get(JobOffer, mine.id).status == 'accepted'
        assert db_session.get(JobOffer, theirs.id).status == 'declined'
        assert db_session.get(type(technician), technician.id).is_available is False

    def test_assigned_booking_rejects_stray_pending_offer(self, db_session, paid_booking, technician,
                                                          technician_factory, offer_factory):
        rival = technician_factory()
        mine = offer_factory(paid_booking, technician)
        accept_offer(technician, mine.id)

        stray = offer_factory(paid_booking, rival)
        with pytest.raises(OfferNoLongerAvailable):
            accept_offer(rival, stray.id)

        assert db_session.get(JobOffer, stray.id).status == 'pending'
        assert db_session.get(Booking, paid_booking.id).technician_id == technician.id

    def test_booking_row_is_claimed_before_offer_rows(self, db_session, paid_booking, technician,
                                                      technician_factory, offer_factory):
        mine = offer_factory(paid_booking, technician)
        offer_factory(paid_booking, technician_factory())
        updated_tables = []

        def record_update(conn, cursor, statement, parameters, context, executemany):
            words = statement.split()
            if words and words[0].upper() == 'UPDATE':
                updated_tables.append(words[1].strip('"'))

        event.listen(db.engine, 'before_cursor_execute', record_update)
        try:
            accept_offer(technician, mine.id)
        finally:
            event.remove(db.engine, 'before_cursor_execute', record_update)

        assert updated_tables[:3] == ['bookings', 'job_offers', 'job_offers']

    def test_losing_accept_leaves_offer_and_booking_untouched(self, db_session, paid_booking, technician,
                                                              technician_factory, offer_factory):
        rival = technician_factory()
        theirs = offer_factory(paid_booking, rival)
        db_session.execute(
            update(Booking)
            .where(Booking.id == paid_booking.id)
            .values(technician_id=technician.id)
        )
        db_session.commit()

        with pytest.raises(OfferNoLongerAvailable):
            accept_offer(rival, theirs.id)

        db_session.expire_all()
        assert db_session.get(JobOffer, theirs.id).status == 'pending'
        assert db_session.get(JobOffer, theirs.id).responded_at is None
        assert db_session.get(Booking, paid_booking.id).technician_id == technician.id

    def test_expired_offer_cannot_be_accepted(self, db_session, paid_booking, technician, offer_factory):
        now = utcnow()
        offer = offer_factory(
            paid_booking, technician,
            created_at=now - timedelta(minutes=31),
            expires_at=now - timedelta(minutes=1),
        )

        with pytest.raises(OfferNoLongerAvailable):
            accept_offer(technician, offer.id)

        stored = db_session.get(JobOffer, offer.id)
        assert stored.status == 'pending'
        assert stored.effective_status() == 'expired'
        assert db_session.get(Booking, paid_booking.id).technician_id is None

    def test_cannot_accept_someone_elses_offer(self, db_session, paid_booking, technician,
                                               technician_factory, offer_factory):
        rival = technician_factory()
        offer = offer_factory(paid_booking, rival)
        with pytest.raises(OfferNotFound):
            accept_offer(technician, offer.id)

    def test_cancelled_booking_offer_unavailable(self, client, db_session, paid_booking, technician,
                                                 offer_factory, customer_headers, technician_headers):
        offer = offer_factory(paid_booking, technician)

        response = client.post(f'/api/bookings/{paid_booking.id}/cancel', headers=customer_headers,
                               json={'reason': 'Fixed it myself'})
        assert response.status_code == 200

        response = client.post(f'/api/technicians/offers/{offer.id}/accept', headers=technician_headers)
        assert response.status_code == 409
        assert db_session.get(JobOffer, offer.id).status == 'expired'


class TestOfferMaintenance:

    def test_decline(self, client, db_session, paid_booking, technician, offer_factory, technician_headers):
        offer = offer_factory(paid_booking, technician)

        response = client.post(f'/api/technicians/offers/{offer.id}/decline', headers=technician_headers)

        assert response.status_code == 200
        assert json.loads(response.data)['offer']['status'] == 'declined'
        assert Notification.query.filter_by(recipient_type='admin', type='dispatch').count() == 1

    def test_decline_twice_conflicts(self, db_session, paid_booking, technician, offer_factory):
        offer = offer_factory(paid_booking, technician)
        decline_offer(technician, offer.id)
        with pytest.raises(OfferNoLongerAvailable):
            decline_offer(technician, offer.id)

    def test_list_applies_lazy_expiry(self, client, paid_booking, technician, offer_factory,
                                      technician_headers):
        now = utcnow()
        offer_factory(paid_booking, technician, expires_at=now - timedelta(seconds=1))

        response = client.get('/api/technicians/offers', headers=technician_headers)

        assert response.status_code == 200
        offers = json.loads(response.data)['offers']
        assert [o['status'] for o in offers] == ['expired']

        response = client.get('/api/technicians/offers?status=pending', headers=technician_headers)
        assert json.loads(response.data)['offers'] == []

    def test_sweep_expires_stale_offers(self, db_session, paid_booking, technician, technician_factory,
                                        offer_factory):
        now = utcnow()
        stale = offer_factory(paid_booking, technician, expires_at=now - timedelta(minutes=5))
        live = offer_factory(paid_booking, technician_factory())

        assert expire_stale_offers() == 1
        assert db_session.get(JobOffer, stale.id).status == 'expired'
        assert db_session.get(JobOffer, live.id).status == 'pending'

    def test_admin_redispatch(self, client, db_session, paid_booking, technician, offer_factory,
                              admin_headers):
        old = offer_factory(paid_booking, technician)

        response = client.post(f'/api/admin/bookings/{paid_booking.id}/dispatch', headers=admin_headers)

        assert response.status_code == 200
        offers = json.loads(response.data)['offers']
        assert len(offers) == 1
        assert offers[0]['id'] != old.id
        assert db_session.get(JobOffer, old.id).status == 'expired'


class TestAdminAssign:

    def test_assign_skips_offer_round(self, client, db_session, paid_booking, technician, technician_factory,
                                      offer_factory, admin_headers):
        other = technician_factory()
        open_offer = offer_factory(paid_booking, other)

        response = client.post(f'/api/admin/bookings/{paid_booking.id}/assign', headers=admin_headers,
                               json={'technician_id': technician.id})

        assert response.status_code == 200
        assert json.loads(response.data)['booking']['technician_id'] == technician.id
        assert db_session.get(JobOffer, open_offer.id).status == 'expired'
        assert technician.is_available is False
        assert Notification.query.filter_by(recipient_id=technician.id, title='New Booking Assigned').count() == 1

    def test_assigned_booking_cannot_be_reassigned(self, db_session, paid_booking, technician,
                                                   technician_factory):
        assign_booking(paid_booking.id, technician.id)
        with pytest.raises(BookingNotEligible):
            assign_booking(paid_booking.id, technician_factory().id)
        assert db_session.get(Booking, paid_booking.id).technician_id == technician.id

    def test_unpaid_booking_cannot_be_assigned(self, booking_factory, technician):
        with pytest.raises(BookingNotEligible):
            assign_booking(booking_factory().id, technician.id)

    def test_inactive_technician_rejected(self, paid_booking, technician_factory):
        suspended = technician_factory(status='suspended')
        with pytest.raises(ValidationError):
            assign_booking(paid_booking.id, suspended.id)

    def test_unknown_technician(self, paid_booking):
        with pytest.raises(TechnicianNotFound):
            assign_booking(paid_booking.id, 'missing')

    def test_technician_id_required(self, client, paid_booking, admin_headers):
        response = client.post(f'/api/admin/bookings/{paid_booking.id}/assign', headers=admin_headers, json={})
        assert response.status_code == 400

    def test_only_admins_assign(self, client, paid_booking, technician, technician_headers):
        response = client.post(f'/api/admin/bookings/{paid_booking.id}/assign', headers=technician_headers,
                               json={'technician_id': technician.id})
        assert response.status_code == 403
