"""Booking model"""
from sqlalchemy.orm import validates

from fixit import db
from fixit.errors import ValidationError
from .base import generate_uuid, utcnow, isoformat

BOOKING_STATUSES = ('pending', 'confirmed', 'in_progress', 'completed', 'cancelled')
PAYMENT_STATUSES = ('pending', 'paid', 'failed', 'refunded')
SNAPSHOT_FIELDS = ('technician_earnings', 'admin_commission', 'admin_commission_percentage')


class Booking(db.Model):
    """
    A paid repair visit.

    Lifecycle: pending -> confirmed (payment captured) -> in_progress
    (assigned technician started) -> completed. ``pending`` and ``confirmed``
    bookings may be cancelled. The earnings snapshot is written exactly once,
    when the booking completes.
    """
    __tablename__ = 'bookings'

    id = db.Column(db.String(36), primary_key=True, default=generate_uuid)
    customer_id = db.Column(db.String(36), db.ForeignKey('users.id', ondelete='CASCADE'), nullable=False, index=True)
    technician_id = db.Column(db.String(36), db.ForeignKey('technicians.id', ondelete='SET NULL'), nullable=True, index=True)

    service_name = db.Column(db.String(255), nullable=False)
    address = db.Column(db.Text, nullable=True)
    lat = db.Column(db.Float, nullable=True)
    lng = db.Column(db.Float, nullable=True)
    scheduled_at = db.Column(db.DateTime, nullable=True)
    notes = db.Column(db.Text, nullable=True)

    amount = db.Column(db.Integer, nullable=False, default=0)
    status = db.Column(db.String(20), nullable=False, default='pending')
    payment_status = db.Column(db.String(20), nullable=False, default='pending')

    # Earnings snapshot, written at completion
    technician_earnings = db.Column(db.Integer, nullable=True)
    admin_commission = db.Column(db.Integer, nullable=True)
    admin_commission_percentage = db.Column(db.Integer, nullable=True)

    payout_request_id = db.Column(
        db.String(36), db.ForeignKey('payout_requests.id', ondelete='SET NULL'), nullable=True, index=True
    )
    rated = db.Column(db.Boolean, nullable=False, default=False)
    cancellation_reason = db.Column(db.Text, nullable=True)

    created_at = db.Column(db.DateTime, default=utcnow)
    confirmed_at = db.Column(db.DateTime, nullable=True)
    accepted_at = db.Column(db.DateTime, nullable=True)
    started_at = db.Column(db.DateTime, nullable=True)
    completed_at = db.Column(db.DateTime, nullable=True)
    cancelled_at = db.Column(db.DateTime, nullable=True)
    updated_at = db.Column(db.DateTime, default=utcnow, onupdate=utcnow)

    customer = db.relationship('User', foreign_keys=[customer_id])
    technician = db.relationship('Technician', foreign_keys=[technician_id], backref='bookings')

    __table_args__ = (
        db.CheckConstraint(
            "status IN ('pending', 'confirmed', 'in_progress', 'completed', 'cancelled')",
            name='ck_bookings_status',
        ),
        db.CheckConstraint(
            "payment_status IN ('pending', 'paid', 'failed', 'refunded')",
            name='ck_bookings_payment_status',
        ),
        db.CheckConstraint('amount >= 0', name='ck_bookings_amount'),
        db.Index('ix_bookings_ledger', 'technician_id', 'status'),
    )

    def __repr__(self):
        return f'<Booking {self.id} status={self.status} payment={self.payment_status}>'

    @validates('amount')
    def _validate_amount(self, key, value):
        if self.payment_status == 'paid' and self.amount is not None and value != self.amount:
            raise ValidationError("Booking amount cannot change after payment is confirmed")
        return value

    @validates(*SNAPSHOT_FIELDS)
    def _validate_snapshot(self, key, value):
        current = getattr(self, key)
        if current is not None and value != current:
            raise ValidationError("Earnings snapshot is immutable once written")
        return value

    @property
    def has_earnings_snapshot(self):
        return self.technician_earnings is not None

    def earnings_snapshot(self):
        if not self.has_earnings_snapshot:
            return None
        return {
            'technician_earnings': self.technician_earnings,
            'admin_commission': self.admin_commission,
            'admin_commission_percentage': self.admin_commission_percentage,
        }

    def to_dict(self):
        return {
            'id': self.id,
            'customer_id': self.customer_id,
            'technician_id': self.technician_id,
            'service_name': self.service_name,
            'address': self.address,
            'scheduled_at': isoformat(self.scheduled_at),
            'notes': self.notes,
            'amount': self.amount,
            'status': self.status,
            'payment_status': self.payment_status,
            'earnings': self.earnings_snapshot(),
            'payout_request_id': self.payout_request_id,
            'rated': self.rated,
            'created_at': isoformat(self.created_at),
            'confirmed_at': isoformat(self.confirmed_at),
            'accepted_at': isoformat(self.accepted_at),
            'started_at': isoformat(self.started_at),
            'completed_at': isoformat(self.completed_at),
            'cancelled_at': isoformat(self.cancelled_at),
        }
