"""Payout request model"""
from fixit import db
from .base import generate_uuid, utcnow, isoformat

SETTLED_STATUSES = ('approved', 'paid')
OPEN_STATUSES = ('pending', 'approved', 'paid')


class PayoutRequest(db.Model):
    """
    A technician's withdrawal: a batch claim over unpaid completed bookings.

    ``booking_ids`` is fixed at creation. Ownership of a booking is held by
    ``bookings.payout_request_id``; a rejected request releases its bookings
    by clearing that column.
    """
    __tablename__ = 'payout_requests'

    id = db.Column(db.String(36), primary_key=True, default=generate_uuid)
    technician_id = db.Column(db.String(36), db.ForeignKey('technicians.id', ondelete='CASCADE'), nullable=False, index=True)
    amount = db.Column(db.Integer, nullable=False)
    booking_ids = db.Column(db.JSON, nullable=False, default=list)
    payment_method = db.Column(db.String(50), nullable=False)
    account_details = db.Column(db.JSON, nullable=True)

    status = db.Column(db.String(20), nullable=False, default='pending')  # pending, approved, paid, rejected
    rejection_reason = db.Column(db.Text, nullable=True)

    created_at = db.Column(db.DateTime, default=utcnow)
    processed_at = db.Column(db.DateTime, nullable=True)
    updated_at = db.Column(db.DateTime, default=utcnow, onupdate=utcnow)

    technician = db.relationship('Technician', backref='payout_requests')

    __table_args__ = (
        db.CheckConstraint(
            "status IN ('pending', 'approved', 'paid', 'rejected')",
            name='ck_payout_requests_status',
        ),
        db.CheckConstraint('amount >= 0', name='ck_payout_requests_amount'),
    )

    def __repr__(self):
        return f'<PayoutRequest {self.id} amount={self.amount} status={self.status}>'

    @property
    def settled_at(self):
        return self.processed_at or self.created_at

    def to_dict(self):
        return {
            'id': self.id,
            'technician_id': self.technician_id,
            'amount': self.amount,
            'booking_ids': list(self.booking_ids or []),
            'payment_method': self.payment_method,
            'account_details': self.account_details or {},
            'status': self.status,
            'rejection_reason': self.rejection_reason,
            'created_at': isoformat(self.created_at),
            'processed_at': isoformat(self.processed_at),
        }
