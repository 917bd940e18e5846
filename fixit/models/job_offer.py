"""Job offer model"""
from fixit import db
from .base import generate_uuid, utcnow, isoformat


class JobOffer(db.Model):
    """
    Time-boxed invitation of one booking to one technician.

    The booking fields a technician needs to decide are copied onto the
    offer, so accepting never depends on a second read of the booking.
    A pending offer past ``expires_at`` is expired whether or not the sweep
    has flipped its stored status yet.
    """
    __tablename__ = 'job_offers'

    id = db.Column(db.String(36), primary_key=True, default=generate_uuid)
    booking_id = db.Column(db.String(36), db.ForeignKey('bookings.id', ondelete='CASCADE'), nullable=False, index=True)
    technician_id = db.Column(db.String(36), db.ForeignKey('technicians.id', ondelete='CASCADE'), nullable=False, index=True)

    status = db.Column(db.String(20), nullable=False, default='pending')  # pending, accepted, declined, expired
    distance_km = db.Column(db.Float, nullable=True)

    service_name = db.Column(db.String(255), nullable=True)
    address = db.Column(db.Text, nullable=True)
    amount = db.Column(db.Integer, nullable=True)
    estimated_earnings = db.Column(db.Integer, nullable=True)
    scheduled_at = db.Column(db.DateTime, nullable=True)

    created_at = db.Column(db.DateTime, default=utcnow)
    expires_at = db.Column(db.DateTime, nullable=False)
    responded_at = db.Column(db.DateTime, nullable=True)

    booking = db.relationship('Booking', backref='job_offers')
    technician = db.relationship('Technician', backref='job_offers')

    __table_args__ = (
        db.CheckConstraint(
            "status IN ('pending', 'accepted', 'declined', 'expired')",
            name='ck_job_offers_status',
        ),
        db.Index('ix_job_offers_booking_status', 'booking_id', 'status'),
    )

    def __repr__(self):
        return f'<JobOffer {self.id} booking={self.booking_id} status={self.status}>'

    def is_expired(self, now=None):
        now = now or utcnow()
        return self.status == 'expired' or (self.status == 'pending' and self.expires_at <= now)

    def effective_status(self, now=None):
        if self.status == 'pending' and self.is_expired(now):
            return 'expired'
        return self.status

    def to_dict(self, now=None):
        return {
            'id': self.id,
            'booking_id': self.booking_id,
            'technician_id': self.technician_id,
            'status': self.effective_status(now),
            'distance_km': self.distance_km,
            'service_name': self.service_name,
            'address': self.address,
            'amount': self.amount,
            'estimated_earnings': self.estimated_earnings,
            'scheduled_at': isoformat(self.scheduled_at),
            'created_at': isoformat(self.created_at),
            'expires_at': isoformat(self.expires_at),
            'responded_at': isoformat(self.responded_at),
        }
