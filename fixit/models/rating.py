"""Rating model"""
from fixit import db
from .base import generate_uuid, utcnow, isoformat


class Rating(db.Model):
    __tablename__ = 'ratings'

    id = db.Column(db.String(36), primary_key=True, default=generate_uuid)
    booking_id = db.Column(db.String(36), db.ForeignKey('bookings.id', ondelete='CASCADE'), nullable=False, index=True)
    customer_id = db.Column(db.String(36), db.ForeignKey('users.id', ondelete='CASCADE'), nullable=False)
    technician_id = db.Column(db.String(36), db.ForeignKey('technicians.id', ondelete='CASCADE'), nullable=False, index=True)
    rating = db.Column(db.Integer, nullable=False)
    comment = db.Column(db.Text, nullable=True)
    created_at = db.Column(db.DateTime, default=utcnow)

    __table_args__ = (
        db.UniqueConstraint('booking_id', 'customer_id', name='uq_ratings_booking_customer'),
        db.CheckConstraint('rating >= 1 AND rating <= 5', name='ck_ratings_rating'),
    )

    customer = db.relationship('User', foreign_keys=[customer_id])

    def to_dict(self):
        return {
            'id': self.id,
            'booking_id': self.booking_id,
            'customer_id': self.customer_id,
            'technician_id': self.technician_id,
            'rating': self.rating,
            'comment': self.comment,
            'customer_name': self.customer.name if self.customer else None,
            'created_at': isoformat(self.created_at),
        }
