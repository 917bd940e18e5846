"""Technician model"""
from fixit import db
from .base import generate_uuid, utcnow, isoformat


class Technician(db.Model):
    """
    Field technician profile.

    ``avg_rating`` is derived from ratings and the ``earnings_*`` columns are
    a denormalized cache of the ledger; both are rebuilt from their source
    rows, never edited by hand.
    """
    __tablename__ = 'technicians'

    id = db.Column(db.String(36), primary_key=True, default=generate_uuid)
    user_id = db.Column(db.String(36), db.ForeignKey('users.id', ondelete='CASCADE'), nullable=False, unique=True)
    name = db.Column(db.String(255), nullable=True)
    phone = db.Column(db.String(20), nullable=True)

    status = db.Column(db.String(20), nullable=False, default='active')  # active, inactive, suspended
    is_available = db.Column(db.Boolean, nullable=False, default=True)
    specializations = db.Column(db.JSON, nullable=True, default=list)

    current_lat = db.Column(db.Float, nullable=True)
    current_lng = db.Column(db.Float, nullable=True)

    avg_rating = db.Column(db.Float, nullable=False, default=0.0)
    rating_count = db.Column(db.Integer, nullable=False, default=0)
    total_jobs = db.Column(db.Integer, nullable=False, default=0)

    earnings_total = db.Column(db.Integer, nullable=False, default=0)
    earnings_pending = db.Column(db.Integer, nullable=False, default=0)
    earnings_paid = db.Column(db.Integer, nullable=False, default=0)
    earnings_refreshed_at = db.Column(db.DateTime, nullable=True)

    created_at = db.Column(db.DateTime, default=utcnow)
    updated_at = db.Column(db.DateTime, default=utcnow, onupdate=utcnow)

    user = db.relationship('User', back_populates='technician_profile')

    __table_args__ = (
        db.CheckConstraint(
            "status IN ('active', 'inactive', 'suspended')",
            name='ck_technicians_status',
        ),
        db.Index('ix_technicians_dispatch', 'status', 'is_available'),
    )

    def __repr__(self):
        return f'<Technician {self.id} status={self.status} available={self.is_available}>'

    def cached_earnings(self):
        return {
            'total': self.earnings_total or 0,
            'pending': self.earnings_pending or 0,
            'paid': self.earnings_paid or 0,
        }

    def to_dict(self):
        return {
            'id': self.id,
            'user_id': self.user_id,
            'name': self.name,
            'phone': self.phone,
            'status': self.status,
            'is_available': self.is_available,
            'specializations': self.specializations or [],
            'avg_rating': self.avg_rating or 0.0,
            'rating_count': self.rating_count or 0,
            'total_jobs': self.total_jobs or 0,
            'earnings': self.cached_earnings(),
            'created_at': isoformat(self.created_at),
            'updated_at': isoformat(self.updated_at),
        }
