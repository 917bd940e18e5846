"""Notification inbox model"""
from fixit import db
from .base import generate_uuid, utcnow, isoformat


class Notification(db.Model):
    __tablename__ = 'notifications'

    id = db.Column(db.String(36), primary_key=True, default=generate_uuid)
    recipient_type = db.Column(db.String(20), nullable=False)  # admin, technician, customer
    recipient_id = db.Column(db.String(36), nullable=True, index=True)  # null = every admin
    type = db.Column(db.String(50), nullable=False, default='general')
    title = db.Column(db.String(255), nullable=False)
    message = db.Column(db.Text, nullable=True)
    data = db.Column(db.JSON, nullable=True)
    is_read = db.Column(db.Boolean, default=False)
    created_at = db.Column(db.DateTime, default=utcnow)

    __table_args__ = (
        db.Index('ix_notifications_recipient', 'recipient_type', 'recipient_id'),
    )

    def to_dict(self):
        return {
            'id': self.id,
            'recipient_type': self.recipient_type,
            'recipient_id': self.recipient_id,
            'type': self.type,
            'title': self.title,
            'message': self.message,
            'data': self.data,
            'is_read': self.is_read,
            'created_at': isoformat(self.created_at),
        }
