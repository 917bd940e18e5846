"""Key/value settings (singleton-style rows for admin-overridable values)"""
from fixit import db
from .base import utcnow, isoformat

COMMISSION_KEY = 'commission'


class Setting(db.Model):
    __tablename__ = 'settings'

    key = db.Column(db.String(100), primary_key=True)
    value = db.Column(db.JSON, nullable=False)
    updated_at = db.Column(db.DateTime, default=utcnow, onupdate=utcnow)

    def to_dict(self):
        return {
            'key': self.key,
            'value': self.value,
            'updated_at': isoformat(self.updated_at),
        }
