"""User model"""
from fixit import db
from .base import generate_uuid, utcnow, isoformat


class User(db.Model):
    """
    Authentication identity. Tokens are issued elsewhere; this row only
    anchors the ``user_id`` claim to a role.
    """
    __tablename__ = 'users'

    id = db.Column(db.String(36), primary_key=True, default=generate_uuid)
    email = db.Column(db.String(255), unique=True, nullable=True, index=True)
    phone = db.Column(db.String(20), nullable=True)
    name = db.Column(db.String(255), nullable=True)
    role = db.Column(db.String(20), nullable=False, default='customer')  # customer, technician, admin
    status = db.Column(db.String(20), nullable=False, default='active')

    created_at = db.Column(db.DateTime, default=utcnow)
    updated_at = db.Column(db.DateTime, default=utcnow, onupdate=utcnow)

    technician_profile = db.relationship('Technician', back_populates='user', uselist=False)

    __table_args__ = (
        db.CheckConstraint(
            "role IN ('customer', 'technician', 'admin')",
            name='ck_users_role',
        ),
    )

    def __repr__(self):
        return f'<User {self.id} role={self.role}>'

    def to_dict(self):
        return {
            'id': self.id,
            'email': self.email,
            'phone': self.phone,
            'name': self.name,
            'role': self.role,
            'status': self.status,
            'created_at': isoformat(self.created_at),
        }
