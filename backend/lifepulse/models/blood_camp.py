"""
BloodCamp model for scheduled donation drives.
"""
from datetime import datetime
from lifepulse import db

CAMP_STATUSES = ['UPCOMING', 'ACTIVE', 'COMPLETED', 'CANCELLED']

# Statuses listed to the public
OPEN_CAMP_STATUSES = ('UPCOMING', 'ACTIVE')


class BloodCamp(db.Model):
    """
    A donation camp run by an organizer on a given day.
    Created and edited by admins; listed publicly while upcoming or running.
    """
    __tablename__ = 'blood_camps'

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(100), nullable=False)
    description = db.Column(db.String(500), nullable=False)

    longitude = db.Column(db.Float, nullable=False)
    latitude = db.Column(db.Float, nullable=False)
    address = db.Column(db.String(200), nullable=False)
    city = db.Column(db.String(50), nullable=False)

    date = db.Column(db.DateTime, nullable=False)
    start_time = db.Column(db.String(10), nullable=False)
    end_time = db.Column(db.String(10), nullable=False)

    organizer_name = db.Column(db.String(50), nullable=False)
    organizer_phone = db.Column(db.String(20), nullable=False)
    organizer_email = db.Column(db.String(255), nullable=True)

    capacity = db.Column(db.Integer, nullable=False)
    registered_count = db.Column(db.Integer, nullable=False, default=0)
    status = db.Column(db.String(20), nullable=False, default='UPCOMING')

    blood_groups = db.Column(db.JSON, nullable=False, default=list)
    requirements = db.Column(db.JSON, nullable=False, default=list)
    notes = db.Column(db.String(200), nullable=True)
    is_active = db.Column(db.Boolean, default=True, nullable=False)

    created_at = db.Column(db.DateTime, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    __table_args__ = (
        db.CheckConstraint('capacity >= 1', name='ck_blood_camps_capacity'),
        db.Index('ix_blood_camps_date_status', 'date', 'status'),
        db.Index('ix_blood_camps_date_is_active', 'date', 'is_active'),
        db.Index('ix_blood_camps_location', 'latitude', 'longitude'),
    )

    def advance_status(self, now=None):
        """Move UPCOMING to ACTIVE on the camp day and to COMPLETED once the day is over."""
        if self.status not in OPEN_CAMP_STATUSES:
            return self.status
        now = now or datetime.utcnow()
        if self.date.date() < now.date():
            self.status = 'COMPLETED'
        elif self.date <= now:
            self.status = 'ACTIVE'
        return self.status

    def to_dict(self):
        return {
            'id': self.id,
            'name': self.name,
            'description': self.description,
            'location': {
                'type': 'Point',
                'coordinates': [self.longitude, self.latitude],
                'address': self.address,
                'city': self.city,
            },
            'date': self.date.isoformat() if self.date else None,
            'startTime': self.start_time,
            'endTime': self.end_time,
            'organizer': {
                'name': self.organizer_name,
                'phone': self.organizer_phone,
                'email': self.organizer_email,
            },
            'capacity': self.capacity,
            'registeredCount': self.registered_count or 0,
            'status': self.status,
            'bloodGroups': list(self.blood_groups or []),
            'requirements': list(self.requirements or []),
            'notes': self.notes,
            'isActive': self.is_active,
            'createdAt': self.created_at.isoformat() if self.created_at else None,
            'updatedAt': self.updated_at.isoformat() if self.updated_at else None,
        }

    def __repr__(self):
        return f'<BloodCamp {self.id} {self.name!r} status={self.status}>'
