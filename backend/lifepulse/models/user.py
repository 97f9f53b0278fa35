"""
User model for donors and requesters.
"""
import logging
from datetime import datetime, timedelta
from lifepulse import db

logger = logging.getLogger(__name__)

BLOOD_GROUPS = ['A+', 'A-', 'B+', 'B-', 'AB+', 'AB-', 'O+', 'O-']

ROLES = ['DONOR', 'REQUESTER']

# Days a donor must wait after a recorded donation
ELIGIBILITY_WINDOW_DAYS = 90


class User(db.Model):
    """
    A registered donor or requester.
    Location is stored as plain longitude/latitude columns and stays NULL
    until the user grants location access.
    """
    __tablename__ = 'users'

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(50), nullable=False)

    # At least one of email/phone is set; each is unique when present
    email = db.Column(db.String(255), nullable=True, unique=True)
    phone = db.Column(db.String(20), nullable=True, unique=True)

    role = db.Column(db.String(20), nullable=False)
    blood_group = db.Column(db.String(3), nullable=False)
    is_admin = db.Column(db.Boolean, default=False, nullable=False)
    is_active = db.Column(db.Boolean, default=True, nullable=False)

    longitude = db.Column(db.Float, nullable=True)
    latitude = db.Column(db.Float, nullable=True)

    availability = db.Column(db.Boolean, default=False, nullable=False)
    push_token = db.Column(db.String(500), nullable=True)

    # Medical history
    total_donations = db.Column(db.Integer, default=0, nullable=False)
    last_donation_date = db.Column(db.DateTime, nullable=True)
    last_eligibility_reminder_at = db.Column(db.DateTime, nullable=True)

    # Emergency contact
    emergency_contact_name = db.Column(db.String(50), nullable=True)
    emergency_contact_phone = db.Column(db.String(20), nullable=True)
    emergency_contact_relationship = db.Column(db.String(30), nullable=True)

    created_at = db.Column(db.DateTime, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    __table_args__ = (
        db.Index('ix_users_role_blood_group_availability', 'role', 'blood_group', 'availability'),
        db.Index('ix_users_location', 'latitude', 'longitude'),
    )

    @property
    def has_location(self):
        return self.longitude is not None and self.latitude is not None

    @property
    def is_donor(self):
        return self.role == 'DONOR'

    @property
    def is_requester(self):
        return self.role == 'REQUESTER'

    def update_location(self, longitude: float, latitude: float):
        self.longitude = longitude
        self.latitude = latitude

    def toggle_availability(self) -> bool:
        self.availability = not self.availability
        return self.availability

    def record_donation(self, when=None):
        """Increment the donation count and restart the eligibility window."""
        self.total_donations = (self.total_donations or 0) + 1
        self.last_donation_date = when or datetime.utcnow()

    def eligibility(self, now=None) -> dict:
        """Return {'eligible': bool, 'daysLeft': int} for the 90-day rule."""
        if not self.last_donation_date:
            return {'eligible': True, 'daysLeft': 0}
        now = now or datetime.utcnow()
        days_since = (now - self.last_donation_date).days
        if days_since >= ELIGIBILITY_WINDOW_DAYS:
            return {'eligible': True, 'daysLeft': 0}
        return {'eligible': False, 'daysLeft': max(ELIGIBILITY_WINDOW_DAYS - days_since, 0)}

    @property
    def eligible_since(self):
        if not self.last_donation_date:
            return None
        return self.last_donation_date + timedelta(days=ELIGIBILITY_WINDOW_DAYS)

    def location_dict(self):
        if not self.has_location:
            return None
        return {'type': 'Point', 'coordinates': [self.longitude, self.latitude]}

    def to_dict(self, include_contact=False):
        """Public representation. The push token is never included."""
        data = {
            'id': self.id,
            'name': self.name,
            'role': self.role,
            'bloodGroup': self.blood_group,
            'location': self.location_dict(),
            'availability': self.availability,
            'medicalHistory': {
                'hasDonatedBefore': (self.total_donations or 0) > 0,
                'totalDonations': self.total_donations or 0,
                'lastDonationDate': self.last_donation_date.isoformat() if self.last_donation_date else None,
            },
            'createdAt': self.created_at.isoformat() if self.created_at else None,
        }
        if include_contact:
            data['email'] = self.email
            data['phone'] = self.phone
            data['isAdmin'] = self.is_admin
            data['isActive'] = self.is_active
            data['emergencyContact'] = {
                'name': self.emergency_contact_name,
                'phone': self.emergency_contact_phone,
                'relationship': self.emergency_contact_relationship,
            }
        return data

    def summary_dict(self):
        """Short form used when a user is nested in a request."""
        return {
            'id': self.id,
            'name': self.name,
            'phone': self.phone,
            'bloodGroup': self.blood_group,
        }

    @staticmethod
    def find_by_identifier(identifier):
        """Look up a user by a parsed Identifier (email or phone)."""
        if identifier.kind == 'email':
            return User.query.filter_by(email=identifier.value).first()
        return User.query.filter_by(phone=identifier.value).first()

    def __repr__(self):
        return f'<User {self.id} role={self.role}>'
