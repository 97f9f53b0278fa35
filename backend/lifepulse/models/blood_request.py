"""
BloodRequest and DonorAcceptance models.
"""
from datetime import datetime, timedelta
from lifepulse import db

URGENCIES = ['LOW', 'MEDIUM', 'HIGH', 'CRITICAL']

REQUEST_STATUSES = [
    'PENDING',       # Created, no donor has accepted yet
    'IN_PROGRESS',   # At least one acceptance, below target units
    'ACCEPTED',      # Enough acceptances to cover the units
    'COMPLETED',     # Completed donations cover the units
    'CANCELLED',     # Cancelled by the requester or an admin
    'EXPIRED',       # requiredBy passed while still PENDING
]

# Statuses shown to donors and counted as "active" for account deletion
ACTIVE_STATUSES = ('PENDING', 'ACCEPTED', 'IN_PROGRESS')

TERMINAL_STATUSES = ('COMPLETED', 'CANCELLED', 'EXPIRED')

ACCEPTANCE_STATUSES = ['PENDING', 'CONFIRMED', 'COMPLETED', 'CANCELLED']

MIN_UNITS = 1
MAX_UNITS = 10


class BloodRequest(db.Model):
    """
    A requester's call for blood at a hospital.
    accepted_count mirrors the number of DonorAcceptance rows and is only
    changed through conditional UPDATEs so capacity cannot be overrun.
    """
    __tablename__ = 'blood_requests'

    id = db.Column(db.Integer, primary_key=True)
    requester_id = db.Column(db.Integer, db.ForeignKey('users.id'), nullable=False)

    blood_group = db.Column(db.String(3), nullable=False)
    units = db.Column(db.Integer, nullable=False)
    hospital_name = db.Column(db.String(100), nullable=False)
    hospital_address = db.Column(db.String(200), nullable=False)

    longitude = db.Column(db.Float, nullable=False)
    latitude = db.Column(db.Float, nullable=False)

    urgency = db.Column(db.String(10), nullable=False, default='MEDIUM')
    status = db.Column(db.String(20), nullable=False, default='PENDING')
    description = db.Column(db.String(500), nullable=True)
    required_by = db.Column(db.DateTime, nullable=False)
    is_anonymous = db.Column(db.Boolean, default=False, nullable=False)

    accepted_count = db.Column(db.Integer, nullable=False, default=0)
    version = db.Column(db.Integer, nullable=False, default=1)

    admin_notes = db.Column(db.Text, nullable=True)

    created_at = db.Column(db.DateTime, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    requester = db.relationship('User', foreign_keys=[requester_id], backref='blood_requests')
    acceptances = db.relationship(
        'DonorAcceptance', backref='request', lazy='selectin',
        order_by=lambda: [DonorAcceptance.accepted_at, DonorAcceptance.id],
        cascade='all, delete-orphan',
    )

    __table_args__ = (
        db.CheckConstraint('units >= 1 AND units <= 10', name='ck_blood_requests_units'),
        db.CheckConstraint('accepted_count <= units', name='ck_blood_requests_capacity'),
        db.Index('ix_blood_requests_status_blood_group', 'status', 'blood_group'),
        db.Index('ix_blood_requests_urgency_status', 'urgency', 'status'),
        db.Index('ix_blood_requests_requester_status', 'requester_id', 'status'),
        db.Index('ix_blood_requests_required_by', 'required_by'),
        db.Index('ix_blood_requests_location', 'latitude', 'longitude'),
    )

    @property
    def confirmed_count(self) -> int:
        """Acceptances that are CONFIRMED or COMPLETED."""
        return sum(1 for a in self.acceptances if a.status in ('CONFIRMED', 'COMPLETED'))

    @property
    def completed_count(self) -> int:
        return sum(1 for a in self.acceptances if a.status == 'COMPLETED')

    @property
    def remaining_units(self) -> int:
        return max(0, self.units - self.confirmed_count)

    def is_expired(self, now=None) -> bool:
        return (now or datetime.utcnow()) > self.required_by

    def is_urgent(self, now=None) -> bool:
        """Urgent when 24 hours or less remain before required_by."""
        return self.required_by - (now or datetime.utcnow()) <= timedelta(hours=24)

    def acceptance_for(self, donor_id):
        for acceptance in self.acceptances:
            if acceptance.donor_id == donor_id:
                return acceptance
        return None

    def to_dict(self, include_donors=True):
        requester = None
        if self.requester is not None:
            if self.is_anonymous:
                requester = {'id': self.requester_id, 'name': 'Anonymous'}
            else:
                requester = {'id': self.requester_id, 'name': self.requester.name,
                             'phone': self.requester.phone}
        data = {
            'id': self.id,
            'requester': requester,
            'bloodGroup': self.blood_group,
            'units': self.units,
            'hospitalName': self.hospital_name,
            'hospitalAddress': self.hospital_address,
            'location': {'type': 'Point', 'coordinates': [self.longitude, self.latitude]},
            'urgency': self.urgency,
            'status': self.status,
            'description': self.description,
            'requiredBy': self.required_by.isoformat() if self.required_by else None,
            'isAnonymous': self.is_anonymous,
            'isUrgent': self.is_urgent(),
            'acceptedCount': self.confirmed_count,
            'remainingUnits': self.remaining_units,
            'createdAt': self.created_at.isoformat() if self.created_at else None,
            'updatedAt': self.updated_at.isoformat() if self.updated_at else None,
        }
        if include_donors:
            data['acceptedDonors'] = [a.to_dict() for a in self.acceptances]
        return data

    def __repr__(self):
        return f'<BloodRequest {self.id} {self.blood_group} status={self.status}>'


class DonorAcceptance(db.Model):
    """A donor's commitment to a blood request."""
    __tablename__ = 'donor_acceptances'

    id = db.Column(db.Integer, primary_key=True)
    request_id = db.Column(db.Integer, db.ForeignKey('blood_requests.id'), nullable=False, index=True)
    # NULL once the donor deletes their account
    donor_id = db.Column(db.Integer, db.ForeignKey('users.id'), nullable=True, index=True)
    accepted_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)

    # Status: PENDING, CONFIRMED, COMPLETED, CANCELLED
    status = db.Column(db.String(20), nullable=False, default='PENDING')
    notes = db.Column(db.Text, nullable=True)

    donor = db.relationship('User', foreign_keys=[donor_id])

    __table_args__ = (
        db.UniqueConstraint('request_id', 'donor_id', name='uq_donor_acceptances_request_donor'),
    )

    def to_dict(self):
        return {
            'donor': self.donor.summary_dict() if self.donor else {'id': self.donor_id},
            'acceptedAt': self.accepted_at.isoformat() if self.accepted_at else None,
            'status': self.status,
            'notes': self.notes,
        }

    def __repr__(self):
        return f'<DonorAcceptance request={self.request_id} donor={self.donor_id} status={self.status}>'
