import math
from datetime import datetime, timedelta

import pytest

from lifepulse import create_app, db
from lifepulse.errors import BackendUnavailable
from lifepulse.models import User, BloodRequest
from lifepulse.services.notifications import PushBackend
from lifepulse.utils.auth import generate_token
from lifepulse.utils.geo import EARTH_RADIUS_M

BASE_LON = 77.59
BASE_LAT = 12.97


class FakePushBackend(PushBackend):
    """Records sent messages; can be told to fail per token or entirely."""

    def __init__(self):
        self.sent = []
        self.failing_tokens = set()
        self.unavailable = False

    def send(self, token, title, body, data):
        if self.unavailable:
            raise BackendUnavailable('Firebase not configured')
        if token in self.failing_tokens:
            raise RuntimeError('invalid registration token')
        self.sent.append({'token': token, 'title': title, 'body': body, 'data': data})
        return f'msg-{len(self.sent)}'

    def tokens(self):
        return [m['token'] for m in self.sent]


def north_of(lat, metres):
    """Latitude lying the given distance due north of lat."""
    return lat + math.degrees(metres / EARTH_RADIUS_M)


@pytest.fixture
def push_backend():
    return FakePushBackend()


@pytest.fixture
def app(tmp_path, push_backend):
    app = create_app({
        'TESTING': True,
        'SECRET_KEY': 'test-secret',
        'JWT_SECRET_KEY': 'test-jwt-secret',
        'SQLALCHEMY_DATABASE_URI': 'sqlite://',
        'RATELIMIT_ENABLED': False,
        'ACTIVITY_LOG_FILE': str(tmp_path / 'activity.log'),
    }, push_backend=push_backend)

    with app.app_context():
        db.create_all()
        yield app
        db.session.remove()
        db.drop_all()


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def make_user(app):
    counter = {'n': 0}

    def _make_user(role='DONOR', blood_group='O+', longitude=BASE_LON, latitude=BASE_LAT,
                   availability=None, push_token='auto', **fields):
        counter['n'] += 1
        n = counter['n']
        if availability is None:
            availability = role == 'DONOR'
        if push_token == 'auto':
            push_token = f'token-{n}'
        user = User(
            name=fields.pop('name', f'{role.title()} {n}'),
            phone=fields.pop('phone', f'+9198000{n:05d}'),
            role=role,
            blood_group=blood_group,
            availability=availability,
            push_token=push_token,
            longitude=longitude,
            latitude=latitude,
            **fields,
        )
        db.session.add(user)
        db.session.commit()
        return user

    return _make_user


@pytest.fixture
def make_request(app):
    def _make_request(requester, units=2, blood_group='O+', status='PENDING',
                      longitude=BASE_LON, latitude=BASE_LAT, required_by=None, **fields):
        blood_request = BloodRequest(
            requester_id=requester.id,
            blood_group=blood_group,
            units=units,
            hospital_name=fields.pop('hospital_name', 'City Hospital'),
            hospital_address=fields.pop('hospital_address', '1 MG Road'),
            longitude=longitude,
            latitude=latitude,
            urgency=fields.pop('urgency', 'HIGH'),
            status=status,
            required_by=required_by or datetime.utcnow() + timedelta(days=2),
            **fields,
        )
        db.session.add(blood_request)
        db.session.commit()
        return blood_request

    return _make_request


@pytest.fixture
def auth_header(app):
    def _auth_header(user):
        return {'Authorization': f'Bearer {generate_token(user.id, user.role)}'}
    return _auth_header


@pytest.fixture
def request_payload():
    def _payload(**overrides):
        data = {
            'bloodGroup': 'O+',
            'units': 2,
            'hospitalName': 'City Hospital',
            'hospitalAddress': '1 MG Road, Bengaluru',
            'longitude': BASE_LON,
            'latitude': BASE_LAT,
            'urgency': 'HIGH',
            'requiredBy': (datetime.utcnow() + timedelta(days=1)).isoformat(),
        }
        data.update(overrides)
        return data
    return _payload
