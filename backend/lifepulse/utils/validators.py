"""
Input validation for registration, locations, blood requests, blood camps and profile updates.
"""
import re
from collections import namedtuple
from datetime import datetime, timezone
from email_validator import validate_email, EmailNotValidError
from flask import request
from lifepulse.errors import BadInput
from lifepulse.models import (
    BLOOD_GROUPS, ROLES, URGENCIES, MIN_UNITS, MAX_UNITS,
)

PHONE_RE = re.compile(r'^\+?[\d\s\-()]+$')

NO_LOCATION_MESSAGE = 'Invalid location coordinates. Please enable location access.'
BODY_NOT_OBJECT_MESSAGE = 'Request body must be a JSON object'

# The contact channel a user registered with, decided once at the boundary
Identifier = namedtuple('Identifier', ['kind', 'value'])


def json_body(required=False) -> dict:
    """The request's JSON object; anything other than an object is BadInput."""
    data = request.get_json(silent=True)
    if data is None or data == {}:
        if required:
            raise BadInput('Request body is required')
        return {}
    if not isinstance(data, dict):
        raise BadInput(BODY_NOT_OBJECT_MESSAGE)
    return data


def _text(data, key):
    # Non-string values count as missing
    value = data.get(key)
    return value.strip() if isinstance(value, str) else ''


def parse_identifier(raw) -> Identifier:
    """Classify a raw identifier as an email address or a phone number."""
    value = str(raw or '').strip()
    if not value:
        raise BadInput('Email or phone is required')
    if '@' in value:
        try:
            result = validate_email(value, check_deliverability=False)
        except EmailNotValidError:
            raise BadInput('Please enter a valid email address')
        return Identifier('email', result.normalized.lower())
    if PHONE_RE.match(value) and sum(c.isdigit() for c in value) >= 7:
        return Identifier('phone', re.sub(r'[\s\-()]', '', value))
    raise BadInput('Please enter a valid email address or phone number')


def parse_float(value, name):
    try:
        return float(value)
    except (TypeError, ValueError):
        raise BadInput(f'Invalid {name}')


def parse_point(longitude, latitude):
    """
    Validate a (longitude, latitude) pair and return it as floats.
    The (0, 0) pair is what clients send when location services are off,
    so it is rejected rather than treated as a real point.
    """
    if longitude in (None, '') or latitude in (None, ''):
        raise BadInput('Longitude and latitude are required')
    lon = parse_float(longitude, 'longitude')
    lat = parse_float(latitude, 'latitude')
    if not -180 <= lon <= 180:
        raise BadInput('Invalid longitude')
    if not -90 <= lat <= 90:
        raise BadInput('Invalid latitude')
    if lon == 0 and lat == 0:
        raise BadInput(NO_LOCATION_MESSAGE)
    return lon, lat


def parse_max_distance(value, default):
    if value in (None, ''):
        return default
    distance = parse_float(value, 'maxDistance')
    if distance <= 0:
        raise BadInput('maxDistance must be a positive number of metres')
    return distance


def parse_blood_group(value, required=False):
    if value in (None, ''):
        if required:
            raise BadInput('Blood group is required')
        return None
    if value not in BLOOD_GROUPS:
        raise BadInput('Please select a valid blood group')
    return value


def parse_datetime(value):
    """Parse an ISO-8601 string into a naive UTC datetime."""
    try:
        parsed = datetime.fromisoformat(str(value).replace('Z', '+00:00'))
    except (TypeError, ValueError):
        return None
    if parsed.tzinfo is not None:
        parsed = parsed.astimezone(timezone.utc).replace(tzinfo=None)
    return parsed


def validate_registration(data: dict) -> list:
    """Validate registration input. Returns list of error strings (empty = valid)."""
    if not isinstance(data, dict):
        return [BODY_NOT_OBJECT_MESSAGE]
    errors = []

    name = _text(data, 'name')
    if len(name) < 2 or len(name) > 50:
        errors.append('Name must be between 2 and 50 characters')

    if not data.get('email') and not data.get('phone'):
        errors.append('Email or phone is required')

    if data.get('role') not in ROLES:
        errors.append('Role must be DONOR or REQUESTER')

    if data.get('bloodGroup') not in BLOOD_GROUPS:
        errors.append('Please select a valid blood group')

    return errors


def validate_blood_request(data: dict) -> list:
    """Validate blood request creation input. Returns list of error strings."""
    if not isinstance(data, dict):
        return [BODY_NOT_OBJECT_MESSAGE]
    errors = []

    if data.get('bloodGroup') not in BLOOD_GROUPS:
        errors.append('Please select a valid blood group')

    units = data.get('units')
    try:
        if isinstance(units, bool) or int(units) != float(units):
            raise ValueError
        if not MIN_UNITS <= int(units) <= MAX_UNITS:
            errors.append(f'Units must be between {MIN_UNITS} and {MAX_UNITS}')
    except (ValueError, TypeError, OverflowError):
        errors.append(f'Units must be between {MIN_UNITS} and {MAX_UNITS}')

    hospital_name = _text(data, 'hospitalName')
    if len(hospital_name) < 2 or len(hospital_name) > 100:
        errors.append('Hospital name is required')

    hospital_address = _text(data, 'hospitalAddress')
    if len(hospital_address) < 2 or len(hospital_address) > 200:
        errors.append('Hospital address is required')

    try:
        parse_point(data.get('longitude'), data.get('latitude'))
    except BadInput as e:
        errors.append(e.message)

    if not data.get('requiredBy') or parse_datetime(data.get('requiredBy')) is None:
        errors.append('Required by date is required')

    urgency = data.get('urgency')
    if urgency is not None and urgency not in URGENCIES:
        errors.append('Invalid urgency')

    description = data.get('description')
    if description is not None and len(str(description)) > 500:
        errors.append('Description cannot exceed 500 characters')

    return errors


def validate_profile_update(data: dict) -> list:
    """Validate profile update input. Returns list of error strings."""
    if not isinstance(data, dict):
        return [BODY_NOT_OBJECT_MESSAGE]
    errors = []

    name = data.get('name')
    if name is not None:
        name = str(name).strip()
        if len(name) < 2 or len(name) > 50:
            errors.append('Name must be between 2 and 50 characters')

    contact = data.get('emergencyContact')
    if contact is not None:
        if not isinstance(contact, dict):
            errors.append('Emergency contact must be an object')
        else:
            contact_name = contact.get('name')
            if contact_name is not None and not 2 <= len(str(contact_name).strip()) <= 50:
                errors.append('Emergency contact name must be between 2 and 50 characters')
            contact_phone = contact.get('phone')
            if contact_phone is not None and not PHONE_RE.match(str(contact_phone).strip()):
                errors.append('Please enter a valid emergency contact phone number')
            relationship = contact.get('relationship')
            if relationship is not None and not 2 <= len(str(relationship).strip()) <= 30:
                errors.append('Relationship must be between 2 and 30 characters')

    return errors


def _length_between(value, low, high):
    return isinstance(value, str) and low <= len(value.strip()) <= high


def validate_blood_camp(data: dict) -> list:
    """Validate blood camp input. Returns list of error strings."""
    if not isinstance(data, dict):
        return [BODY_NOT_OBJECT_MESSAGE]
    errors = []

    if not _length_between(data.get('name'), 3, 100):
        errors.append('Camp name must be between 3 and 100 characters')
    if not _length_between(data.get('description'), 10, 500):
        errors.append('Description must be between 10 and 500 characters')

    location = data.get('location')
    if not isinstance(location, dict):
        errors.append('Location is required')
    else:
        coordinates = location.get('coordinates')
        if not isinstance(coordinates, list) or len(coordinates) != 2:
            errors.append('Location coordinates must be an array of 2 numbers')
        else:
            try:
                parse_point(coordinates[0], coordinates[1])
            except BadInput as e:
                errors.append(e.message)
        if not _length_between(location.get('address'), 5, 200):
            errors.append('Address must be between 5 and 200 characters')
        if not _length_between(location.get('city'), 2, 50):
            errors.append('City must be between 2 and 50 characters')

    if not data.get('date') or parse_datetime(data.get('date')) is None:
        errors.append('Date must be a valid date')
    if not _length_between(data.get('startTime'), 1, 10):
        errors.append('Start time is required')
    if not _length_between(data.get('endTime'), 1, 10):
        errors.append('End time is required')

    organizer = data.get('organizer')
    if not isinstance(organizer, dict):
        errors.append('Organizer is required')
    else:
        if not _length_between(organizer.get('name'), 2, 50):
            errors.append('Organizer name must be between 2 and 50 characters')
        phone = organizer.get('phone')
        if not isinstance(phone, str) or not PHONE_RE.match(phone.strip()):
            errors.append('Please enter a valid phone number')
        email = organizer.get('email')
        if email not in (None, ''):
            try:
                validate_email(str(email), check_deliverability=False)
            except EmailNotValidError:
                errors.append('Please enter a valid email address')

    capacity = data.get('capacity')
    if isinstance(capacity, bool) or not isinstance(capacity, int) or capacity < 1:
        errors.append('Capacity must be at least 1')

    blood_groups = data.get('bloodGroups')
    if not isinstance(blood_groups, list) or not blood_groups:
        errors.append('At least one blood group is required')
    elif any(group not in BLOOD_GROUPS for group in blood_groups):
        errors.append('Invalid blood group')

    requirements = data.get('requirements')
    if requirements is not None and (not isinstance(requirements, list)
                                     or not all(isinstance(r, str) for r in requirements)):
        errors.append('Requirements must be a list of strings')

    notes = data.get('notes')
    if notes is not None and len(str(notes)) > 200:
        errors.append('Notes cannot exceed 200 characters')

    return errors
