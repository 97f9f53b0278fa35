"""
Proximity matching of donors, requesters, open blood requests and blood camps.
"""
import logging
from collections import namedtuple
from datetime import datetime
from lifepulse.errors import BadInput
from lifepulse.models import User, BloodRequest, BloodCamp, ACTIVE_STATUSES, OPEN_CAMP_STATUSES
from lifepulse.utils.geo import bounding_box, haversine_m
from lifepulse.utils.validators import parse_point, parse_blood_group

logger = logging.getLogger(__name__)

DEFAULT_MAX_DISTANCE = 20000

Match = namedtuple('Match', ['item', 'distance_m'])


class ProximityMatcher:
    """
    Radius queries over users and blood requests.

    A bounding box on the indexed latitude/longitude columns narrows the rows
    in SQL; the exact great-circle distance is then checked in Python and the
    result sorted nearest first. Read only.
    """

    def __init__(self, session):
        self.session = session

    @staticmethod
    def validate_point(longitude, latitude):
        return parse_point(longitude, latitude)

    def _within(self, query, model, lon, lat, max_distance):
        min_lon, min_lat, max_lon, max_lat = bounding_box(lon, lat, max_distance)
        query = query.filter(
            model.latitude.isnot(None),
            model.longitude.isnot(None),
            model.latitude.between(min_lat, max_lat),
        )
        if min_lon is not None:
            query = query.filter(model.longitude.between(min_lon, max_lon))

        matches = []
        for item in query.all():
            distance = haversine_m(lon, lat, item.longitude, item.latitude)
            if distance <= max_distance:
                matches.append(Match(item, distance))
        matches.sort(key=lambda m: (m.distance_m, m.item.id))
        return matches

    def _prepare(self, longitude, latitude, max_distance, blood_group=None):
        lon, lat = self.validate_point(longitude, latitude)
        if max_distance is None:
            max_distance = DEFAULT_MAX_DISTANCE
        if max_distance <= 0:
            raise BadInput('maxDistance must be a positive number of metres')
        return lon, lat, float(max_distance), parse_blood_group(blood_group)

    def find_nearby_donors(self, longitude, latitude, max_distance=DEFAULT_MAX_DISTANCE,
                           blood_group=None, limit=None):
        """Available donors within max_distance metres, nearest first."""
        lon, lat, max_distance, blood_group = self._prepare(longitude, latitude, max_distance, blood_group)
        query = self.session.query(User).filter(
            User.role == 'DONOR',
            User.availability.is_(True),
            User.is_active.is_(True),
        )
        if blood_group:
            query = query.filter(User.blood_group == blood_group)

        matches = self._within(query, User, lon, lat, max_distance)
        logger.debug("Found %d donors within %.0fm of (%s, %s)", len(matches), max_distance, lon, lat)
        return matches[:limit] if limit else matches

    def find_nearby_requesters(self, longitude, latitude, max_distance=DEFAULT_MAX_DISTANCE):
        lon, lat, max_distance, _ = self._prepare(longitude, latitude, max_distance)
        query = self.session.query(User).filter(User.role == 'REQUESTER', User.is_active.is_(True))
        return self._within(query, User, lon, lat, max_distance)

    def find_nearby_requests(self, longitude, latitude, max_distance=DEFAULT_MAX_DISTANCE,
                             blood_group=None):
        """Open requests (PENDING, ACCEPTED, IN_PROGRESS) within max_distance metres."""
        lon, lat, max_distance, blood_group = self._prepare(longitude, latitude, max_distance, blood_group)
        query = self.session.query(BloodRequest).filter(BloodRequest.status.in_(ACTIVE_STATUSES))
        if blood_group:
            query = query.filter(BloodRequest.blood_group == blood_group)
        return self._within(query, BloodRequest, lon, lat, max_distance)

    def find_nearby_camps(self, longitude, latitude, max_distance=DEFAULT_MAX_DISTANCE, now=None):
        """Open camps from today onwards within max_distance metres, soonest first."""
        lon, lat, max_distance, _ = self._prepare(longitude, latitude, max_distance)
        query = open_camps_query(self.session.query(BloodCamp), now)
        matches = self._within(query, BloodCamp, lon, lat, max_distance)
        matches.sort(key=lambda m: (m.item.date, m.distance_m, m.item.id))
        return matches


def open_camps_query(query, now=None):
    """Restrict a BloodCamp query to active camps that are upcoming or running today."""
    today = (now or datetime.utcnow()).replace(hour=0, minute=0, second=0, microsecond=0)
    return query.filter(
        BloodCamp.is_active.is_(True),
        BloodCamp.status.in_(OPEN_CAMP_STATUSES),
        BloodCamp.date >= today,
    )
