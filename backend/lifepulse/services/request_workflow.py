"""
Blood request lifecycle: creation, donor acceptance, donor status updates,
cancellation, admin overrides and lazy expiry.

Every write to a blood_requests row is a conditional UPDATE, either on the
row version or, for acceptance, on accepted_count < units, so two concurrent
callers cannot both succeed against the same state.
"""
import logging
from datetime import datetime
from sqlalchemy import case, update
from sqlalchemy.exc import IntegrityError
from lifepulse import db
from lifepulse.errors import (
    BadInput, CapacityExceeded, ConcurrentUpdate, DonorNotFound, DuplicateAcceptance,
    Forbidden, InvalidTransition, NotFound,
)
from lifepulse.models import (
    BloodRequest, ChatMessage, DonorAcceptance,
    ACCEPTANCE_STATUSES, ACTIVE_STATUSES, REQUEST_STATUSES, TERMINAL_STATUSES,
)
from lifepulse.services.notifications import NotificationResult, recipients_for
from lifepulse.utils.activity_logger import log_activity, log_system_event
from lifepulse.utils.validators import parse_datetime, parse_point, validate_blood_request

logger = logging.getLogger(__name__)

# Forward order for the non-terminal part of the lifecycle
STATUS_RANK = {'PENDING': 0, 'IN_PROGRESS': 1, 'ACCEPTED': 2, 'COMPLETED': 3}


def derive_status(units, acceptance_statuses):
    """Request status after a donor status change.

    COMPLETED once completed entries cover the units, ACCEPTED once
    confirmed or completed entries do, IN_PROGRESS otherwise.
    """
    completed = sum(1 for s in acceptance_statuses if s == 'COMPLETED')
    committed = sum(1 for s in acceptance_statuses if s in ('CONFIRMED', 'COMPLETED'))
    if completed >= units:
        return 'COMPLETED'
    if committed >= units:
        return 'ACCEPTED'
    if acceptance_statuses:
        return 'IN_PROGRESS'
    return 'PENDING'


def expire_overdue_requests(now=None):
    """Bulk PENDING -> EXPIRED for requests whose required_by has passed."""
    now = now or datetime.utcnow()
    result = db.session.execute(
        update(BloodRequest)
        .where(BloodRequest.status == 'PENDING', BloodRequest.required_by < now)
        .values(status='EXPIRED', version=BloodRequest.version + 1, updated_at=now)
        .execution_options(synchronize_session=False)
    )
    db.session.commit()
    if result.rowcount:
        log_system_event('blood_requests_expired', {'count': result.rowcount})
    return result.rowcount


class RequestWorkflow:
    """Operations on blood requests. Collaborators are passed in by the caller."""

    def __init__(self, session, dispatcher, matcher, match_radius=20000, notify_limit=20):
        self.session = session
        self.dispatcher = dispatcher
        self.matcher = matcher
        self.match_radius = match_radius
        self.notify_limit = notify_limit

    # ---------- Loading ----------

    def load(self, request_id) -> BloodRequest:
        blood_request = self.session.get(BloodRequest, request_id)
        if blood_request is None:
            raise NotFound('Request not found')
        self.expire_if_overdue(blood_request)
        return blood_request

    def expire_if_overdue(self, blood_request, now=None):
        now = now or datetime.utcnow()
        if blood_request.status != 'PENDING' or not blood_request.is_expired(now):
            return False

        result = self.session.execute(
            update(BloodRequest)
            .where(BloodRequest.id == blood_request.id,
                   BloodRequest.status == 'PENDING',
                   BloodRequest.required_by < now)
            .values(status='EXPIRED', version=BloodRequest.version + 1, updated_at=now)
            .execution_options(synchronize_session=False)
        )
        self.session.commit()
        self.session.refresh(blood_request)
        if result.rowcount:
            log_system_event('blood_request_expired', {
                'request_id': blood_request.id,
                'requester_id': blood_request.requester_id,
                'blood_group': blood_request.blood_group,
                'required_by': blood_request.required_by.isoformat(),
            })
        return bool(result.rowcount)

    def expire_overdue(self, now=None):
        return expire_overdue_requests(now)

    def _write(self, blood_request, **values):
        """Version-checked UPDATE of one request row."""
        values.setdefault('updated_at', datetime.utcnow())
        result = self.session.execute(
            update(BloodRequest)
            .where(BloodRequest.id == blood_request.id,
                   BloodRequest.version == blood_request.version)
            .values(version=BloodRequest.version + 1, **values)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            self.session.rollback()
            raise ConcurrentUpdate('Request was modified concurrently, please retry')

    # ---------- Creation ----------

    def create_request(self, requester, data):
        """Create a PENDING request and alert nearby donors.

        Returns (request, NotificationResult). Notification problems are
        reported in the result and never undo the request.
        """
        if not requester.is_requester:
            raise Forbidden('Only requesters can create blood requests')

        errors = validate_blood_request(data)
        if errors:
            raise BadInput('Validation failed', details=errors)

        required_by = parse_datetime(data['requiredBy'])
        if required_by <= datetime.utcnow():
            raise BadInput('Validation failed', details=['Required by date must be in the future'])

        lon, lat = parse_point(data['longitude'], data['latitude'])
        blood_request = BloodRequest(
            requester_id=requester.id,
            blood_group=data['bloodGroup'],
            units=int(data['units']),
            hospital_name=data['hospitalName'].strip(),
            hospital_address=data['hospitalAddress'].strip(),
            longitude=lon,
            latitude=lat,
            urgency=data.get('urgency') or 'MEDIUM',
            status='PENDING',
            description=str(data.get('description') or '').strip() or None,
            required_by=required_by,
            is_anonymous=bool(data.get('isAnonymous')),
        )
        self.session.add(blood_request)
        self.session.commit()

        log_activity('blood_request_created', 'blood_request', resource_id=blood_request.id,
                     details={'blood_group': blood_request.blood_group,
                              'units': blood_request.units,
                              'urgency': blood_request.urgency,
                              'hospital_name': blood_request.hospital_name,
                              'location': [lon, lat]},
                     user_id=requester.id)

        return blood_request, self.notify_nearby_donors(blood_request)

    def notify_nearby_donors(self, blood_request) -> NotificationResult:
        try:
            matches = self.matcher.find_nearby_donors(
                blood_request.longitude, blood_request.latitude,
                max_distance=self.match_radius,
                blood_group=blood_request.blood_group,
                limit=self.notify_limit,
            )
            result = self.dispatcher.request_created(
                recipients_for(m.item for m in matches), blood_request)
        except Exception as e:
            logger.error("Failed to notify donors for request %s: %s", blood_request.id, e)
            return NotificationResult(error=str(e))

        log_system_event('notifications_sent', {
            'request_id': blood_request.id,
            'notification_type': 'blood_request_created',
            'recipient_count': result.success_count + result.failure_count,
            'success_count': result.success_count,
            'failure_count': result.failure_count,
            'error': result.error,
        })
        return result

    # ---------- Acceptance ----------

    def accept_donor(self, request_id, donor, notes=''):
        """Add donor to the request's acceptances.

        Returns (request, notification_sent).
        """
        if not donor.is_donor:
            raise Forbidden('Only donors can accept blood requests')

        blood_request = self.load(request_id)
        if blood_request.status in TERMINAL_STATUSES:
            raise InvalidTransition(f'Cannot accept a request with status {blood_request.status}')

        if blood_request.acceptance_for(donor.id) is not None:
            log_system_event('blood_request_donor_already_accepted', {
                'request_id': blood_request.id, 'donor_id': donor.id})
            raise DuplicateAcceptance('You have already accepted this request')

        old_status = blood_request.status
        claimed = self.session.execute(
            update(BloodRequest)
            .where(BloodRequest.id == blood_request.id,
                   BloodRequest.status.in_(ACTIVE_STATUSES),
                   BloodRequest.accepted_count < BloodRequest.units)
            .values(
                status=case(
                    (BloodRequest.accepted_count + 1 >= BloodRequest.units, 'ACCEPTED'),
                    else_='IN_PROGRESS',
                ),
                accepted_count=BloodRequest.accepted_count + 1,
                version=BloodRequest.version + 1,
                updated_at=datetime.utcnow(),
            )
            .execution_options(synchronize_session=False)
        )

        if claimed.rowcount != 1:
            self.session.rollback()
            self.session.refresh(blood_request)
            if blood_request.status in TERMINAL_STATUSES:
                raise InvalidTransition(f'Cannot accept a request with status {blood_request.status}')
            log_system_event('blood_request_no_units_needed', {
                'request_id': blood_request.id,
                'donor_id': donor.id,
                'units': blood_request.units,
                'accepted_count': blood_request.accepted_count,
            })
            raise CapacityExceeded('No more units needed for this request')

        self.session.add(DonorAcceptance(request_id=blood_request.id, donor_id=donor.id,
                                         notes=notes or None))
        try:
            self.session.commit()
        except IntegrityError:
            # Lost a race with the same donor accepting twice
            self.session.rollback()
            raise DuplicateAcceptance('You have already accepted this request')

        self.session.refresh(blood_request)
        log_activity('blood_request_donor_accepted', 'blood_request', resource_id=blood_request.id,
                     details={'requester_id': blood_request.requester_id,
                              'blood_group': blood_request.blood_group,
                              'urgency': blood_request.urgency,
                              'old_status': old_status,
                              'new_status': blood_request.status,
                              'accepted_count': blood_request.accepted_count},
                     user_id=donor.id)

        notification_sent = False
        requester = blood_request.requester
        try:
            notification_sent = self.dispatcher.request_accepted(requester, donor, blood_request)
        except Exception as e:
            logger.error("Failed to notify requester %s: %s", requester.id, e)

        return blood_request, notification_sent

    def update_donor_status(self, request_id, donor_id, status, notes='', actor=None):
        if status not in ACCEPTANCE_STATUSES:
            raise BadInput(f'Status must be one of {", ".join(ACCEPTANCE_STATUSES)}')

        blood_request = self.load(request_id)
        if actor is not None and not (actor.is_admin or actor.id in (blood_request.requester_id, donor_id)):
            raise Forbidden('Only the requester or the donor can update this acceptance')

        acceptance = blood_request.acceptance_for(donor_id)
        if acceptance is None:
            log_system_event('blood_request_donor_not_found', {
                'request_id': blood_request.id, 'donor_id': donor_id})
            raise DonorNotFound('Donor not found in accepted donors')

        if blood_request.status in TERMINAL_STATUSES:
            raise InvalidTransition(f'Cannot update donors of a request with status {blood_request.status}')

        old_donor_status = acceptance.status
        old_request_status = blood_request.status
        statuses = [status if a is acceptance else a.status for a in blood_request.acceptances]
        new_status = derive_status(blood_request.units, statuses)

        self._write(blood_request, status=new_status)
        acceptance.status = status
        if notes:
            acceptance.notes = notes
        self.session.commit()

        log_activity('blood_request_donor_status_updated', 'blood_request', resource_id=blood_request.id,
                     details={'donor_id': donor_id,
                              'old_donor_status': old_donor_status,
                              'new_donor_status': status,
                              'old_request_status': old_request_status,
                              'new_request_status': new_status,
                              'completed_donors': statuses.count('COMPLETED'),
                              'total_units': blood_request.units})
        return blood_request

    # ---------- Cancellation and admin override ----------

    def cancel_request(self, request_id, actor):
        """Cancel a request. Donors who already accepted are left as they are."""
        blood_request = self.load(request_id)
        if not (actor.is_admin or actor.id == blood_request.requester_id):
            raise Forbidden('Only the requester can cancel this request')

        if blood_request.status == 'CANCELLED':
            return blood_request
        if blood_request.status in ('COMPLETED', 'EXPIRED'):
            log_system_event('blood_request_cancel_rejected', {
                'request_id': blood_request.id, 'status': blood_request.status})
            raise InvalidTransition(f'Cannot cancel {blood_request.status.lower()} request')

        old_status = blood_request.status
        self._write(blood_request, status='CANCELLED')
        self.session.commit()

        log_activity('blood_request_cancelled', 'blood_request', resource_id=blood_request.id,
                     details={'old_status': old_status,
                              'accepted_donors_count': blood_request.accepted_count,
                              'blood_group': blood_request.blood_group,
                              'urgency': blood_request.urgency},
                     user_id=actor.id)
        return blood_request

    def set_status(self, request_id, new_status, admin_notes=None):
        """Admin override. Still refuses to move backwards or out of a terminal state."""
        if new_status not in REQUEST_STATUSES:
            raise BadInput(f'Status must be one of {", ".join(REQUEST_STATUSES)}')

        blood_request = self.load(request_id)
        current = blood_request.status

        if new_status != current:
            if current in TERMINAL_STATUSES:
                raise InvalidTransition(f'Cannot change status of a {current} request')
            if new_status == 'EXPIRED' and current != 'PENDING':
                raise InvalidTransition('Only PENDING requests can expire')
            if new_status in STATUS_RANK and STATUS_RANK[new_status] <= STATUS_RANK[current]:
                raise InvalidTransition(f'Cannot move request from {current} to {new_status}')

        values = {'status': new_status}
        if admin_notes:
            values['admin_notes'] = admin_notes
        self._write(blood_request, **values)
        self.session.commit()

        log_activity('blood_request_status_overridden', 'blood_request', resource_id=blood_request.id,
                     details={'old_status': current, 'new_status': new_status})
        return blood_request

    # ---------- Queries ----------

    def requests_for_requester(self, user_id):
        return (self.session.query(BloodRequest)
                .filter(BloodRequest.requester_id == user_id)
                .order_by(BloodRequest.created_at.desc(), BloodRequest.id.desc())
                .all())

    def requests_for_donor(self, user_id):
        return (self.session.query(BloodRequest)
                .join(DonorAcceptance, DonorAcceptance.request_id == BloodRequest.id)
                .filter(DonorAcceptance.donor_id == user_id)
                .order_by(BloodRequest.created_at.desc(), BloodRequest.id.desc())
                .all())

    def active_requests_for(self, requester_id):
        return (self.session.query(BloodRequest)
                .filter(BloodRequest.requester_id == requester_id,
                        BloodRequest.status.in_(ACTIVE_STATUSES))
                .order_by(BloodRequest.id)
                .all())

    # ---------- Chat ----------

    def _check_participant(self, blood_request, user):
        if user.is_admin or user.id == blood_request.requester_id:
            return
        if blood_request.acceptance_for(user.id) is None:
            raise Forbidden('Only the requester and accepted donors can use this chat')

    def post_chat_message(self, request_id, sender, text):
        text = str(text or '').strip()
        if not text:
            raise BadInput('Message is required')

        blood_request = self.load(request_id)
        self._check_participant(blood_request, sender)

        chat_message = ChatMessage(request_id=blood_request.id, sender_id=sender.id, message=text)
        self.session.add(chat_message)
        self.session.commit()

        if sender.id == blood_request.requester_id:
            donors = [a.donor for a in blood_request.acceptances if a.donor is not None]
            recipient = donors[0] if donors else None
        else:
            recipient = blood_request.requester

        if recipient is not None:
            try:
                self.dispatcher.chat_message(recipient, sender.name, text, blood_request.id)
            except Exception as e:
                logger.error("Failed to send chat notification for request %s: %s", blood_request.id, e)

        return chat_message

    def chat_history(self, request_id, user=None):
        blood_request = self.load(request_id)
        if user is not None:
            self._check_participant(blood_request, user)
        return (self.session.query(ChatMessage)
                .filter(ChatMessage.request_id == blood_request.id)
                .order_by(ChatMessage.created_at.asc(), ChatMessage.id.asc())
                .all())
