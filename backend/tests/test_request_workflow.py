from datetime import datetime, timedelta

import pytest
from sqlalchemy.orm.attributes import set_committed_value

from lifepulse import db
from lifepulse.errors import (
    BadInput, CapacityExceeded, ConcurrentUpdate, DonorNotFound, DuplicateAcceptance, Forbidden,
    InvalidTransition, NotFound,
)
from lifepulse.models import BloodRequest, DonorAcceptance
from lifepulse.services import get_workflow
from lifepulse.services.request_workflow import derive_status, expire_overdue_requests
from conftest import BASE_LAT, north_of


@pytest.fixture
def workflow(app):
    return get_workflow()


@pytest.fixture
def requester(make_user):
    return make_user(role='REQUESTER')


class TestCreate:

    def test_creates_pending_request(self, workflow, requester, request_payload):
        blood_request, result = workflow.create_request(requester, request_payload())

        assert blood_request.id is not None
        assert blood_request.status == 'PENDING'
        assert blood_request.accepted_count == 0
        assert blood_request.requester_id == requester.id

    def test_notifies_matching_donors_only(self, workflow, requester, request_payload,
                                           make_user, push_backend):
        near = make_user(blood_group='O+', latitude=north_of(BASE_LAT, 5000))
        make_user(blood_group='O+', latitude=north_of(BASE_LAT, 30000))
        make_user(blood_group='A+')
        make_user(blood_group='O+', availability=False)

        _, result = workflow.create_request(requester, request_payload())

        assert push_backend.tokens() == [near.push_token]
        assert result.success_count == 1
        assert result.failure_count == 0
        assert push_backend.sent[0]['data']['type'] == 'blood_request'

    def test_notification_failures_do_not_undo_creation(self, workflow, requester, request_payload,
                                                        make_user, push_backend):
        make_user(push_token='good-1')
        make_user(push_token='good-2')
        make_user(push_token=None)

        blood_request, result = workflow.create_request(requester, request_payload())

        assert db.session.get(BloodRequest, blood_request.id) is not None
        assert result.success_count <= 2
        assert result.failure_count >= 1

    def test_backend_unavailable_still_creates(self, workflow, requester, request_payload,
                                               make_user, push_backend):
        make_user()
        push_backend.unavailable = True

        blood_request, result = workflow.create_request(requester, request_payload())

        assert blood_request.status == 'PENDING'
        assert result.error == 'BackendUnavailable'
        assert result.success_count == 0

    def test_donor_cannot_create(self, workflow, make_user, request_payload):
        with pytest.raises(Forbidden):
            workflow.create_request(make_user(role='DONOR'), request_payload())

    def test_validation_errors_are_listed(self, workflow, requester, request_payload):
        with pytest.raises(BadInput) as exc:
            workflow.create_request(requester, request_payload(units=11, bloodGroup='X'))
        assert 'Units must be between 1 and 10' in exc.value.details
        assert 'Please select a valid blood group' in exc.value.details

    def test_required_by_must_be_in_future(self, workflow, requester, request_payload):
        past = (datetime.utcnow() - timedelta(hours=1)).isoformat()
        with pytest.raises(BadInput):
            workflow.create_request(requester, request_payload(requiredBy=past))

    def test_zero_zero_location_is_rejected(self, workflow, requester, request_payload):
        with pytest.raises(BadInput):
            workflow.create_request(requester, request_payload(longitude=0, latitude=0))


class TestAccept:

    def test_two_donors_fill_request_third_is_rejected(self, workflow, requester, make_request,
                                                       make_user):
        blood_request = make_request(requester, units=2)
        first, second, third = make_user(), make_user(), make_user()

        req, _ = workflow.accept_donor(blood_request.id, first)
        assert req.status == 'IN_PROGRESS'
        assert req.accepted_count == 1

        req, _ = workflow.accept_donor(blood_request.id, second)
        assert req.status == 'ACCEPTED'
        assert req.accepted_count == 2

        with pytest.raises(CapacityExceeded):
            workflow.accept_donor(blood_request.id, third)

        db.session.expire_all()
        stored = db.session.get(BloodRequest, blood_request.id)
        assert stored.accepted_count == 2
        assert DonorAcceptance.query.filter_by(request_id=blood_request.id).count() == 2

    def test_duplicate_acceptance_is_rejected(self, workflow, requester, make_request, make_user):
        blood_request = make_request(requester, units=3)
        donor = make_user()
        workflow.accept_donor(blood_request.id, donor)

        with pytest.raises(DuplicateAcceptance):
            workflow.accept_donor(blood_request.id, donor)

        assert DonorAcceptance.query.filter_by(request_id=blood_request.id).count() == 1

    def test_unique_constraint_backs_duplicate_check(self, requester, make_request, make_user):
        from sqlalchemy.exc import IntegrityError

        blood_request = make_request(requester, units=3)
        donor = make_user()
        db.session.add(DonorAcceptance(request_id=blood_request.id, donor_id=donor.id))
        db.session.commit()

        db.session.add(DonorAcceptance(request_id=blood_request.id, donor_id=donor.id))
        with pytest.raises(IntegrityError):
            db.session.commit()
        db.session.rollback()

    def test_requester_is_notified(self, workflow, requester, make_request, make_user, push_backend):
        blood_request = make_request(requester)
        donor = make_user(name='Asha')

        _, sent = workflow.accept_donor(blood_request.id, donor)

        assert sent is True
        assert push_backend.sent[-1]['token'] == requester.push_token
        assert 'Asha' in push_backend.sent[-1]['body']

    def test_accept_succeeds_without_requester_token(self, workflow, make_user, make_request):
        requester = make_user(role='REQUESTER', push_token=None)
        blood_request = make_request(requester)

        req, sent = workflow.accept_donor(blood_request.id, make_user())

        assert sent is False
        assert req.accepted_count == 1

    @pytest.mark.parametrize('status', ['COMPLETED', 'CANCELLED', 'EXPIRED'])
    def test_terminal_request_cannot_be_accepted(self, workflow, requester, make_request,
                                                 make_user, status):
        blood_request = make_request(requester, status=status)
        with pytest.raises(InvalidTransition):
            workflow.accept_donor(blood_request.id, make_user())

    def test_requester_cannot_accept(self, workflow, requester, make_request):
        blood_request = make_request(requester)
        with pytest.raises(Forbidden):
            workflow.accept_donor(blood_request.id, requester)

    def test_unknown_request(self, workflow, make_user):
        with pytest.raises(NotFound):
            workflow.accept_donor(9999, make_user())


class TestDonorStatus:

    def test_status_derivation(self):
        assert derive_status(2, []) == 'PENDING'
        assert derive_status(2, ['PENDING']) == 'IN_PROGRESS'
        assert derive_status(2, ['CONFIRMED', 'PENDING']) == 'IN_PROGRESS'
        assert derive_status(2, ['CONFIRMED', 'COMPLETED']) == 'ACCEPTED'
        assert derive_status(2, ['COMPLETED', 'COMPLETED']) == 'COMPLETED'
        assert derive_status(1, ['CANCELLED', 'COMPLETED']) == 'COMPLETED'

    def test_completing_all_units_completes_request(self, workflow, requester, make_request,
                                                    make_user):
        blood_request = make_request(requester, units=2)
        first, second = make_user(), make_user()
        workflow.accept_donor(blood_request.id, first)
        workflow.accept_donor(blood_request.id, second)

        req = workflow.update_donor_status(blood_request.id, first.id, 'COMPLETED', actor=requester)
        assert req.status == 'IN_PROGRESS'

        req = workflow.update_donor_status(blood_request.id, second.id, 'CONFIRMED', actor=second)
        assert req.status == 'ACCEPTED'

        req = workflow.update_donor_status(blood_request.id, second.id, 'COMPLETED', actor=second)
        assert req.status == 'COMPLETED'
        assert req.version > 1

    def test_cancelled_acceptance_still_holds_capacity(self, workflow, requester, make_request,
                                                       make_user):
        blood_request = make_request(requester, units=1)
        donor = make_user()
        workflow.accept_donor(blood_request.id, donor)

        req = workflow.update_donor_status(blood_request.id, donor.id, 'CANCELLED', actor=donor)

        # Derived from the acceptance statuses, so the request drops back
        assert req.status == 'IN_PROGRESS'
        assert req.remaining_units == 1
        # The raw accepted_count still counts the cancelled entry
        assert req.accepted_count == 1
        with pytest.raises(CapacityExceeded):
            workflow.accept_donor(blood_request.id, make_user())

    def test_unknown_donor(self, workflow, requester, make_request, make_user):
        blood_request = make_request(requester)
        with pytest.raises(DonorNotFound):
            workflow.update_donor_status(blood_request.id, make_user().id, 'CONFIRMED')

    def test_invalid_status(self, workflow, requester, make_request):
        blood_request = make_request(requester)
        with pytest.raises(BadInput):
            workflow.update_donor_status(blood_request.id, 1, 'DONE')

    def test_other_users_cannot_update(self, workflow, requester, make_request, make_user):
        blood_request = make_request(requester)
        donor = make_user()
        workflow.accept_donor(blood_request.id, donor)

        with pytest.raises(Forbidden):
            workflow.update_donor_status(blood_request.id, donor.id, 'CONFIRMED', actor=make_user())

    def test_terminal_request_is_frozen(self, workflow, requester, make_request, make_user):
        blood_request = make_request(requester)
        donor = make_user()
        workflow.accept_donor(blood_request.id, donor)
        workflow.cancel_request(blood_request.id, requester)

        with pytest.raises(InvalidTransition):
            workflow.update_donor_status(blood_request.id, donor.id, 'COMPLETED', actor=donor)


def _rewind(blood_request, **values):
    """Put back values read before another caller's write, as a second worker would hold them."""
    for key, value in values.items():
        set_committed_value(blood_request, key, value)


class TestConcurrentWrites:

    def test_accept_on_stale_read_cannot_exceed_capacity(self, workflow, requester, make_request,
                                                         make_user):
        blood_request = make_request(requester, units=1)
        first, second = make_user(), make_user()
        loaded = workflow.load(blood_request.id)
        seen = {'accepted_count': loaded.accepted_count, 'status': loaded.status,
                'version': loaded.version}

        workflow.accept_donor(blood_request.id, first)
        _rewind(blood_request, **seen)
        assert blood_request.accepted_count == 0

        with pytest.raises(CapacityExceeded):
            workflow.accept_donor(blood_request.id, second)

        db.session.expire_all()
        stored = db.session.get(BloodRequest, blood_request.id)
        assert stored.accepted_count == 1
        assert stored.accepted_count <= stored.units
        assert stored.status == 'ACCEPTED'
        acceptances = DonorAcceptance.query.filter_by(request_id=blood_request.id).all()
        assert [a.donor_id for a in acceptances] == [first.id]

    def test_donor_status_on_stale_version_is_refused(self, workflow, requester, make_request,
                                                      make_user):
        blood_request = make_request(requester, units=2)
        first, second = make_user(), make_user()
        workflow.accept_donor(blood_request.id, first)
        seen = {'accepted_count': blood_request.accepted_count, 'status': blood_request.status,
                'version': blood_request.version}

        workflow.accept_donor(blood_request.id, second)
        current_version = blood_request.version
        _rewind(blood_request, **seen)

        with pytest.raises(ConcurrentUpdate):
            workflow.update_donor_status(blood_request.id, first.id, 'CONFIRMED', actor=first)

        db.session.expire_all()
        stored = db.session.get(BloodRequest, blood_request.id)
        assert stored.version == current_version
        assert stored.accepted_count == 2
        assert stored.acceptance_for(first.id).status == 'PENDING'

        # A retry reads the current row and goes through
        req = workflow.update_donor_status(blood_request.id, first.id, 'CONFIRMED', actor=first)
        assert req.acceptance_for(first.id).status == 'CONFIRMED'
        assert req.version == current_version + 1


class TestCancel:

    def test_cancel_in_progress_request(self, workflow, requester, make_request, make_user):
        blood_request = make_request(requester, units=2)
        donor = make_user()
        workflow.accept_donor(blood_request.id, donor)

        req = workflow.cancel_request(blood_request.id, requester)

        assert req.status == 'CANCELLED'
        # Accepted donors are left untouched
        assert req.acceptance_for(donor.id).status == 'PENDING'

    def test_cancel_completed_request_fails(self, workflow, requester, make_request):
        blood_request = make_request(requester, status='COMPLETED')
        with pytest.raises(InvalidTransition):
            workflow.cancel_request(blood_request.id, requester)

    def test_cancel_is_idempotent(self, workflow, requester, make_request):
        blood_request = make_request(requester)
        workflow.cancel_request(blood_request.id, requester)

        assert workflow.cancel_request(blood_request.id, requester).status == 'CANCELLED'

    def test_only_requester_or_admin_can_cancel(self, workflow, requester, make_request, make_user):
        blood_request = make_request(requester)
        with pytest.raises(Forbidden):
            workflow.cancel_request(blood_request.id, make_user(role='REQUESTER'))

        admin = make_user(role='REQUESTER', is_admin=True)
        assert workflow.cancel_request(blood_request.id, admin).status == 'CANCELLED'


class TestExpiry:

    def test_overdue_pending_request_expires_on_load(self, workflow, requester, make_request):
        blood_request = make_request(requester, required_by=datetime.utcnow() - timedelta(minutes=5))

        assert workflow.load(blood_request.id).status == 'EXPIRED'

    def test_overdue_in_progress_request_does_not_expire(self, workflow, requester, make_request):
        blood_request = make_request(requester, status='IN_PROGRESS',
                                     required_by=datetime.utcnow() - timedelta(minutes=5))

        assert workflow.load(blood_request.id).status == 'IN_PROGRESS'

    def test_bulk_expiry(self, requester, make_request):
        overdue = make_request(requester, required_by=datetime.utcnow() - timedelta(hours=1))
        current = make_request(requester)

        assert expire_overdue_requests() == 1

        db.session.expire_all()
        assert db.session.get(BloodRequest, overdue.id).status == 'EXPIRED'
        assert db.session.get(BloodRequest, current.id).status == 'PENDING'

    def test_workflow_sweep(self, workflow, requester, make_request):
        make_request(requester, required_by=datetime.utcnow() - timedelta(hours=1))
        make_request(requester)

        assert workflow.expire_overdue() == 1
        assert len(workflow.active_requests_for(requester.id)) == 1

    def test_cancelling_expired_request_fails(self, workflow, requester, make_request):
        blood_request = make_request(requester, required_by=datetime.utcnow() - timedelta(hours=1))
        with pytest.raises(InvalidTransition):
            workflow.cancel_request(blood_request.id, requester)


class TestAdminOverride:

    def test_forward_transition(self, workflow, requester, make_request):
        blood_request = make_request(requester)

        req = workflow.set_status(blood_request.id, 'ACCEPTED', admin_notes='confirmed by phone')

        assert req.status == 'ACCEPTED'
        assert req.admin_notes == 'confirmed by phone'

    def test_backward_transition_is_rejected(self, workflow, requester, make_request):
        blood_request = make_request(requester, status='ACCEPTED')
        with pytest.raises(InvalidTransition):
            workflow.set_status(blood_request.id, 'PENDING')

    def test_terminal_state_is_final(self, workflow, requester, make_request):
        blood_request = make_request(requester, status='CANCELLED')
        with pytest.raises(InvalidTransition):
            workflow.set_status(blood_request.id, 'IN_PROGRESS')

    def test_only_pending_can_expire(self, workflow, requester, make_request):
        blood_request = make_request(requester, status='IN_PROGRESS')
        with pytest.raises(InvalidTransition):
            workflow.set_status(blood_request.id, 'EXPIRED')

    def test_unknown_status(self, workflow, requester, make_request):
        blood_request = make_request(requester)
        with pytest.raises(BadInput):
            workflow.set_status(blood_request.id, 'DONE')


class TestChat:

    def test_participants_can_chat(self, workflow, requester, make_request, make_user, push_backend):
        blood_request = make_request(requester)
        donor = make_user()
        workflow.accept_donor(blood_request.id, donor)

        workflow.post_chat_message(blood_request.id, donor, 'On my way')
        workflow.post_chat_message(blood_request.id, requester, 'Thank you')

        history = workflow.chat_history(blood_request.id, requester)
        assert [m.message for m in history] == ['On my way', 'Thank you']
        assert push_backend.sent[-1]['token'] == donor.push_token

    def test_outsiders_cannot_chat(self, workflow, requester, make_request, make_user):
        blood_request = make_request(requester)
        with pytest.raises(Forbidden):
            workflow.post_chat_message(blood_request.id, make_user(), 'hello')

    def test_empty_message_is_rejected(self, workflow, requester, make_request):
        blood_request = make_request(requester)
        with pytest.raises(BadInput):
            workflow.post_chat_message(blood_request.id, requester, '   ')
