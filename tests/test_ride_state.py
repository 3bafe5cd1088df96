import pytest

from app.errors import Forbidden, NotFound, StateConflict, ValidationFailed, VerificationFailed
from app.models.ride_event import RideEvent
from app.models.ride_offer import OfferType, OfferStatus
from app.models.ride_session import RideSession, RideStatus, RequestMode
from app.schemas.ride import RideSessionCreate
from app.services import verification_token as vt
from app.services.discovery import start_discovery, submit_offer, select_offer
from app.services.ride_events import list_events
from app.services.ride_state import ALLOWED_TRANSITIONS, TERMINAL_STATUSES, can_transition, current_status
from app.services.rides import (
    RiderIdentity,
    create_ride_session,
    cancel_ride,
    issue_verification,
    confirm_ride,
    start_ride,
    complete_ride,
    expire_ride,
    get_ride_for_rider,
)
from conftest import ride_payload


def _to_hold(db, ride, driver, identity):
    start_discovery(db, ride, actor_user_id=identity.user_id)
    offer = submit_offer(db, ride.id, driver, OfferType.accept)
    select_offer(db, ride, offer.id, actor_user_id=identity.user_id)
    db.refresh(ride)
    return offer


def test_transition_table():
    assert can_transition(RideStatus.created, RideStatus.discovery)
    assert can_transition(RideStatus.hold, RideStatus.canceled)
    assert can_transition(RideStatus.active, RideStatus.expired)
    assert not can_transition(RideStatus.created, RideStatus.hold)
    assert not can_transition(RideStatus.confirmed, RideStatus.canceled)
    assert not can_transition(RideStatus.hold, RideStatus.completed)
    for status in TERMINAL_STATUSES:
        assert ALLOWED_TRANSITIONS[status] == frozenset()


def test_create_records_event_and_owner(db, make_user, make_ride):
    rider = make_user()
    ride = make_ride(RiderIdentity(user=rider))
    assert ride.status == RideStatus.created
    assert ride.rider_user_id == rider.id and ride.guest_identity_id is None
    events = list_events(db, ride.id)
    assert [e.event_type for e in events] == ["created"]


def test_create_is_idempotent_per_client_reference(db, make_user, region):
    identity = RiderIdentity(user=make_user())
    data = RideSessionCreate(**ride_payload(client_reference="offline-1"))
    first, created = create_ride_session(db, data, identity)
    second, created_again = create_ride_session(db, data, identity)
    assert created and not created_again
    assert first.id == second.id
    assert db.query(RideSession).count() == 1

    # Another rider may reuse the same local id
    other, other_created = create_ride_session(db, data, RiderIdentity(user=make_user()))
    assert other_created and other.id != first.id


def test_direct_request_to_unknown_or_closed_driver(db, make_user, make_driver, region):
    identity = RiderIdentity(user=make_user())
    with pytest.raises(NotFound):
        create_ride_session(db, RideSessionCreate(**ride_payload(request_mode="direct", target_driver_id=999)), identity)
    closed = make_driver(direct=False)
    with pytest.raises(ValidationFailed):
        create_ride_session(
            db, RideSessionCreate(**ride_payload(request_mode="direct", target_driver_id=closed.id)), identity
        )


def test_only_owner_can_load(db, make_user, make_ride, guest):
    ride = make_ride(RiderIdentity(guest=guest))
    assert get_ride_for_rider(db, ride.id, RiderIdentity(guest=guest)).id == ride.id
    with pytest.raises(Forbidden):
        get_ride_for_rider(db, ride.id, RiderIdentity(user=make_user()))
    with pytest.raises(NotFound):
        get_ride_for_rider(db, 424242, RiderIdentity(guest=guest))


def test_cancel_from_created(db, make_user, make_ride):
    identity = RiderIdentity(user=make_user())
    ride = make_ride(identity)
    previous, new = cancel_ride(db, ride, identity, reason="changed my mind")
    assert (previous, new) == (RideStatus.created, RideStatus.canceled)
    assert ride.canceled_at is not None
    assert ride.cancel_reason == "changed my mind"
    with pytest.raises(StateConflict):
        cancel_ride(db, ride, identity)


def test_cancel_in_hold_rejects_offers_and_notifies_driver(db, make_user, make_driver, make_ride):
    from app.models.notification import Notification

    identity = RiderIdentity(user=make_user())
    driver = make_driver()
    ride = make_ride(identity)
    offer = _to_hold(db, ride, driver, identity)
    cancel_ride(db, ride, identity)
    assert current_status(db, ride.id) == RideStatus.canceled
    canceled_notices = db.query(Notification).filter(
        Notification.user_id == driver.id, Notification.type == "ride_canceled"
    ).count()
    assert canceled_notices == 1
    db.refresh(offer)
    assert offer.status == OfferStatus.accepted


def test_full_lifecycle_with_qr_token(db, make_user, make_driver, make_ride):
    identity = RiderIdentity(user=make_user())
    driver = make_driver()
    ride = make_ride(identity)
    _to_hold(db, ride, driver, identity)

    encoded, code, payload = issue_verification(db, ride, identity)
    assert ride.verification_token_jti == payload["jti"]
    assert code == vt.manual_code(ride.id)

    assert confirm_ride(db, ride, driver, encoded_token=encoded) == (RideStatus.hold, RideStatus.confirmed)
    with pytest.raises(StateConflict):
        cancel_ride(db, ride, identity)
    assert start_ride(db, ride, driver) == (RideStatus.confirmed, RideStatus.active)
    assert complete_ride(db, ride, driver) == (RideStatus.active, RideStatus.completed)
    assert ride.completed_at is not None

    types = [e.event_type for e in list_events(db, ride.id)]
    assert types == [
        "created",
        "discovery_started",
        "offer_submitted",
        "offer_selected",
        "verification_token_issued",
        "confirmed",
        "started",
        "completed",
    ]
    confirmed = db.query(RideEvent).filter(RideEvent.event_type == "confirmed").one()
    assert confirmed.event_data["from_status"] == "hold"
    assert confirmed.event_data["method"] == "qr"


def test_confirm_with_manual_code(db, make_user, make_driver, make_ride):
    identity = RiderIdentity(user=make_user())
    driver = make_driver()
    ride = make_ride(identity)
    _to_hold(db, ride, driver, identity)
    assert confirm_ride(db, ride, driver, manual_code=vt.manual_code(ride.id))[1] == RideStatus.confirmed


def test_confirm_failures_are_logged_and_leave_status(db, make_user, make_driver, make_ride):
    identity = RiderIdentity(user=make_user())
    driver = make_driver()
    ride = make_ride(identity)
    _to_hold(db, ride, driver, identity)

    with pytest.raises(VerificationFailed) as exc:
        confirm_ride(db, ride, driver, encoded_token="garbage")
    assert exc.value.failure_kind == vt.FAILURE_MALFORMED

    old, _, _ = issue_verification(db, ride, identity)
    issue_verification(db, ride, identity)
    with pytest.raises(VerificationFailed) as exc:
        confirm_ride(db, ride, driver, encoded_token=old)
    assert exc.value.failure_kind == "superseded"

    wrong = "000000" if vt.manual_code(ride.id) != "000000" else "111111"
    with pytest.raises(VerificationFailed) as exc:
        confirm_ride(db, ride, driver, manual_code=wrong)
    assert exc.value.failure_kind == "mismatch"

    assert current_status(db, ride.id) == RideStatus.hold
    failures = db.query(RideEvent).filter(RideEvent.event_type == "verification_failed").count()
    assert failures == 3


def test_token_for_another_ride_is_rejected(db, make_user, make_driver, make_ride):
    identity = RiderIdentity(user=make_user())
    driver = make_driver()
    ride = make_ride(identity)
    other = make_ride(identity)
    _to_hold(db, ride, driver, identity)
    encoded, _, _ = issue_verification(db, other, identity)
    with pytest.raises(VerificationFailed) as exc:
        confirm_ride(db, ride, driver, encoded_token=encoded)
    assert exc.value.failure_kind == "mismatch"


def test_complete_requires_active(db, make_user, make_driver, make_ride):
    identity = RiderIdentity(user=make_user())
    driver = make_driver()
    ride = make_ride(identity)
    _to_hold(db, ride, driver, identity)
    with pytest.raises(StateConflict) as exc:
        complete_ride(db, ride, driver)
    assert exc.value.current_status == "hold"


def test_verification_token_not_issuable_after_confirmation(db, make_user, make_driver, make_ride):
    identity = RiderIdentity(user=make_user())
    driver = make_driver()
    ride = make_ride(identity)
    _to_hold(db, ride, driver, identity)
    confirm_ride(db, ride, driver, manual_code=vt.manual_code(ride.id))
    with pytest.raises(StateConflict):
        issue_verification(db, ride, identity)


def test_expire_from_any_non_terminal(db, make_user, make_ride):
    identity = RiderIdentity(user=make_user())
    ride = make_ride(identity)
    assert expire_ride(db, ride) == RideStatus.created
    assert current_status(db, ride.id) == RideStatus.expired
    with pytest.raises(StateConflict):
        expire_ride(db, ride)


def test_stale_writer_loses(db, make_user, make_ride):
    """A second session acting on a stale view gets a conflict and changes nothing."""
    from app.database import SessionLocal

    identity = RiderIdentity(user=make_user())
    ride = make_ride(identity)
    other = SessionLocal()
    try:
        stale = other.query(RideSession).filter(RideSession.id == ride.id).one()
        cancel_ride(db, ride, identity)
        with pytest.raises(StateConflict):
            start_discovery(other, stale)
    finally:
        other.close()
    assert current_status(db, ride.id) == RideStatus.canceled


def test_events_are_append_only(db, make_user, make_ride):
    ride = make_ride(RiderIdentity(user=make_user()))
    event = list_events(db, ride.id)[0]
    event.event_type = "rewritten"
    with pytest.raises(ValueError):
        db.flush()
    db.rollback()


def test_request_mode_validation():
    with pytest.raises(ValueError):
        RideSessionCreate(**ride_payload(request_mode="direct"))
    with pytest.raises(ValueError):
        RideSessionCreate(**ride_payload(target_driver_id=3))
    assert RideSessionCreate(**ride_payload()).request_mode == RequestMode.broadcast


def test_cancel_from_discovery_rejects_pending_offers(db, make_user, make_driver, make_ride):
    identity = RiderIdentity(user=make_user())
    ride = make_ride(identity)
    start_discovery(db, ride, actor_user_id=identity.user_id)
    offers = [submit_offer(db, ride.id, make_driver(), OfferType.accept) for _ in range(2)]

    assert cancel_ride(db, ride, identity) == (RideStatus.discovery, RideStatus.canceled)
    for offer in offers:
        db.refresh(offer)
        assert offer.status == OfferStatus.rejected
        assert offer.responded_at is not None


@pytest.mark.parametrize("finish", [False, True])
def test_cancel_after_pickup_is_rejected(db, make_user, make_driver, make_ride, finish):
    identity = RiderIdentity(user=make_user())
    driver = make_driver()
    ride = make_ride(identity)
    _to_hold(db, ride, driver, identity)
    confirm_ride(db, ride, driver, manual_code=vt.manual_code(ride.id))
    start_ride(db, ride, driver)
    if finish:
        complete_ride(db, ride, driver)
    expected = RideStatus.completed if finish else RideStatus.active

    with pytest.raises(StateConflict) as exc:
        cancel_ride(db, ride, identity)
    assert exc.value.current_status == expected.value
    assert current_status(db, ride.id) == expected
    assert db.query(RideEvent).filter(RideEvent.event_type == "canceled").count() == 0


def test_confirm_outside_hold_records_no_failure(db, make_user, make_driver, make_ride):
    identity = RiderIdentity(user=make_user())
    driver = make_driver()
    ride = make_ride(identity)
    _to_hold(db, ride, driver, identity)
    cancel_ride(db, ride, identity)

    with pytest.raises(StateConflict) as exc:
        confirm_ride(db, ride, driver, encoded_token="garbage")
    assert exc.value.current_status == "canceled"
    assert db.query(RideEvent).filter(RideEvent.event_type == "verification_failed").count() == 0


def test_guest_actions_are_recorded_as_rider(db, make_driver, make_ride, guest):
    identity = RiderIdentity(guest=guest)
    ride = make_ride(identity)
    _to_hold(db, ride, make_driver(), identity)
    issue_verification(db, ride, identity)
    cancel_ride(db, ride, identity)

    events = list_events(db, ride.id)
    rider_events = [e for e in events if e.event_type != "offer_submitted"]
    assert [e.event_type for e in rider_events] == [
        "created",
        "discovery_started",
        "offer_selected",
        "verification_token_issued",
        "canceled",
    ]
    for event in rider_events:
        assert event.actor_type == "rider"
        assert event.actor_user_id is None
