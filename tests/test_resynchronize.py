from datetime import timedelta

import pytest

from locker_rental.core.exceptions import (
    CredentialExpiredException,
    InvalidTokenException,
    LockerNotFoundException,
    NotAvailableException,
)
from locker_rental.schemas import Contact, LockerStatus, SessionCredential


def credential_for(locker_id, token, rented_at, expires_at, **contact):
    return SessionCredential(
        locker_id=locker_id,
        session_token=token,
        rented_at=rented_at,
        expires_at=expires_at,
        **contact,
    )


def test_reconstructs_rental_after_registry_loss(engine, make_engine, clock):
    rental = engine.rent("A001", 2, Contact(phone="+4512345678"))
    credential = rental.to_credential()
    engine.lock("A001", rental.session_token)
    clock.advance(minutes=30)

    fresh = make_engine("restarted")
    assert fresh.get("A001").status == LockerStatus.AVAILABLE

    locker = fresh.resynchronize("A001", credential)

    info = locker.rental_info
    assert locker.status == LockerStatus.RENTED
    assert info.session_token == rental.session_token
    assert info.start_time == credential.rented_at
    assert info.end_time == credential.expires_at
    assert info.duration_hours == 2
    assert info.is_locked is True
    assert info.paid_amount == 2 * 20
    assert info.overstay_charge == 0
    assert info.phone == "+4512345678"

    # the reconstructed session is fully usable
    unlocked = fresh.unlock("A001", rental.session_token)
    assert unlocked.rental_info.is_locked is False


def test_expired_credential_is_refused(make_engine, clock):
    fresh = make_engine("expired")
    credential = credential_for(
        "A001", "psp_old", clock.now - timedelta(hours=3), clock.now - timedelta(hours=1)
    )

    with pytest.raises(CredentialExpiredException):
        fresh.resynchronize("A001", credential)

    assert fresh.get("A001").status == LockerStatus.AVAILABLE


def test_credential_expiring_exactly_now_is_expired(make_engine, clock):
    fresh = make_engine("boundary")
    credential = credential_for("A001", "psp_edge", clock.now - timedelta(hours=1), clock.now)

    with pytest.raises(CredentialExpiredException):
        fresh.resynchronize("A001", credential)


def test_same_token_keeps_registry_rental(engine, clock):
    rental = engine.rent("A002", 2)
    before = engine.get("A002")
    clock.advance(minutes=10)

    tampered = credential_for(
        "A002",
        rental.session_token,
        clock.now - timedelta(hours=5),
        clock.now + timedelta(hours=5),
        phone="+4599999999",
        email="renter@example.com",
    )
    locker = engine.resynchronize("A002", tampered)

    info = locker.rental_info
    assert info.start_time == before.rental_info.start_time
    assert info.end_time == before.rental_info.end_time
    assert info.duration_hours == before.rental_info.duration_hours
    assert info.paid_amount == before.rental_info.paid_amount
    # missing contact details are filled in from the credential
    assert info.phone == "+4599999999"
    assert info.email == "renter@example.com"


def test_same_token_does_not_overwrite_contact(engine):
    rental = engine.rent("A002", 2, Contact(phone="+4511111111"))
    credential = rental.to_credential().model_copy(update={"phone": "+4522222222"})

    locker = engine.resynchronize("A002", credential)

    assert locker.rental_info.phone == "+4511111111"


def test_other_token_on_rented_locker_is_rejected(engine, clock):
    engine.rent("A003", 2)
    before = engine.get("A003")
    credential = credential_for(
        "A003", "psp_someoneelse", clock.now, clock.now + timedelta(hours=1)
    )

    with pytest.raises(InvalidTokenException):
        engine.resynchronize("A003", credential)

    assert engine.get("A003") == before


def test_unknown_locker(engine, clock):
    credential = credential_for("Z001", "psp_x", clock.now, clock.now + timedelta(hours=1))

    with pytest.raises(LockerNotFoundException):
        engine.resynchronize("Z001", credential)


def test_credential_for_another_locker_is_rejected(engine, clock):
    credential = credential_for("A004", "psp_x", clock.now, clock.now + timedelta(hours=1))

    with pytest.raises(InvalidTokenException):
        engine.resynchronize("A005", credential)

    assert engine.get("A005").status == LockerStatus.AVAILABLE


def test_out_of_service_locker_is_not_reconstructed(engine, clock):
    credential = credential_for("B025", "psp_x", clock.now, clock.now + timedelta(hours=1))

    with pytest.raises(NotAvailableException):
        engine.resynchronize("B025", credential)

    assert engine.get("B025").status == LockerStatus.OUT_OF_SERVICE


def test_credential_ending_before_it_starts_is_rejected(engine, clock):
    credential = credential_for(
        "A006", "psp_x", clock.now + timedelta(hours=2), clock.now + timedelta(hours=1)
    )

    with pytest.raises(ValueError):
        engine.resynchronize("A006", credential)


@pytest.mark.parametrize(
    "held, expected_hours",
    [
        (timedelta(hours=1, minutes=40), 2),
        (timedelta(hours=1, minutes=29), 1),
        (timedelta(hours=1, minutes=30), 2),
        (timedelta(hours=4), 4),
    ],
)
def test_duration_is_rounded_to_whole_hours(engine, clock, held, expected_hours):
    rented_at = clock.now - timedelta(minutes=10)
    credential = credential_for("C001", "psp_round", rented_at, rented_at + held)

    locker = engine.resynchronize("C001", credential)

    assert locker.rental_info.duration_hours == expected_hours
    assert locker.rental_info.paid_amount == expected_hours * 20


def test_token_active_on_another_locker_is_rejected(engine, clock):
    rental = engine.rent("A001", 2)
    credential = rental.to_credential().model_copy(update={"locker_id": "A002"})

    with pytest.raises(InvalidTokenException):
        engine.resynchronize("A002", credential)

    assert engine.get("A002").status == LockerStatus.AVAILABLE
    assert engine.find_by_token(rental.session_token).id == "A001"


def test_non_ascii_token_on_rented_locker_is_rejected(engine, clock):
    engine.rent("A003", 2)
    credential = credential_for("A003", "psp_ø", clock.now, clock.now + timedelta(hours=1))

    with pytest.raises(InvalidTokenException):
        engine.resynchronize("A003", credential)
