"""End-to-end flows over HTTP (TestClient, SQLite)."""
import pytest

from app.services import verification_token as vt
from conftest import auth_headers, ride_payload


def _register(client, email, role="rider", **extra):
    body = {
        "full_name": "Api User",
        "email": email,
        "password": "password123",
        "confirm_password": "password123",
        "role": role,
    }
    body.update(extra)
    r = client.post("/auth/register", json=body)
    assert r.status_code == 200, r.text
    return r.json()


def _bearer(token_response):
    return {"Authorization": f"Bearer {token_response['access_token']}"}


def test_root_and_health(client):
    assert client.get("/").json()["status"] == "ok"
    assert client.get("/health").json() == {"status": "healthy"}


def test_register_login_me(client):
    driver = _register(client, "d@rora.app", role="driver", display_name="Dee")
    assert driver["user"]["role"] == "driver"

    r = client.post("/auth/register", json={
        "full_name": "Dup", "email": "d@rora.app", "password": "password123", "role": "driver",
    })
    assert r.status_code == 400

    r = client.post("/auth/login", json={"email": "d@rora.app", "password": "wrong-password"})
    assert r.status_code == 401

    r = client.post("/auth/login", json={"email": "d@rora.app", "password": "password123"})
    assert r.status_code == 200
    me = client.get("/auth/me", headers=_bearer(r.json()))
    assert me.json()["email"] == "d@rora.app"

    drivers = client.get("/drivers/", headers=_bearer(r.json())).json()
    assert [d["display_name"] for d in drivers] == ["Dee"]


def test_register_rejects_short_password(client):
    r = client.post("/auth/register", json={"full_name": "X", "email": "x@rora.app", "password": "short"})
    assert r.status_code == 422


def test_ride_requires_identity(client, region):
    assert client.post("/rides/", json=ride_payload()).status_code == 401
    r = client.post("/rides/", json=ride_payload(), headers={"X-Guest-Token": "not-a-token"})
    assert r.status_code == 401


def test_guest_ride_flow_end_to_end(client, region):
    guest_token = client.post("/guest-identities/").json()["token"]
    guest = {"X-Guest-Token": guest_token}
    driver = _bearer(_register(client, "driver@rora.app", role="driver"))

    r = client.post("/rides/", json=ride_payload(25.0, client_reference="local-1"), headers=guest)
    assert r.status_code == 201
    ride_id = r.json()["id"]
    assert r.json()["status"] == "created"

    # Offline replay returns the same session
    r = client.post("/rides/", json=ride_payload(25.0, client_reference="local-1"), headers=guest)
    assert r.status_code == 200
    assert r.json()["id"] == ride_id

    r = client.post(f"/rides/{ride_id}/discovery", json={"wave": 0}, headers=guest)
    assert r.json()["notified_count"] == 1

    inbox = client.get("/notifications/", headers=driver).json()
    assert inbox[0]["type"] == "ride_request"
    assert inbox[0]["ride_session_id"] == ride_id

    r = client.post(f"/rides/{ride_id}/offers", json={"offer_type": "counter", "amount": 20.0}, headers=driver)
    assert r.status_code == 201
    offer = r.json()
    assert offer["price_label"] == "good_deal"

    offers = client.get(f"/rides/{ride_id}/offers?pending_only=true", headers=guest).json()
    assert [o["id"] for o in offers] == [offer["id"]]

    r = client.post(f"/rides/{ride_id}/offers/{offer['id']}/select", headers=guest)
    assert r.status_code == 200
    assert r.json()["new_status"] == "hold"
    assert r.json()["final_amount"] == 20.0

    r = client.post(f"/rides/{ride_id}/verification-token", headers=guest)
    assert r.status_code == 200
    issued = r.json()
    assert issued["manual_code"] == vt.manual_code(ride_id)

    r = client.post("/verification/verify", json={"encoded_token": issued["encoded_token"]}, headers=driver)
    assert r.json()["valid"] is True
    assert r.json()["payload"]["fare_amount"] == 20.0

    r = client.post(f"/rides/{ride_id}/confirm", json={"encoded_token": issued["encoded_token"]}, headers=driver)
    assert r.status_code == 200
    assert r.json() == {"ride_session_id": ride_id, "previous_status": "hold", "new_status": "confirmed"}

    assert client.post(f"/rides/{ride_id}/start", headers=driver).json()["new_status"] == "active"
    assert client.post(f"/rides/{ride_id}/complete", headers=driver).json()["new_status"] == "completed"

    events = client.get(f"/rides/{ride_id}/events", headers=guest).json()
    assert events[-1]["event_type"] == "completed"
    assert client.get(f"/rides/{ride_id}", headers=driver).json()["status"] == "completed"


def test_confirm_with_wrong_code_is_422(client, db, region, make_user, make_driver):
    rider = make_user()
    driver = make_driver()
    ride_id = client.post("/rides/", json=ride_payload(), headers=auth_headers(rider)).json()["id"]
    client.post(f"/rides/{ride_id}/discovery", headers=auth_headers(rider))
    offer_id = client.post(
        f"/rides/{ride_id}/offers", json={"offer_type": "accept"}, headers=auth_headers(driver)
    ).json()["id"]
    client.post(f"/rides/{ride_id}/offers/{offer_id}/select", headers=auth_headers(rider))

    wrong = "000000" if vt.manual_code(ride_id) != "000000" else "111111"
    r = client.post(f"/rides/{ride_id}/confirm", json={"manual_code": wrong}, headers=auth_headers(driver))
    assert r.status_code == 422
    assert r.json()["detail"]["failure_kind"] == "mismatch"

    r = client.post(f"/rides/{ride_id}/confirm", json={"manual_code": "12"}, headers=auth_headers(driver))
    assert r.status_code == 422

    r = client.post(f"/rides/{ride_id}/start", headers=auth_headers(driver))
    assert r.status_code == 409

    outsider = make_driver()
    r = client.post(
        f"/rides/{ride_id}/confirm", json={"manual_code": vt.manual_code(ride_id)}, headers=auth_headers(outsider)
    )
    assert r.status_code == 403


def test_verify_reports_failure_kinds(client, make_driver):
    headers = auth_headers(make_driver())
    r = client.post("/verification/verify", json={"encoded_token": "!!"}, headers=headers)
    assert r.json() == {"valid": False, "payload": None, "failure_kind": "malformed", "manual_code_fallback": False}

    encoded, _ = vt.issue_token(1, "A", "B", 10.0, now=1_000)
    r = client.post("/verification/verify", json={"encoded_token": encoded}, headers=headers)
    assert r.json()["failure_kind"] == "expired"
    assert r.json()["manual_code_fallback"] is True


def test_cancel_and_ownership(client, region, make_user):
    owner = make_user()
    stranger = make_user()
    ride_id = client.post("/rides/", json=ride_payload(), headers=auth_headers(owner)).json()["id"]

    assert client.get(f"/rides/{ride_id}", headers=auth_headers(stranger)).status_code == 403
    assert client.post(f"/rides/{ride_id}/cancel", headers=auth_headers(stranger)).status_code == 403

    r = client.post(f"/rides/{ride_id}/cancel", json={"reason": "found a bus"}, headers=auth_headers(owner))
    assert r.json()["new_status"] == "canceled"
    r = client.post(f"/rides/{ride_id}/cancel", headers=auth_headers(owner))
    assert r.status_code == 409

    rides = client.get("/rides/", headers=auth_headers(owner)).json()
    assert rides[0]["cancel_reason"] == "found a bus"


def test_login_migrates_guest_rides(client, region):
    guest_token = client.post("/guest-identities/").json()["token"]
    ride_id = client.post("/rides/", json=ride_payload(), headers={"X-Guest-Token": guest_token}).json()["id"]
    _register(client, "rider@rora.app")

    r = client.post("/auth/login", json={
        "email": "rider@rora.app", "password": "password123", "guest_token": guest_token,
    })
    body = r.json()
    assert body["migrated_rides"] == 1
    assert body["migration_error"] is None
    assert client.get(f"/rides/{ride_id}", headers=_bearer(body)).status_code == 200

    # The guest token is consumed
    r = client.get(f"/rides/{ride_id}", headers={"X-Guest-Token": guest_token})
    assert r.status_code == 401

    r = client.post("/auth/login", json={
        "email": "rider@rora.app", "password": "password123", "guest_token": guest_token,
    })
    assert r.json()["migrated_rides"] == 0
    assert r.json()["migration_error"] == "Guest token already claimed"


def test_favorites_and_devices(client, make_user, make_driver):
    rider = make_user()
    driver = make_driver(name="Fav")
    make_driver(name="Zed")

    assert client.post(f"/drivers/{driver.id}/favorite", headers=auth_headers(rider)).status_code == 201
    favorites = client.get("/drivers/?favorites_only=true", headers=auth_headers(rider)).json()
    assert [d["user_id"] for d in favorites] == [driver.id]
    assert client.delete(f"/drivers/{driver.id}/favorite", headers=auth_headers(rider)).status_code == 200
    assert client.delete(f"/drivers/{driver.id}/favorite", headers=auth_headers(rider)).status_code == 404

    r = client.post("/drivers/devices", json={"push_token": "ExponentPushToken[abc]", "platform": "ios"},
                    headers=auth_headers(driver))
    assert r.status_code == 201

    r = client.put("/drivers/profile", json={"display_name": "Fav Driver", "is_accepting_requests": False},
                   headers=auth_headers(driver))
    assert r.json()["is_accepting_requests"] is False
    assert client.put("/drivers/profile", json={"display_name": "Nope"}, headers=auth_headers(rider)).status_code == 403


def test_notification_read(client, db, region, make_user, make_driver):
    rider = make_user()
    driver = make_driver()
    ride_id = client.post("/rides/", json=ride_payload(), headers=auth_headers(rider)).json()["id"]
    client.post(f"/rides/{ride_id}/discovery", headers=auth_headers(rider))

    inbox = client.get("/notifications/?unread_only=true", headers=auth_headers(driver)).json()
    assert len(inbox) == 1
    r = client.post(f"/notifications/{inbox[0]['id']}/read", headers=auth_headers(driver))
    assert r.json()["read_at"] is not None
    assert client.get("/notifications/?unread_only=true", headers=auth_headers(driver)).json() == []
    assert client.post(f"/notifications/{inbox[0]['id']}/read", headers=auth_headers(rider)).status_code == 404


def test_authenticate_user_picks_account_by_password_and_role(db, make_user):
    from app.errors import Forbidden
    from app.models.user import UserRole
    from app.services.auth import authenticate_user, ensure_role, get_password_hash, user_id_from_token, create_access_token

    rider = make_user(email="both@rora.app")
    driver = make_user(UserRole.driver, email="both@rora.app")
    rider.hashed_password = get_password_hash("rider-pass")
    driver.hashed_password = get_password_hash("driver-pass")
    db.commit()

    assert authenticate_user(db, "both@rora.app", "driver-pass").id == driver.id
    assert authenticate_user(db, "both@rora.app", "rider-pass", UserRole.rider).id == rider.id
    assert authenticate_user(db, "both@rora.app", "rider-pass", UserRole.driver) is None

    assert user_id_from_token(create_access_token(driver)) == driver.id
    assert user_id_from_token("not-a-jwt") is None
    assert ensure_role(rider, UserRole.rider) is rider
    with pytest.raises(Forbidden):
        ensure_role(rider, UserRole.driver)
