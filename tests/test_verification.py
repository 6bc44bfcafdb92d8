from datetime import datetime, timedelta, timezone

import pytest
from twilio.base.exceptions import TwilioException

from pipapal.services import verification
from pipapal.services.verification import CodeStore, format_phone_number, mask_email


class Clock:
    def __init__(self):
        self.now = datetime(2030, 1, 1, tzinfo=timezone.utc)

    def __call__(self):
        return self.now


@pytest.fixture
def sms(monkeypatch):
    outbox = []
    monkeypatch.setattr(verification, "send_sms", lambda to, body: outbox.append((to, body)))
    return outbox


def test_format_phone_number():
    assert format_phone_number("0712 345 678") == "+254712345678"
    assert format_phone_number("+254-712-345-678") == "+254712345678"
    assert format_phone_number("254712345678") == "+254712345678"


def test_mask_email():
    assert mask_email("example@domain.com") == "e*****e@d****n.com"
    assert mask_email("ab@x.io") == "ab@x.io"


def test_code_store_expires_after_ttl():
    clock = Clock()
    store = CodeStore(timedelta(minutes=10), clock=clock)
    code = store.issue("+254712345678")

    clock.now += timedelta(minutes=10, seconds=1)

    assert not store.verify("+254712345678", code)
    assert "+254712345678" not in store


def test_code_store_consumes_correct_code():
    clock = Clock()
    store = CodeStore(timedelta(minutes=10), clock=clock)
    code = store.issue("k")
    clock.now += timedelta(minutes=9)

    assert not store.verify("k", "000000" if code != "000000" else "111111")
    assert store.verify("k", code)
    assert not store.verify("k", code)


def test_codes_are_six_digits():
    for _ in range(20):
        code = verification.generate_code()
        assert len(code) == 6 and code.isdigit()


def test_phone_verification_flow(client, make_user, sms):
    _, headers = make_user("household")

    sent = client.post("/api/verification/phone/send", json={"phone": "0712345678"}, headers=headers)
    assert sent.status_code == 200
    assert sent.json() == {"success": True, "message": "OTP sent successfully"}

    to, body = sms[0]
    assert to == "+254712345678"
    code = body.split(": ")[1][:6]

    wrong = client.post(
        "/api/verification/phone/verify", json={"phone": "0712345678", "code": "12345x"}, headers=headers
    )
    assert wrong.status_code == 400

    ok = client.post("/api/verification/phone/verify", json={"phone": "0712345678", "code": code}, headers=headers)
    assert ok.status_code == 200

    user = client.get("/api/user", headers=headers).json()
    assert user["phone"] == "+254712345678"
    assert user["phoneVerified"] is True


def test_sms_failure_is_reported(client, make_user, monkeypatch):
    _, headers = make_user("household")

    def fail(to, body):
        raise TwilioException("Missing required Twilio environment variables")

    monkeypatch.setattr(verification, "send_sms", fail)
    resp = client.post("/api/verification/phone/send", json={"phone": "0712345678"}, headers=headers)

    assert resp.status_code == 502
    assert resp.json()["detail"] == "Missing required Twilio environment variables"


def test_email_verification_in_development(client, make_user):
    _, headers = make_user("household")

    sent = client.post("/api/verification/email/send", json={}, headers=headers).json()
    assert sent["developmentMode"] is True

    ok = client.post("/api/verification/email/verify", json={"code": sent["code"]}, headers=headers)
    assert ok.status_code == 200
    assert client.get("/api/user", headers=headers).json()["emailVerified"] is True


def test_email_code_for_another_address_is_refused(client, make_user):
    _, headers = make_user("household")
    resp = client.post(
        "/api/verification/email/verify", json={"email": "someone@else.com", "code": "123456"}, headers=headers
    )
    assert resp.status_code == 400


def test_failed_sms_leaves_no_live_code(monkeypatch):
    def fail(to, body):
        raise TwilioException("Unable to create record")

    monkeypatch.setattr(verification, "send_sms", fail)
    result = verification.send_otp("0712345678")

    assert result["success"] is False
    assert "+254712345678" not in verification.otp_store
