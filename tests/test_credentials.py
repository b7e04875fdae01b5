import re
from datetime import datetime, timezone

from practice_e2e.credentials import (
    Credential,
    generate_credential,
    generate_test_email,
    generate_test_password,
    is_valid_email,
)


def test_email_uses_timestamp_and_bypass_domain():
    now = datetime(2031, 5, 4, 13, 2, 1, tzinfo=timezone.utc)

    assert generate_test_email(domain="fractallabs.dev", now=now) == "e2e-test-20310504130201@fractallabs.dev"


def test_same_second_emails_stay_unique():
    now = datetime(2031, 5, 4, 13, 2, 2, tzinfo=timezone.utc)

    emails = {generate_test_email(domain="fractallabs.dev", now=now) for _ in range(3)}

    assert len(emails) == 3
    assert "e2e-test-20310504130202@fractallabs.dev" in emails
    assert all(is_valid_email(email) for email in emails)


def test_emails_stay_unique_when_the_clock_steps_back():
    earlier = datetime(2032, 1, 1, 0, 0, 0, tzinfo=timezone.utc)
    later = datetime(2032, 1, 1, 0, 0, 5, tzinfo=timezone.utc)

    emails = [generate_test_email(domain="x.test", now=when) for when in (earlier, later, earlier, later)]

    assert len(set(emails)) == 4
    assert emails[0] == "e2e-test-20320101000000@x.test"


def test_default_domain_comes_from_settings():
    assert generate_test_email().endswith("@fractallabs.dev")


def test_password_shape():
    password = generate_test_password()

    assert re.fullmatch(r"TestPass\d{13}!", password)


def test_generated_credential_is_valid():
    credential = generate_credential()

    assert is_valid_email(credential.email)
    assert credential.password.startswith("TestPass")


def test_repr_hides_password():
    credential = Credential(email="a@b.co", password="hunter2")

    assert "hunter2" not in repr(credential)


def test_email_validation():
    assert is_valid_email("e2e-test-1@fractallabs.dev")
    assert not is_valid_email("no-at-sign.dev")
    assert not is_valid_email("two@@fractallabs.dev")
    assert not is_valid_email("spaces in@fractallabs.dev")
    assert not is_valid_email("")
