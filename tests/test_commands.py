from io import StringIO

import pytest
from django.core.management import CommandError, call_command


@pytest.fixture
def fake_resources(resources, monkeypatch):
    monkeypatch.setattr(
        "convo.management.commands.send_digests.Resources.from_settings",
        classmethod(lambda cls: resources),
    )
    return resources


def test_send_digests_for_everyone(make_user, make_thread, post, fake_resources):
    alice, bob = make_user(), make_user()
    post(alice, make_thread(alice, [bob]))

    out = StringIO()
    call_command("send_digests", stdout=out)

    assert "Sent 2 digests" in out.getvalue()
    assert len(fake_resources.mail.digests) == 1


def test_send_digests_reports_failures(make_user, make_thread, post, fake_resources):
    alice, bob = make_user(), make_user()
    post(alice, make_thread(alice, [bob]))
    fake_resources.mail.fail = True

    out = StringIO()
    call_command("send_digests", stdout=out)

    assert "1 failed" in out.getvalue()


def test_send_digest_for_one_user(make_user, make_thread, post, fake_resources):
    alice, bob = make_user(), make_user()
    post(alice, make_thread(alice, [bob]))

    out = StringIO()
    call_command("send_digests", "--user", str(bob.pk), stdout=out)

    assert f"Digested 1 items for user {bob.pk}" in out.getvalue()
    [(_, _, user)] = fake_resources.mail.digests
    assert user == bob


@pytest.mark.django_db
def test_send_digest_for_unknown_user(fake_resources):
    with pytest.raises(CommandError):
        call_command("send_digests", "--user", "999999")
