from __future__ import annotations

import json

from django.contrib.auth.models import Group, User
import pytest

from forms_app.forms.models import Activity, Form, Share

API = "/api/v2"


def ocs(resp):
    return resp.json()["ocs"]["data"]


def post_json(client, url, payload):
    return client.post(url, data=json.dumps(payload), content_type="application/json")


@pytest.fixture
def users(db):
    owner = User.objects.create_user(username="test", password="x")
    other = User.objects.create_user(
        username="someUser", password="x", first_name="Some", last_name="User"
    )
    return owner, other


@pytest.fixture
def form(users):
    owner, other = users
    return Form.objects.create(hash="abcdefg", title="Title of a Form", owner=owner)


@pytest.mark.django_db
def test_user_share_lists_form_as_shared(client, users, form):
    owner, other = users
    client.force_login(owner)
    resp = post_json(
        client,
        f"{API}/share",
        {"formId": form.id, "shareType": 0, "shareWith": "someUser"},
    )
    assert resp.status_code == 200
    share = ocs(resp)
    assert share["shareWith"] == "someUser"
    assert share["displayName"] == "Some User"

    client.force_login(other)
    assert ocs(client.get(f"{API}/forms")) == []
    shared = ocs(client.get(f"{API}/shared_forms"))
    assert [(f["hash"], f["permissions"]) for f in shared] == [("abcdefg", ["submit"])]


@pytest.mark.django_db
def test_group_share_reaches_members(client, users, form):
    owner, other = users
    staff = Group.objects.create(name="staff")
    other.groups.add(staff)
    client.force_login(owner)
    resp = post_json(
        client, f"{API}/share", {"formId": form.id, "shareType": 1, "shareWith": "staff"}
    )
    assert resp.status_code == 200
    assert Activity.objects.filter(subject="newgroupshare", affected="staff").exists()

    client.force_login(other)
    shared = ocs(client.get(f"{API}/shared_forms"))
    assert [f["hash"] for f in shared] == ["abcdefg"]


@pytest.mark.django_db
def test_link_share_never_exposes_results_or_shares(client, users, form):
    owner, other = users
    client.force_login(owner)
    link = ocs(post_json(client, f"{API}/share", {"formId": form.id, "shareType": 3}))
    assert len(link["shareWith"]) == 24
    assert link["displayName"] == ""

    client.force_login(other)
    assert ocs(client.get(f"{API}/shared_forms")) == []
    data = ocs(client.get(f"{API}/public_form/{link['shareWith']}"))
    assert data["permissions"] == ["submit"]
    assert "shares" not in data
    assert client.get(f"{API}/submissions/abcdefg").status_code == 403


@pytest.mark.django_db
def test_share_with_unknown_user_is_rejected(client, users, form):
    owner, other = users
    client.force_login(owner)
    resp = post_json(
        client, f"{API}/share", {"formId": form.id, "shareType": 0, "shareWith": "nobody"}
    )
    assert resp.status_code == 400
    assert not Share.objects.exists()


@pytest.mark.django_db
def test_duplicate_share_conflicts(client, users, form):
    owner, other = users
    client.force_login(owner)
    payload = {"formId": form.id, "shareType": 0, "shareWith": "someUser"}
    assert post_json(client, f"{API}/share", payload).status_code == 200
    resp = post_json(client, f"{API}/share", payload)
    assert resp.status_code == 409
    assert resp.json()["ocs"]["meta"]["status"] == "failure"


@pytest.mark.django_db
def test_only_editors_manage_shares(client, users, form):
    owner, other = users
    share = Share.objects.create(
        form=form, share_type=Share.Type.USER, share_with="someUser"
    )
    client.force_login(other)
    resp = post_json(
        client, f"{API}/share", {"formId": form.id, "shareType": 3, "shareWith": ""}
    )
    assert resp.status_code == 403
    assert client.delete(f"{API}/share/{share.id}").status_code == 403

    client.force_login(owner)
    resp = client.delete(f"{API}/share/{share.id}")
    assert resp.status_code == 200
    assert not Share.objects.exists()
    assert client.delete(f"{API}/share/{share.id}").status_code == 404
