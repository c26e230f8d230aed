import pytest

from cruisemall.models import AffiliateLead, LandingPage, PartnerCustomerGroup
from cruisemall.models_messaging import FunnelMessage, ScheduledMessage


def test_group_crud_with_lead_counts(client, db, login, make_profile):
    agent = make_profile("SALES_AGENT")
    login(agent.user)

    created = client.post(
        "/api/partner/customer-groups",
        json={"name": "  5월 지중해  ", "color": "#3366ff", "funnel_sms_ids": [1, "2", "x"]},
    )
    assert created.status_code == 201
    group = created.json()["group"]
    assert group["name"] == "5월 지중해"
    assert group["funnel_sms_ids"] == [1, 2]
    assert group["lead_count"] == 0

    db.add(AffiliateLead(customer_name="그룹 고객", agent_id=agent.id, group_id=group["id"]))
    db.commit()

    listed = client.get("/api/partner/customer-groups").json()["groups"]
    assert [(g["id"], g["lead_count"]) for g in listed] == [(group["id"], 1)]

    updated = client.put(f"/api/partner/customer-groups/{group['id']}", json={"description": "VIP"})
    assert updated.json()["group"]["description"] == "VIP"

    blank = client.put(f"/api/partner/customer-groups/{group['id']}", json={"name": "   "})
    assert blank.status_code == 400


def test_group_name_required(client, login, make_profile):
    login(make_profile("BRANCH_MANAGER").user)
    resp = client.post("/api/partner/customer-groups", json={"name": ""})
    assert resp.status_code == 400
    assert resp.json() == {"ok": False, "error": "Group name is required"}


def test_non_numeric_group_id_is_rejected(client, login, make_profile):
    login(make_profile("SALES_AGENT").user)
    resp = client.get("/api/partner/customer-groups/abc")
    assert resp.status_code == 400
    assert resp.json()["error"] == "Invalid group id"


def test_other_partners_groups_are_hidden(client, db, login, make_profile):
    owner = make_profile("SALES_AGENT")
    other = make_profile("SALES_AGENT")
    group = PartnerCustomerGroup(profile_id=owner.id, name="비공개")
    db.add(group)
    db.commit()

    login(other.user)
    assert client.get(f"/api/partner/customer-groups/{group.id}").status_code == 404
    assert client.get("/api/partner/customer-groups").json()["groups"] == []


def test_manager_sees_team_agent_groups(client, db, login, make_profile):
    manager = make_profile("BRANCH_MANAGER")
    agent = make_profile("SALES_AGENT", manager=manager)
    db.add(PartnerCustomerGroup(profile_id=agent.id, name="팀 그룹"))
    db.commit()

    login(manager.user)
    names = [g["name"] for g in client.get("/api/partner/customer-groups").json()["groups"]]
    assert names == ["팀 그룹"]


def test_delete_detaches_leads(client, db, login, make_profile):
    agent = make_profile("SALES_AGENT")
    group = PartnerCustomerGroup(profile_id=agent.id, name="정리 대상")
    db.add(group)
    db.commit()
    lead = AffiliateLead(customer_name="남는 고객", agent_id=agent.id, group_id=group.id)
    db.add(lead)
    db.commit()

    login(agent.user)
    resp = client.delete(f"/api/partner/customer-groups/{group.id}")
    assert resp.json() == {"ok": True, "detached": 1}

    db.refresh(lead)
    assert lead.group_id is None
    assert db.get(PartnerCustomerGroup, group.id) is None


@pytest.fixture()
def enforced_foreign_keys(db):
    db.commit()
    db.connection().exec_driver_sql("PRAGMA foreign_keys=ON")
    db.commit()
    yield
    db.rollback()
    db.connection().exec_driver_sql("PRAGMA foreign_keys=OFF")
    db.commit()


def test_delete_clears_pages_and_messages_pointing_at_group(client, db, login, make_profile, enforced_foreign_keys):
    agent = make_profile("SALES_AGENT")
    group = PartnerCustomerGroup(profile_id=agent.id, name="연결된 그룹")
    db.add(group)
    db.commit()
    page = LandingPage(profile_id=agent.id, slug="linked-page", title="연결 페이지", group_id=group.id)
    funnel = FunnelMessage(owner_user_id=agent.user_id, profile_id=agent.id, message_type="sms", title="퍼널", group_id=group.id)
    scheduled = ScheduledMessage(owner_user_id=agent.user_id, title="정기", send_method="sms", target_group_id=group.id)
    db.add_all([page, funnel, scheduled])
    db.commit()

    login(agent.user)
    resp = client.delete(f"/api/partner/customer-groups/{group.id}")
    assert resp.status_code == 200
    assert resp.json() == {"ok": True, "detached": 0}

    for row in (page, funnel, scheduled):
        db.refresh(row)
    assert page.group_id is None
    assert funnel.group_id is None
    assert scheduled.target_group_id is None
    assert db.get(PartnerCustomerGroup, group.id) is None
