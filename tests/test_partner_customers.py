import re

from cruisemall.models import AffiliateLead, AffiliateRelation, CommissionLedger


def test_admin_creates_agent_under_manager(client, db, login, make_user, make_profile):
    admin = make_user(role="admin")
    manager = make_profile("BRANCH_MANAGER")
    agent_user = make_user(phone="01033334444")
    login(admin)

    resp = client.post(
        "/api/admin/affiliate/profiles",
        json={"user_id": agent_user.id, "type": "SALES_AGENT", "manager_id": manager.id},
    )
    assert resp.status_code == 201
    profile = resp.json()
    assert re.fullmatch(r"AG[A-Z0-9]{6}", profile["affiliate_code"])
    assert profile["contact_phone"] == "01033334444"

    relation = db.query(AffiliateRelation).filter(AffiliateRelation.agent_id == profile["id"]).one()
    assert relation.manager_id == manager.id
    assert relation.status == "ACTIVE"


def test_duplicate_affiliate_code_conflicts(client, login, make_user, make_profile):
    admin = make_user(role="admin")
    make_profile("BRANCH_MANAGER", affiliate_code="BMTAKEN1")
    login(admin)

    resp = client.post(
        "/api/admin/affiliate/profiles",
        json={"user_id": make_user().id, "type": "BRANCH_MANAGER", "affiliate_code": "bmtaken1"},
    )
    assert resp.status_code == 409


def test_reconnecting_agent_closes_previous_relation(client, db, login, make_user, make_profile):
    admin = make_user(role="admin")
    first = make_profile("BRANCH_MANAGER")
    second = make_profile("BRANCH_MANAGER")
    agent = make_profile("SALES_AGENT", manager=first)
    login(admin)

    resp = client.post("/api/admin/affiliate/relations", json={"manager_id": second.id, "agent_id": agent.id})
    assert resp.status_code == 201

    relations = db.query(AffiliateRelation).filter(AffiliateRelation.agent_id == agent.id).all()
    active = [r for r in relations if r.status == "ACTIVE"]
    assert len(active) == 1
    assert active[0].manager_id == second.id


def test_partner_endpoints_require_active_profile(client, login, make_user):
    resp = client.get("/api/partner/customers")
    assert resp.status_code == 401
    assert resp.json() == {"ok": False, "error": "Login required"}

    login(make_user())
    assert client.get("/api/partner/customers").status_code == 403


def test_agent_creates_lead_owned_by_agent_and_manager(client, login, make_profile):
    manager = make_profile("BRANCH_MANAGER")
    agent = make_profile("SALES_AGENT", manager=manager)
    login(agent.user)

    resp = client.post(
        "/api/partner/customers",
        json={"customer_name": "이영희", "customer_phone": "010-2222-3333", "status": "BOGUS"},
    )
    assert resp.status_code == 201
    customer = resp.json()["customer"]
    assert customer["agent_id"] == agent.id
    assert customer["manager_id"] == manager.id
    assert customer["customer_phone"] == "01022223333"
    assert customer["status"] == "NEW"
    assert customer["ownership"] == "AGENT"

    dup = client.post("/api/partner/customers", json={"customer_name": "중복", "customer_phone": "01022223333"})
    assert dup.status_code == 409
    assert dup.json()["ok"] is False


def test_lead_visibility_follows_hierarchy(client, db, login, make_profile):
    manager = make_profile("BRANCH_MANAGER")
    agent = make_profile("SALES_AGENT", manager=manager)
    outsider = make_profile("SALES_AGENT")
    db.add_all(
        [
            AffiliateLead(customer_name="팀 고객", customer_phone="01010000001", agent_id=agent.id, manager_id=manager.id),
            AffiliateLead(customer_name="외부 고객", customer_phone="01010000002", agent_id=outsider.id),
        ]
    )
    db.commit()

    login(manager.user)
    names = [c["customer_name"] for c in client.get("/api/partner/customers").json()["customers"]]
    assert names == ["팀 고객"]

    login(outsider.user)
    data = client.get("/api/partner/customers", params={"q": "010-1000-0002"}).json()
    assert data["total"] == 1
    assert data["customers"][0]["customer_name"] == "외부 고객"

    team_lead = db.query(AffiliateLead).filter(AffiliateLead.customer_name == "팀 고객").one()
    resp = client.get(f"/api/partner/customers/{team_lead.id}")
    assert resp.status_code == 404


def test_interaction_marks_contacted(client, db, login, make_profile):
    agent = make_profile("SALES_AGENT")
    login(agent.user)
    lead_id = client.post("/api/partner/customers", json={"customer_name": "박민수"}).json()["customer"]["id"]

    resp = client.post(f"/api/partner/customers/{lead_id}/interactions", json={"interaction_type": "call", "note": "첫 통화"})
    assert resp.status_code == 201
    assert resp.json()["interaction"]["interaction_type"] == "CALL"

    lead = db.get(AffiliateLead, lead_id)
    db.refresh(lead)
    assert lead.status == "CONTACTED"
    assert lead.last_contacted_at is not None


def test_delete_is_soft(client, db, login, make_profile):
    agent = make_profile("SALES_AGENT")
    login(agent.user)
    lead_id = client.post("/api/partner/customers", json={"customer_name": "삭제 대상"}).json()["customer"]["id"]

    assert client.delete(f"/api/partner/customers/{lead_id}").json()["ok"] is True
    lead = db.get(AffiliateLead, lead_id)
    db.refresh(lead)
    assert lead.status == "CANCELLED"


def test_manager_assigns_only_team_agents(client, db, login, make_profile):
    manager = make_profile("BRANCH_MANAGER")
    agent = make_profile("SALES_AGENT", manager=manager)
    stranger = make_profile("SALES_AGENT")
    login(manager.user)
    lead_id = client.post("/api/partner/customers", json={"customer_name": "배정 고객"}).json()["customer"]["id"]

    denied = client.post("/api/partner/customers/assign", json={"lead_ids": [lead_id], "agent_id": stranger.id})
    assert denied.status_code == 403

    resp = client.post("/api/partner/customers/assign", json={"lead_ids": [lead_id], "agent_id": agent.id})
    assert resp.json() == {"ok": True, "assigned": 1}
    lead = db.get(AffiliateLead, lead_id)
    db.refresh(lead)
    assert lead.agent_id == agent.id
    assert lead.manager_id == manager.id


def test_sale_confirmation_writes_ledger(client, db, login, make_profile):
    manager = make_profile("BRANCH_MANAGER")
    agent = make_profile("SALES_AGENT", manager=manager)

    login(agent.user)
    lead_id = client.post("/api/partner/customers", json={"customer_name": "구매 고객"}).json()["customer"]["id"]
    sale = client.post(
        f"/api/partner/customers/{lead_id}/sales",
        json={"product_code": "MSC-01", "sale_amount": 1_000_000, "cost_amount": 800_000},
    ).json()["sale"]
    assert sale["status"] == "PENDING"

    # Agents cannot confirm
    assert client.post(f"/api/partner/customers/{lead_id}/sales/{sale['id']}/confirm").status_code == 403

    login(manager.user)
    resp = client.post(f"/api/partner/customers/{lead_id}/sales/{sale['id']}/confirm")
    assert resp.status_code == 200
    assert resp.json()["sale"]["status"] == "CONFIRMED"

    entries = {e.entry_type: e for e in db.query(CommissionLedger).filter(CommissionLedger.sale_id == sale["id"])}
    assert entries["SALES_COMMISSION"].amount == 30_000
    assert entries["BRANCH_COMMISSION"].amount == 20_000
    assert entries["OVERRIDE_COMMISSION"].amount == 10_000
    assert entries["HQ_NET"].amount == 200_000 - 60_000

    # Manager sees branch + override entries, 3.3% withheld on each
    ledger = client.get("/api/partner/ledger").json()
    assert ledger["total_amount"] == 20_000 + 10_000
    assert ledger["total_withholding"] == 660 + 330
    assert ledger["total_net"] == 30_000 - 990

    again = client.post(f"/api/partner/customers/{lead_id}/sales/{sale['id']}/confirm")
    assert again.status_code == 409
