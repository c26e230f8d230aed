from cruisemall.models import AffiliateLead, LandingPage, LandingPageRegistration
from cruisemall.models_messaging import OutboundMessage


def create_page(client, **overrides):
    payload = {"slug": "Summer-Cruise", "title": "여름 크루즈 특가", "html_content": "<p>안녕</p>"}
    payload.update(overrides)
    return client.post("/api/partner/landing-pages", json=payload)


def test_create_page_sanitizes_html(client, login, make_profile):
    agent = make_profile("SALES_AGENT")
    login(agent.user)

    resp = create_page(client, html_content='<p onclick="x()">특가</p><script>alert(1)</script>')
    assert resp.status_code == 201
    page = resp.json()["page"]
    assert page["slug"] == "summer-cruise"
    assert page["view_count"] == 0
    assert "<script>" not in page["html_content"]
    assert "onclick" not in page["html_content"]

    duplicate = create_page(client)
    assert duplicate.status_code == 409


def test_invalid_slug_rejected(client, login, make_profile):
    login(make_profile("SALES_AGENT").user)
    resp = create_page(client, slug="a b")
    assert resp.status_code == 400
    assert resp.json()["ok"] is False


def test_public_view_counts_and_hides_inactive(client, db, login, make_profile):
    agent = make_profile("SALES_AGENT", display_name="김파트너")
    login(agent.user)
    page_id = create_page(client).json()["page"]["id"]
    client.cookies.clear()

    for _ in range(2):
        resp = client.get("/api/public/landing/summer-cruise")
        assert resp.status_code == 200
    body = resp.json()["page"]
    assert body["partner_name"] == "김파트너"
    assert "profile_id" not in body

    page = db.get(LandingPage, page_id)
    db.refresh(page)
    assert page.view_count == 2

    page.is_active = False
    db.commit()
    missing = client.get("/api/public/landing/summer-cruise")
    assert missing.status_code == 404
    assert missing.json() == {"ok": False, "error": "Page not found"}


def test_terminated_partner_page_is_hidden(client, db, make_profile):
    agent = make_profile("SALES_AGENT", status="TERMINATED")
    db.add(LandingPage(profile_id=agent.id, slug="old-page", title="종료"))
    db.commit()
    assert client.get("/api/public/landing/old-page").status_code == 404


def test_register_creates_lead_then_reuses_it(client, db, make_profile):
    manager = make_profile("BRANCH_MANAGER")
    agent = make_profile("SALES_AGENT", manager=manager)
    db.add(LandingPage(profile_id=agent.id, slug="agent-page", title="상담 신청"))
    db.commit()

    first = client.post(
        "/api/public/landing/agent-page/register",
        json={"name": "홍길동", "phone": "010-7777-8888"},
    )
    assert first.status_code == 201
    lead = db.get(AffiliateLead, first.json()["lead_id"])
    assert lead.agent_id == agent.id
    assert lead.manager_id == manager.id
    assert lead.source == "landing-page"
    assert lead.customer_phone == "01077778888"

    second = client.post(
        "/api/public/landing/agent-page/register",
        json={"name": "홍길동", "phone": "01077778888", "email": "hong@example.com"},
    )
    assert second.json()["lead_id"] == lead.id
    db.refresh(lead)
    assert lead.customer_email == "hong@example.com"
    assert db.query(LandingPageRegistration).count() == 2


def test_register_joins_page_group_and_schedules_funnels(client, db, login, make_profile):
    agent = make_profile("SALES_AGENT")
    login(agent.user)
    funnel_id = client.post(
        "/api/partner/funnel-messages",
        json={"message_type": "sms", "title": "환영", "stages": [{"content": "반갑습니다"}]},
    ).json()["message"]["id"]
    group_id = client.post(
        "/api/partner/customer-groups", json={"name": "랜딩 유입", "funnel_sms_ids": [funnel_id]}
    ).json()["group"]["id"]
    create_page(client, group_id=group_id)
    client.cookies.clear()

    resp = client.post("/api/public/landing/summer-cruise/register", json={"name": "이몽룡", "phone": "01011112222"})
    lead = db.get(AffiliateLead, resp.json()["lead_id"])
    assert lead.group_id == group_id
    assert db.query(OutboundMessage).filter(OutboundMessage.lead_id == lead.id).count() == 1


def test_register_rejects_bots_and_bad_phone(client, db, make_profile):
    agent = make_profile("SALES_AGENT")
    db.add(LandingPage(profile_id=agent.id, slug="bot-target", title="페이지"))
    db.commit()

    bot = client.post(
        "/api/public/landing/bot-target/register",
        json={"name": "봇", "phone": "01011112222"},
        headers={"User-Agent": "python-requests/2.31"},
    )
    assert bot.status_code == 403

    bad = client.post("/api/public/landing/bot-target/register", json={"name": "고객", "phone": "12345"})
    assert bad.status_code == 422


def test_page_stats_conversion(client, db, login, make_profile):
    agent = make_profile("SALES_AGENT")
    login(agent.user)
    page_id = create_page(client).json()["page"]["id"]
    for _ in range(4):
        client.get("/api/public/landing/summer-cruise")
    client.post("/api/public/landing/summer-cruise/register", json={"name": "고객", "phone": "01033334444"})

    stats = client.get(f"/api/partner/landing-pages/{page_id}/stats").json()
    assert stats["view_count"] == 4
    assert stats["registrations"] == 1
    assert stats["conversion_rate"] == 25.0
    assert stats["recent"][0]["phone"] == "010****4444"
