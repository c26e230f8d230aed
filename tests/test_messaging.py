from cruisemall.models import PartnerCustomerGroup
from cruisemall.models_messaging import OutboundMessage, PartnerSmsConfig
from cruisemall.security_utils import decrypt_credential


def funnel_payload(**overrides):
    payload = {
        "message_type": "SMS",
        "title": "출항 안내",
        "send_time": "09:30",
        "stages": [
            {"days_after": 0, "content": "예약해 주셔서 감사합니다"},
            {"days_after": 3, "send_time": "14:00", "content": "출항 준비물 안내"},
        ],
    }
    payload.update(overrides)
    return payload


def test_create_funnel_numbers_stages(client, login, make_profile):
    agent = make_profile("SALES_AGENT")
    login(agent.user)

    resp = client.post("/api/partner/funnel-messages", json=funnel_payload())
    assert resp.status_code == 201
    funnel = resp.json()["message"]
    assert funnel["message_type"] == "sms"
    assert funnel["profile_id"] == agent.id
    assert [(s["stage_number"], s["order"]) for s in funnel["stages"]] == [(1, 0), (2, 1)]

    listed = client.get("/api/partner/funnel-messages", params={"type": "sms"}).json()["messages"]
    assert [m["id"] for m in listed] == [funnel["id"]]
    assert client.get("/api/partner/funnel-messages", params={"type": "email"}).json()["messages"] == []


def test_invalid_funnel_payload_uses_partner_envelope(client, login, make_profile):
    login(make_profile("SALES_AGENT").user)

    bad_type = client.post("/api/partner/funnel-messages", json=funnel_payload(message_type="fax"))
    assert bad_type.status_code == 400
    assert bad_type.json()["ok"] is False
    assert "message_type" in bad_type.json()["error"]

    bad_time = client.post("/api/partner/funnel-messages", json=funnel_payload(send_time="25:00"))
    assert bad_time.status_code == 400


def test_clone_copies_stages_without_group(client, db, login, make_profile):
    agent = make_profile("SALES_AGENT")
    group = PartnerCustomerGroup(profile_id=agent.id, name="원본 그룹")
    db.add(group)
    db.commit()
    login(agent.user)

    source = client.post("/api/partner/funnel-messages", json=funnel_payload(group_id=group.id)).json()["message"]
    resp = client.post(f"/api/partner/funnel-messages/{source['id']}/clone")
    assert resp.status_code == 201
    clone = resp.json()["message"]
    assert clone["id"] != source["id"]
    assert clone["title"] == "출항 안내 (복사본)"
    assert clone["group_id"] is None
    assert [s["content"] for s in clone["stages"]] == [s["content"] for s in source["stages"]]


def test_funnel_update_replaces_stages_and_owner_deletes(client, login, make_profile):
    manager = make_profile("BRANCH_MANAGER")
    agent = make_profile("SALES_AGENT", manager=manager)
    login(agent.user)
    funnel_id = client.post("/api/partner/funnel-messages", json=funnel_payload()).json()["message"]["id"]

    updated = client.put(
        f"/api/partner/funnel-messages/{funnel_id}",
        json={"stages": [{"days_after": 1, "content": "하나만 남김"}]},
    ).json()["message"]
    assert len(updated["stages"]) == 1

    # Managers can read team funnels but only the owner deletes
    login(manager.user)
    assert client.get(f"/api/partner/funnel-messages/{funnel_id}").status_code == 200
    assert client.delete(f"/api/partner/funnel-messages/{funnel_id}").status_code == 403

    login(agent.user)
    assert client.delete(f"/api/partner/funnel-messages/{funnel_id}").json() == {"ok": True}
    assert client.get(f"/api/partner/funnel-messages/{funnel_id}").status_code == 404


def test_move_group_queues_funnel_messages(client, db, login, make_profile):
    agent = make_profile("SALES_AGENT")
    login(agent.user)
    funnel_id = client.post("/api/partner/funnel-messages", json=funnel_payload()).json()["message"]["id"]
    group_id = client.post(
        "/api/partner/customer-groups", json={"name": "퍼널 그룹", "funnel_sms_ids": [funnel_id]}
    ).json()["group"]["id"]
    lead_id = client.post(
        "/api/partner/customers", json={"customer_name": "퍼널 고객", "customer_phone": "01044445555"}
    ).json()["customer"]["id"]

    resp = client.post(f"/api/partner/customers/{lead_id}/move-group", json={"group_id": group_id})
    data = resp.json()
    assert data["scheduled"] == 2
    assert data["funnel_error"] is None
    assert data["customer"]["group_id"] == group_id

    queued = db.query(OutboundMessage).filter(OutboundMessage.lead_id == lead_id).all()
    assert len(queued) == 2
    assert all(m.is_active for m in queued)

    # Leaving the group cancels what has not been sent yet
    client.post(f"/api/partner/customers/{lead_id}/move-group", json={"group_id": None})
    for message in queued:
        db.refresh(message)
        assert message.is_active is False
        assert message.metadata_json["cancelled_reason"] == "group_changed"


def test_scheduled_message_crud(client, login, make_profile):
    login(make_profile("BRANCH_MANAGER").user)

    bad = client.post("/api/partner/scheduled-messages", json={"title": "x", "send_method": "pigeon"})
    assert bad.status_code == 400

    created = client.post(
        "/api/partner/scheduled-messages",
        json={
            "title": "승선 D-1 안내",
            "send_method": "cruise-guide",
            "start_date": "2026-05-01",
            "start_time": "10:00",
            "stages": [{"title": "내일 승선", "content": "여권을 챙겨 주세요"}],
        },
    )
    assert created.status_code == 201
    message = created.json()["message"]
    assert message["max_days"] == 999
    assert message["stages"][0]["stage_number"] == 1

    updated = client.put(f"/api/partner/scheduled-messages/{message['id']}", json={"is_active": False})
    assert updated.json()["message"]["is_active"] is False
    assert client.delete(f"/api/partner/scheduled-messages/{message['id']}").json() == {"ok": True}


def test_sms_config_is_encrypted(client, db, login, make_profile):
    agent = make_profile("SALES_AGENT")
    login(agent.user)
    assert client.get("/api/partner/sms-config").json() == {"ok": True, "config": None}

    resp = client.put(
        "/api/partner/sms-config",
        json={"api_key": " aligo-key ", "aligo_user_id": "partner01", "sender_phone": "010-5555-6666"},
    )
    config = resp.json()["config"]
    assert config["has_api_key"] is True
    assert "api_key" not in config
    assert config["sender_phone"] == "01055556666"

    stored = db.query(PartnerSmsConfig).filter(PartnerSmsConfig.profile_id == agent.id).one()
    assert stored.api_key != "aligo-key"
    assert decrypt_credential(stored.api_key) == "aligo-key"
