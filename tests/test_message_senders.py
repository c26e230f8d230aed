import asyncio
from datetime import date, datetime

import pytest

from cruisemall.models import AffiliateLead, PartnerCustomerGroup
from cruisemall.models_messaging import (
    FunnelMessage,
    FunnelMessageStage,
    NotificationLog,
    OutboundMessage,
    PartnerSmsConfig,
    ScheduledMessage,
    ScheduledMessageStage,
    SmsLog,
)
from cruisemall.security_utils import encrypt_credential
from cruisemall.services import notification_service
from cruisemall.services.funnel_scheduler import (
    cancel_pending_funnel_messages,
    compute_send_at,
    schedule_partner_funnel_messages,
)
from cruisemall.services.funnel_sender import process_funnel_messages
from cruisemall.services.scheduled_message_sender import (
    apply_ad_rules,
    process_scheduled_messages,
    stage_is_due,
)

NOW = datetime(2026, 5, 10, 11, 0)


# ----------------------------------------------------------------- scheduler


@pytest.mark.parametrize(
    "days_after, send_time, fallback, expected",
    [
        (0, "15:00", None, datetime(2026, 5, 10, 15, 0)),
        (0, "09:00", None, datetime(2026, 5, 11, 9, 0)),
        (2, "09:00", None, datetime(2026, 5, 12, 9, 0)),
        (1, None, "18:30", datetime(2026, 5, 11, 18, 30)),
        (1, None, None, datetime(2026, 5, 11, 10, 0)),
    ],
)
def test_compute_send_at(days_after, send_time, fallback, expected):
    assert compute_send_at(NOW, days_after, send_time, fallback) == expected


def make_funnel(db, profile, message_type="sms", stages=((0, "15:00"),)):
    funnel = FunnelMessage(
        owner_user_id=profile.user_id,
        profile_id=profile.id,
        message_type=message_type,
        title="환영 퍼널",
        opt_out_number="080-123-4567",
        auto_add_opt_out=True,
    )
    funnel.stages = [
        FunnelMessageStage(stage_number=i + 1, days_after=days, send_time=at, content=f"{i + 1}단계", order=i)
        for i, (days, at) in enumerate(stages)
    ]
    db.add(funnel)
    db.commit()
    return funnel


def make_group(db, profile, **funnel_ids):
    group = PartnerCustomerGroup(profile_id=profile.id, name="퍼널 그룹", **funnel_ids)
    db.add(group)
    db.commit()
    return group


def test_scheduling_requires_phone_for_sms_funnels(db, make_profile):
    agent = make_profile("SALES_AGENT")
    funnel = make_funnel(db, agent)
    group = make_group(db, agent, funnel_sms_ids=[funnel.id])
    lead = AffiliateLead(customer_name="번호 없음", agent_id=agent.id)
    db.add(lead)
    db.commit()

    result = schedule_partner_funnel_messages(db, lead.id, group.id, agent.id, agent.user_id, now=NOW)
    assert result == {"scheduled": 0, "error": "Lead has no phone number"}


def test_scheduling_skips_inactive_funnels_and_queues_stages(db, make_profile):
    agent = make_profile("SALES_AGENT")
    active = make_funnel(db, agent, stages=((0, "15:00"), (3, "09:00")))
    inactive = make_funnel(db, agent)
    inactive.is_active = False
    db.commit()
    group = make_group(db, agent, funnel_sms_ids=[active.id, inactive.id])
    lead = AffiliateLead(customer_name="김고객", customer_phone="01012345678", agent_id=agent.id)
    db.add(lead)
    db.commit()

    result = schedule_partner_funnel_messages(db, lead.id, group.id, agent.id, agent.user_id, now=NOW)
    db.commit()
    assert result == {"scheduled": 2, "error": None}

    queued = db.query(OutboundMessage).order_by(OutboundMessage.send_at).all()
    assert [m.send_at for m in queued] == [datetime(2026, 5, 10, 15, 0), datetime(2026, 5, 13, 9, 0)]
    assert queued[0].title == "[퍼널] 환영 퍼널 - 1단계"
    assert queued[0].metadata_json["lead_phone"] == "01012345678"
    assert queued[0].metadata_json["opt_out_number"] == "080-123-4567"


def test_group_without_funnels_schedules_nothing(db, make_profile):
    agent = make_profile("SALES_AGENT")
    group = make_group(db, agent)
    lead = AffiliateLead(customer_name="고객", customer_phone="01012345678", agent_id=agent.id)
    db.add(lead)
    db.commit()
    assert schedule_partner_funnel_messages(db, lead.id, group.id, agent.id, agent.user_id) == {
        "scheduled": 0,
        "error": None,
    }


def test_group_scheduled_messages_are_queued_for_new_lead(db, make_profile):
    agent = make_profile("SALES_AGENT")
    message = scheduled(
        db,
        agent.user,
        send_method="sms",
        start_time="18:30",
        is_ad_message=True,
        auto_add_ad_tag=True,
        auto_add_opt_out=True,
        opt_out_number="080-999-0000",
        stages=[
            ScheduledMessageStage(stage_number=1, days_after=0, title="특가", content="특가 안내", order=0),
            ScheduledMessageStage(stage_number=2, days_after=2, send_time="09:00", title="마감", content="마감 임박", order=1),
        ],
    )
    group = make_group(db, agent, funnel_sms_ids=[message.id])
    lead = AffiliateLead(customer_name="이고객", customer_phone="01055556666", agent_id=agent.id)
    db.add(lead)
    db.commit()

    result = schedule_partner_funnel_messages(db, lead.id, group.id, agent.id, agent.user_id, now=NOW)
    db.commit()
    assert result == {"scheduled": 2, "error": None}

    queued = db.query(OutboundMessage).order_by(OutboundMessage.send_at).all()
    assert [m.send_at for m in queued] == [datetime(2026, 5, 10, 18, 30), datetime(2026, 5, 12, 9, 0)]
    assert queued[0].channel == "sms"
    assert queued[0].title == "[퍼널] 정기 안내 - 1단계"
    assert queued[0].content == "[광고] 특가 안내\n무료수신거부: 080-999-0000"
    metadata = queued[0].metadata_json
    assert metadata["source"] == "partner_scheduled"
    assert metadata["scheduled_message_id"] == message.id
    assert metadata["is_ad_message"] is True
    assert "opt_out_number" not in metadata

    assert cancel_pending_funnel_messages(db, lead.id) == 2


# -------------------------------------------------------------- funnel sender


def queue(db, profile, channel="sms", send_at=NOW, **metadata):
    message = OutboundMessage(
        owner_user_id=profile.user_id,
        profile_id=profile.id,
        channel=channel,
        title="퍼널 메시지",
        content="안녕하세요",
        send_at=send_at,
        is_active=True,
        metadata_json={"source": "partner_funnel", **metadata},
    )
    db.add(message)
    db.commit()
    return message


@pytest.fixture()
def aligo_calls(monkeypatch):
    calls = []

    async def fake_send(config, phone, message, title=None):
        calls.append({"api_key": config.api_key, "phone": phone, "message": message})
        return {"success": True, "msg_type": "SMS", "result": {"result_code": 1, "msg_id": 77}, "error": None}

    monkeypatch.setattr(notification_service, "send_sms_via_aligo", fake_send)
    return calls


def test_funnel_sender_delivers_due_messages(db, make_profile, aligo_calls):
    agent = make_profile("SALES_AGENT")
    db.add(
        PartnerSmsConfig(
            profile_id=agent.id,
            api_key=encrypt_credential("partner-key"),
            aligo_user_id="partner01",
            sender_phone="01099998888",
        )
    )
    db.commit()
    due = queue(db, agent, lead_phone="01012345678", opt_out_number="080-000-0000")
    later = queue(db, agent, send_at=datetime(2026, 5, 11, 9, 0), lead_phone="01012345678")
    no_phone = queue(db, agent)

    summary = asyncio.run(process_funnel_messages(db, now=NOW))
    assert summary == {"processed": 2, "sent": 1, "failed": 0, "skipped": 1}

    assert aligo_calls == [
        {"api_key": "partner-key", "phone": "01012345678", "message": "안녕하세요\n무료수신거부: 080-000-0000"}
    ]
    db.refresh(due)
    db.refresh(later)
    db.refresh(no_phone)
    assert due.sent_at == NOW and due.is_active is False
    assert later.is_active is True
    assert no_phone.metadata_json["send_error"] == "Lead has no phone number"

    log = db.query(SmsLog).one()
    assert log.status == "sent"
    assert log.provider_msg_id == "77"
    assert log.message_type == "partner_funnel"


def test_funnel_sender_skips_without_partner_config(db, make_profile, aligo_calls):
    agent = make_profile("SALES_AGENT")
    message = queue(db, agent, lead_phone="01012345678")

    summary = asyncio.run(process_funnel_messages(db, now=NOW))
    assert summary["skipped"] == 1
    assert aligo_calls == []
    db.refresh(message)
    assert message.metadata_json["send_error"] == "SMS config not found"


def test_funnel_sender_skips_landline_numbers(db, make_profile, aligo_calls):
    agent = make_profile("SALES_AGENT")
    db.add(
        PartnerSmsConfig(
            profile_id=agent.id, api_key=encrypt_credential("k"), aligo_user_id="u", sender_phone="01099998888"
        )
    )
    db.commit()
    message = queue(db, agent, lead_phone="02-123-4567")

    summary = asyncio.run(process_funnel_messages(db, now=NOW))
    assert summary == {"processed": 1, "sent": 0, "failed": 0, "skipped": 1}
    assert aligo_calls == []
    db.refresh(message)
    assert message.is_active is False
    assert message.metadata_json["send_error"] == "Lead phone is not a mobile number"


def test_funnel_sender_retries_provider_failures(db, make_profile, monkeypatch):
    agent = make_profile("SALES_AGENT")
    db.add(
        PartnerSmsConfig(
            profile_id=agent.id, api_key=encrypt_credential("k"), aligo_user_id="u", sender_phone="01099998888"
        )
    )
    db.commit()
    message = queue(db, agent, lead_phone="01012345678")

    async def failing_send(config, phone, text, title=None):
        return {"success": False, "msg_type": "SMS", "result": {"result_code": -101}, "error": "인증오류"}

    monkeypatch.setattr(notification_service, "send_sms_via_aligo", failing_send)

    summary = asyncio.run(process_funnel_messages(db, now=NOW))
    assert summary["failed"] == 1
    db.refresh(message)
    assert message.is_active is True
    assert message.sent_at is None
    assert message.metadata_json["send_attempt_count"] == 1
    assert message.metadata_json["last_send_error"] == "인증오류"
    assert "final_error" not in message.metadata_json

    asyncio.run(process_funnel_messages(db, now=NOW))
    asyncio.run(process_funnel_messages(db, now=NOW))
    db.refresh(message)
    assert message.is_active is False
    assert message.metadata_json["send_attempt_count"] == 3
    assert message.metadata_json["final_error"] == "Deactivated after 3 failed attempts"
    assert [log.status for log in db.query(SmsLog)] == ["failed"] * 3

    assert asyncio.run(process_funnel_messages(db, now=NOW))["processed"] == 0


# ----------------------------------------------------------- scheduled sender


def scheduled(db, owner, **kwargs):
    stages = kwargs.pop("stages", [ScheduledMessageStage(stage_number=1, days_after=0, title="안내", content="본문")])
    kwargs.setdefault("send_method", "cruise-guide")
    message = ScheduledMessage(owner_user_id=owner.id, title="정기 안내", **kwargs)
    message.stages = stages
    db.add(message)
    db.commit()
    return message


def test_stage_is_due_window_and_day_offset():
    message = ScheduledMessage(id=1, start_time="11:00", start_date=date(2026, 5, 8), max_days=5)
    stage = ScheduledMessageStage(stage_number=1, days_after=2)

    assert stage_is_due(message, stage, datetime(2026, 5, 10, 11, 2))
    assert not stage_is_due(message, stage, datetime(2026, 5, 10, 11, 3))
    assert not stage_is_due(message, stage, datetime(2026, 5, 9, 11, 0))
    assert not stage_is_due(message, stage, datetime(2026, 5, 14, 11, 0))

    no_start = ScheduledMessage(id=2, start_time="11:00", max_days=999)
    assert stage_is_due(no_start, ScheduledMessageStage(stage_number=1, days_after=0), NOW)
    assert not stage_is_due(no_start, ScheduledMessageStage(stage_number=2, days_after=1), NOW)
    assert not stage_is_due(ScheduledMessage(id=3), ScheduledMessageStage(stage_number=1, days_after=0), NOW)


def test_apply_ad_rules():
    ad = ScheduledMessage(is_ad_message=True, auto_add_ad_tag=True, auto_add_opt_out=True, opt_out_number="080-1")
    assert apply_ad_rules(ad, "특가") == "[광고] 특가\n무료수신거부: 080-1"

    plain = ScheduledMessage(is_ad_message=False, auto_add_ad_tag=True, auto_add_opt_out=True, opt_out_number="080-1")
    assert apply_ad_rules(plain, "공지") == "공지"


def test_scheduled_sender_sends_once_per_day(db, make_user):
    admin = make_user(role="admin")
    customer = make_user(role="user")
    make_user(role="user", customer_status="inactive")
    scheduled(db, admin, start_time="11:00")

    first = asyncio.run(process_scheduled_messages(db, now=NOW))
    assert first == {"messages": 1, "sent": 1, "skipped": 0, "failed": 0}

    log = db.query(NotificationLog).one()
    assert log.user_id == customer.id
    assert log.event_key.endswith(f"_1_{customer.id}_2026-05-10")

    second = asyncio.run(process_scheduled_messages(db, now=NOW.replace(minute=1)))
    assert second["sent"] == 0
    assert second["skipped"] == 1


def test_scheduled_sender_targets_group_members_by_phone(db, make_user, make_profile):
    admin = make_user(role="admin")
    agent = make_profile("SALES_AGENT")
    member = make_user(phone="01012345678")
    make_user(phone="01099990000")
    group = PartnerCustomerGroup(profile_id=agent.id, name="대상 그룹")
    db.add(group)
    db.commit()
    db.add(AffiliateLead(customer_name="그룹원", customer_phone="010-1234-5678", group_id=group.id))
    db.commit()
    scheduled(db, admin, start_time="11:00", target_group_id=group.id)

    summary = asyncio.run(process_scheduled_messages(db, now=NOW))
    assert summary["sent"] == 1
    assert db.query(NotificationLog).one().user_id == member.id


def test_scheduled_sms_fails_without_hq_config(db, make_user):
    admin = make_user(role="admin")
    make_user(role="user", phone="01012345678")
    scheduled(db, admin, start_time="11:00", send_method="sms")

    summary = asyncio.run(process_scheduled_messages(db, now=NOW))
    assert summary["failed"] == 1
    assert db.query(NotificationLog).count() == 0


# ------------------------------------------------------------------- aligo


@pytest.fixture()
def aligo_reply(monkeypatch):
    requests = []
    reply = {"status": 200, "body": b""}
    real_client = notification_service.httpx.AsyncClient

    def handler(request):
        requests.append(request)
        return notification_service.httpx.Response(reply["status"], content=reply["body"])

    monkeypatch.setattr(
        notification_service.httpx,
        "AsyncClient",
        lambda **kwargs: real_client(transport=notification_service.httpx.MockTransport(handler), **kwargs),
    )
    return reply, requests


def test_aligo_success_posts_form(aligo_reply):
    reply, requests = aligo_reply
    reply["body"] = b'{"result_code": "1", "msg_id": 501}'
    config = notification_service.SmsConfig("key", "aligo-user", "01099998888")

    outcome = asyncio.run(notification_service.send_sms_via_aligo(config, "010-1234-5678", "짧은 문자"))
    assert outcome["success"] is True
    assert outcome["msg_type"] == "SMS"
    assert requests[0].url.path == "/send/"
    assert b"receiver=01012345678" in requests[0].content


def test_unreadable_aligo_reply_is_logged_as_failure(db, aligo_reply):
    reply, _ = aligo_reply
    reply["body"] = b"<html>maintenance</html>"
    config = notification_service.SmsConfig("key", "aligo-user", "01099998888")

    ok, error = asyncio.run(notification_service.send_sms(db, config, "01012345678", "본문", "partner_funnel"))
    assert ok is False
    assert error.startswith("Aligo returned an unreadable response")
    log = db.query(SmsLog).one()
    assert log.status == "failed"
    assert log.provider_msg_id is None
