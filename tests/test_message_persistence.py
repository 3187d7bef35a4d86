"""Tests for idempotent message persistence and ack handling."""

from datetime import datetime

import pytest

from app.domain.services.message_service import (
    AckStatus,
    MessageService,
    message_timestamp,
    parse_ack_status,
    raw_message_id,
)
from app.persistence.models.conversation import Conversation, Message
from app.persistence.models.lead import Lead


@pytest.fixture
async def conversation(db_session):
    lead = Lead(phone="11999998888", country_code="55", name="Maria", source="whatsapp", is_privacy_id=False)
    db_session.add(lead)
    await db_session.commit()
    conversation = Conversation(lead_id=lead.id, status="open")
    db_session.add(conversation)
    await db_session.commit()
    await db_session.refresh(conversation)
    return conversation


def _values(conversation, short_id: str, external_id: str | None = None, **overrides) -> dict:
    values = {
        "conversation_id": conversation.id,
        "lead_id": conversation.lead_id,
        "direction": "inbound",
        "type": "text",
        "status": "delivered",
        "content": "Bom dia!",
        "provider_message_id": short_id,
        "external_id": external_id or short_id,
        "provider": "waha",
        "sender_type": "lead",
        "source": "lead",
    }
    values.update(overrides)
    return values


class TestRawMessageId:
    def test_string_id(self):
        assert raw_message_id({"id": "true_5511@c.us_ABC"}) == "true_5511@c.us_ABC"

    def test_serialized_id(self):
        assert raw_message_id({"id": {"_serialized": "false_5511@c.us_ABC", "id": "ABC"}}) == "false_5511@c.us_ABC"

    def test_key_id(self):
        assert raw_message_id({"key": {"id": "ABC"}}) == "ABC"

    def test_ids_list(self):
        assert raw_message_id({"ids": ["ABC", "DEF"]}) == "ABC"

    def test_missing(self):
        assert raw_message_id({}) == ""


class TestParseAckStatus:
    @pytest.mark.parametrize(
        "payload,expected",
        [
            ({"ackName": "DEVICE"}, "delivered"),
            ({"ackName": "DELIVERY_ACK"}, "delivered"),
            ({"ackName": "READ"}, "read"),
            ({"ackName": "PLAYED"}, "read"),
            ({"receipt_type": "read"}, "read"),
            ({"ack": 2}, "delivered"),
            ({"ack": 3}, "read"),
            ({"ack": 1, "ackName": "SERVER"}, None),
            ({"ack": -1, "ackName": "ERROR"}, None),
        ],
    )
    def test_status(self, payload, expected):
        payload = {"id": "true_5511999998888@c.us_ABC", **payload}
        ack = parse_ack_status(payload)
        assert ack.status == expected
        assert ack.short_id == "ABC"
        assert ack.raw_id == "true_5511999998888@c.us_ABC"


class TestMessageTimestamp:
    def test_seconds(self):
        assert message_timestamp({"timestamp": 1700000000}) == datetime(2023, 11, 14, 22, 13, 20)

    def test_milliseconds(self):
        assert message_timestamp({"timestamp": 1700000000000}) == datetime(2023, 11, 14, 22, 13, 20)

    def test_missing_falls_back_to_now(self):
        before = datetime.utcnow()
        assert message_timestamp({}) >= before


class TestPersist:
    @pytest.mark.asyncio
    async def test_persist_once(self, db_session, conversation):
        service = MessageService(db_session)

        first, created = await service.persist(_values(conversation, "ABC"))
        second, created_again = await service.persist(_values(conversation, "ABC"))

        assert created
        assert not created_again
        assert second.id == first.id

    @pytest.mark.asyncio
    async def test_legacy_full_id_row_is_found(self, db_session, conversation):
        """Rows written before normalization hold the composite id."""
        legacy = Message(
            conversation_id=conversation.id,
            lead_id=conversation.lead_id,
            direction="inbound",
            content="oi",
            provider_message_id="false_5511999998888@c.us_ABC",
            external_id="false_5511999998888@c.us_ABC",
        )
        db_session.add(legacy)
        await db_session.commit()
        service = MessageService(db_session)

        found = await service.find_existing("ABC", "false_5511999998888@c.us_ABC")

        assert found.id == legacy.id


class TestAdvanceStatus:
    @pytest.mark.asyncio
    async def test_status_never_regresses(self, db_session, conversation):
        service = MessageService(db_session)
        message, _ = await service.persist(_values(conversation, "ABC", direction="outbound", status="sent"))

        assert await service.advance_status(message, "read")
        assert not await service.advance_status(message, "delivered")

        assert message.status == "read"

    @pytest.mark.asyncio
    async def test_repeated_status_is_noop(self, db_session, conversation):
        service = MessageService(db_session)
        message, _ = await service.persist(_values(conversation, "ABC", status="delivered"))

        assert not await service.advance_status(message, "delivered")
        assert message.status == "delivered"

    @pytest.mark.asyncio
    async def test_unknown_status_ignored(self, db_session, conversation):
        service = MessageService(db_session)
        message, _ = await service.persist(_values(conversation, "ABC", status="sent"))

        assert not await service.advance_status(message, "played")
        assert message.status == "sent"


class TestFindForAck:
    @pytest.mark.asyncio
    async def test_short_id(self, db_session, conversation):
        service = MessageService(db_session)
        message, _ = await service.persist(_values(conversation, "ABC", "true_5511999998888@c.us_ABC"))

        found = await service.find_for_ack(AckStatus(raw_id="ABC", short_id="ABC", status="read"))

        assert found.id == message.id

    @pytest.mark.asyncio
    async def test_full_composite_id(self, db_session, conversation):
        service = MessageService(db_session)
        message, _ = await service.persist(
            _values(conversation, "legacy-key", "true_5511999998888@c.us_ABC")
        )
        ack = AckStatus(raw_id="true_5511999998888@c.us_ABC", short_id="ABC", status="read")

        found = await service.find_for_ack(ack)

        assert found.id == message.id

    @pytest.mark.asyncio
    async def test_substring_of_legacy_external_id(self, db_session, conversation):
        service = MessageService(db_session)
        message, _ = await service.persist(
            _values(conversation, "legacy-key", "true_5511999998888@c.us_ABC_5511988887777@c.us")
        )
        ack = AckStatus(raw_id="ABC", short_id="ABC", status="delivered")

        found = await service.find_for_ack(ack)

        assert found.id == message.id

    @pytest.mark.asyncio
    async def test_unknown(self, db_session, conversation):
        service = MessageService(db_session)

        assert await service.find_for_ack(AckStatus(raw_id="XYZ", short_id="XYZ", status="read")) is None
