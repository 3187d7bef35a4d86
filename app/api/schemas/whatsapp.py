"""WhatsApp gateway webhook envelopes and responses.

Two gateway dialects post to the same endpoint:

    WAHA:      {"event": ..., "session": ..., "payload": {...}}
    Evolution: {"event": ..., "instance": ..., "data": {...}}

Both are reduced to a WebhookEvent whose message is in the WAHA message
shape, so everything downstream handles a single format.
"""

from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, ValidationError

WAHA_MESSAGE_EVENTS = frozenset(("message", "message.any"))
WAHA_ACK_EVENTS = frozenset(("message.ack",))
EVOLUTION_MESSAGE_EVENTS = frozenset(("messages.upsert",))
EVOLUTION_ACK_EVENTS = frozenset(("messages.update",))

# Baileys numeric receipt codes
EVOLUTION_NUMERIC_STATUSES = {3: "DELIVERY_ACK", 4: "READ", 5: "PLAYED"}

# Evolution message node -> WAHA message type
_EVOLUTION_MEDIA_NODES = (
    ("imageMessage", "image"),
    ("videoMessage", "video"),
    ("audioMessage", "audio"),
    ("documentMessage", "document"),
    ("documentWithCaptionMessage", "document"),
)
_EVOLUTION_OTHER_NODES = (
    ("protocolMessage", "protocol"),
    ("reactionMessage", "reaction"),
    ("pollCreationMessage", "poll_creation"),
    ("pollCreationMessageV3", "poll_creation"),
    ("stickerMessage", "sticker"),
)

EventKind = Literal["message", "ack"]


class EnvelopeError(ValueError):
    """Raised when a webhook body matches neither gateway dialect."""
    pass


class WahaEnvelope(BaseModel):
    """WAHA webhook envelope."""

    model_config = ConfigDict(extra="allow")

    event: str
    session: str
    payload: dict[str, Any] = Field(default_factory=dict)


class EvolutionEnvelope(BaseModel):
    """Evolution API webhook envelope."""

    model_config = ConfigDict(extra="allow")

    event: str
    instance: str
    data: dict[str, Any] | list[dict[str, Any]] = Field(default_factory=dict)


class WebhookEvent(BaseModel):
    """A webhook reduced to its dialect-neutral form."""

    provider: Literal["waha", "evolution"]
    event: str
    session_name: str
    kind: EventKind | None = None  # None: event not handled
    message: dict[str, Any] = Field(default_factory=dict)  # first record
    messages: list[dict[str, Any]] = Field(default_factory=list)  # every record, in delivery order


class WebhookMessageData(BaseModel):
    """Identifiers of a persisted message."""

    message_id: int
    conversation_id: int
    lead_id: int
    provider: str
    external_id: str


class WebhookResponse(BaseModel):
    """Body returned for every understood webhook."""

    model_config = ConfigDict(extra="allow")

    success: bool = True
    ignored: bool | None = None
    reason: str | None = None
    duplicate: bool | None = None
    existing_message_id: int | None = None
    data: WebhookMessageData | None = None


def _dict(value: Any) -> dict[str, Any]:
    return value if isinstance(value, dict) else {}


def _event_name(event: str) -> str:
    # Evolution v1 sends MESSAGES_UPSERT, v2 sends messages.upsert
    return event.strip().lower().replace("_", ".")


def parse_envelope(body: Any, dialect: str | None = None) -> WebhookEvent:
    """Detect the dialect of a webhook body and normalize it.

    Args:
        body: Decoded JSON body
        dialect: Force "waha" or "evolution" instead of detecting by shape

    Returns:
        WebhookEvent

    Raises:
        EnvelopeError: If the body fits neither dialect
    """
    if not isinstance(body, dict):
        raise EnvelopeError("Webhook body is not a JSON object")

    if dialect is None:
        if "event" in body and "session" in body and "payload" in body:
            dialect = "waha"
        elif "event" in body and "instance" in body and "data" in body:
            dialect = "evolution"
        else:
            raise EnvelopeError("Unrecognized webhook envelope")

    try:
        if dialect == "waha":
            return _from_waha(WahaEnvelope.model_validate(body))
        if dialect == "evolution":
            return _from_evolution(EvolutionEnvelope.model_validate(body))
    except ValidationError as e:
        raise EnvelopeError(f"Invalid {dialect} envelope: {e.error_count()} errors") from e
    raise EnvelopeError(f"Unknown dialect {dialect!r}")


def _from_waha(envelope: WahaEnvelope) -> WebhookEvent:
    event = _event_name(envelope.event)
    kind: EventKind | None = None
    if event in WAHA_MESSAGE_EVENTS:
        kind = "message"
    elif event in WAHA_ACK_EVENTS:
        kind = "ack"
    return WebhookEvent(
        provider="waha",
        event=event,
        session_name=envelope.session,
        kind=kind,
        message=envelope.payload,
        messages=[envelope.payload],
    )


def _from_evolution(envelope: EvolutionEnvelope) -> WebhookEvent:
    event = _event_name(envelope.event)
    # Batched deliveries carry a list of records
    records = envelope.data if isinstance(envelope.data, list) else [envelope.data]

    kind: EventKind | None = None
    messages: list[dict[str, Any]] = []
    if event in EVOLUTION_MESSAGE_EVENTS:
        kind = "message"
        messages = [normalize_evolution_message(record) for record in records]
    elif event in EVOLUTION_ACK_EVENTS:
        kind = "ack"
        messages = [normalize_evolution_ack(record) for record in records]
    return WebhookEvent(
        provider="evolution",
        event=event,
        session_name=envelope.instance,
        kind=kind,
        message=messages[0] if messages else {},
        messages=messages,
    )


def _timestamp(value: Any) -> int | None:
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, str) and value.isdigit():
        return int(value)
    # protobuf Long
    if isinstance(value, dict) and isinstance(value.get("low"), int):
        return value["low"]
    return None


def _quoted_from_context(context: dict[str, Any], remote_jid: str) -> dict[str, Any] | None:
    stanza_id = context.get("stanzaId")
    if not stanza_id:
        return None
    quoted = _dict(context.get("quotedMessage"))
    body = quoted.get("conversation") or _dict(quoted.get("extendedTextMessage")).get("text")
    quoted_type = "chat"
    for node, message_type in _EVOLUTION_MEDIA_NODES:
        if node in quoted:
            quoted_type = message_type
            body = body or _dict(quoted[node]).get("caption")
            break
    return {
        "id": {"id": stanza_id, "remote": remote_jid, "fromMe": False},
        "from": context.get("participant") or remote_jid,
        "body": body or "",
        "type": quoted_type,
    }


def normalize_evolution_message(data: dict[str, Any]) -> dict[str, Any]:
    """Rewrite an Evolution messages.upsert record into the WAHA message shape."""
    key = _dict(data.get("key"))
    remote_jid = key.get("remoteJid") or ""
    from_me = key.get("fromMe") is True
    content = _dict(data.get("message"))

    normalized: dict[str, Any] = {
        "id": key.get("id") or data.get("id") or "",
        "fromMe": from_me,
        "from": "" if from_me else remote_jid,
        "to": remote_jid if from_me else "",
        "chatId": remote_jid,
        "participant": key.get("participant"),
        "pushName": data.get("pushName"),
        "timestamp": _timestamp(data.get("messageTimestamp")),
        "type": "chat",
        "body": "",
        "hasMedia": False,
    }

    context: dict[str, Any] = {}
    if "conversation" in content:
        normalized["body"] = content.get("conversation") or ""
    elif "extendedTextMessage" in content:
        text_node = _dict(content["extendedTextMessage"])
        normalized["body"] = text_node.get("text") or ""
        context = _dict(text_node.get("contextInfo"))
    else:
        for node, message_type in _EVOLUTION_MEDIA_NODES:
            if node not in content:
                continue
            media_node = _dict(content[node])
            if node == "documentWithCaptionMessage":
                media_node = _dict(_dict(media_node.get("message")).get("documentMessage"))
            if message_type == "audio" and media_node.get("ptt"):
                message_type = "ptt"
            normalized.update(
                type=message_type,
                hasMedia=True,
                caption=media_node.get("caption") or media_node.get("fileName") or "",
                media={
                    "url": content.get("mediaUrl") or data.get("mediaUrl"),
                    "mimetype": media_node.get("mimetype"),
                    "data": content.get("base64"),
                },
            )
            context = _dict(media_node.get("contextInfo"))
            break
        else:
            for node, message_type in _EVOLUTION_OTHER_NODES:
                if node in content:
                    normalized["type"] = message_type
                    break
            else:
                normalized["type"] = data.get("messageType") or "unknown"

    quoted = _quoted_from_context(context, remote_jid) if context else None
    if quoted:
        normalized["quotedMsg"] = quoted
    return normalized


def normalize_evolution_ack(data: dict[str, Any]) -> dict[str, Any]:
    """Rewrite an Evolution messages.update record into the WAHA ack shape."""
    key = _dict(data.get("key"))
    remote_jid = data.get("remoteJid") or key.get("remoteJid") or ""
    from_me = (data.get("fromMe") if "fromMe" in data else key.get("fromMe")) is True
    # v2 nests the receipt: {"key": {...}, "update": {"status": 4}}
    status = data.get("status")
    if status is None:
        status = _dict(data.get("update")).get("status")
    if isinstance(status, int) and not isinstance(status, bool):
        status = EVOLUTION_NUMERIC_STATUSES.get(status)

    return {
        "id": data.get("keyId") or key.get("id") or data.get("messageId") or "",
        "fromMe": from_me,
        "from": "" if from_me else remote_jid,
        "to": remote_jid if from_me else "",
        "chatId": remote_jid,
        "ackName": status,
        "timestamp": _timestamp(data.get("messageTimestamp")),
    }
