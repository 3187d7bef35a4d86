"""Best-effort content-type and file-extension classification for media.

Nothing here raises: an unrecognized input falls through to UNKNOWN_EXTENSION
or to the message type's default extension.
"""

UNKNOWN_EXTENSION = "bin"

CONTENT_TYPE_EXTENSIONS = {
    "image/jpeg": "jpg",
    "image/png": "png",
    "image/webp": "webp",
    "image/gif": "gif",
    "audio/ogg": "ogg",
    "audio/mpeg": "mp3",
    "audio/mp4": "m4a",
    "audio/aac": "aac",
    "video/mp4": "mp4",
    "video/3gpp": "3gp",
    "application/pdf": "pdf",
    "application/msword": "doc",
    "application/vnd.openxmlformats-officedocument.wordprocessingml.document": "docx",
}

MESSAGE_TYPE_EXTENSIONS = {
    "image": "jpg",
    "audio": "ogg",
    "video": "mp4",
    "document": UNKNOWN_EXTENSION,
}

# Leading bytes of common media containers
_MAGIC_BYTES = (
    (b"\xff\xd8\xff", "image/jpeg"),
    (b"\x89PNG\r\n\x1a\n", "image/png"),
    (b"GIF87a", "image/gif"),
    (b"GIF89a", "image/gif"),
    (b"OggS", "audio/ogg"),
    (b"ID3", "audio/mpeg"),
    (b"%PDF", "application/pdf"),
)


def sniff_content_type(data: bytes) -> str | None:
    """Guess a content type from the first bytes of a file."""
    if data[:4] == b"RIFF" and data[8:12] == b"WEBP":
        return "image/webp"
    if data[4:8] == b"ftyp":
        return "video/mp4"
    for magic, content_type in _MAGIC_BYTES:
        if data.startswith(magic):
            return content_type
    return None


def extension_for(content_type: str | None, message_type: str | None = None) -> str:
    """File extension for a content type, falling back to the message type.

    Tries an exact match on the bare media type, then a partial match on its
    subtype (so "audio/ogg; codecs=opus" and "image/x-png" still resolve).
    """
    if content_type:
        bare = content_type.split(";", 1)[0].strip().lower()
        if bare in CONTENT_TYPE_EXTENSIONS:
            return CONTENT_TYPE_EXTENSIONS[bare]
        for known, extension in CONTENT_TYPE_EXTENSIONS.items():
            subtype = known.split("/", 1)[1]
            if subtype in bare:
                return extension
    return MESSAGE_TYPE_EXTENSIONS.get(message_type or "", UNKNOWN_EXTENSION)
