from collections.abc import Iterable

DEFAULT_ALLOWED_TYPES: tuple[str, ...] = ("video/mp4", "video/mpeg")

# Bytes handed to libmagic when no content type was declared
SNIFF_BYTES = 8192


def normalize_mime(content_type: str | None) -> str:
    """Lower-case a content type and drop parameters (`; charset=...`)."""
    if not content_type:
        return ""
    return content_type.split(";", 1)[0].strip().lower()


def sniff_mime(head: bytes) -> str:
    """Determine the MIME type of a buffer with libmagic."""
    import magic

    # Create a Magic object
    mime = magic.Magic(mime=True)

    # Determine the file type
    file_type = mime.from_buffer(head)
    return file_type or "application/octet-stream"


def is_supported(content_type: str | None, allowed: Iterable[str] = DEFAULT_ALLOWED_TYPES) -> bool:
    mime = normalize_mime(content_type)
    if not mime:
        return False
    return mime in {normalize_mime(a) for a in allowed}
