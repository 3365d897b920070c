"""MIME type checks used when serving stored values."""


def accept_header_matches(header: str, mime_type: str) -> bool:
    """
    Check whether an Accept header admits a stored MIME type.

    Matching is deliberately loose: a header listing the exact type or
    ``*/*`` anywhere matches, and ``type/*`` wildcards on either side match
    by prefix.

    Args:
        header: Raw Accept header value
        mime_type: MIME type the value was stored with

    Returns:
        True if the value may be served
    """
    if mime_type in header or "*/*" in header:
        return True

    if mime_type.endswith("/*"):
        base_type = mime_type[:-2]
        return header.startswith(base_type) or header.startswith(f"{base_type}/")

    if header.endswith("/*"):
        base_type = header[:-2]
        return mime_type.startswith(base_type) or mime_type.startswith(f"{base_type}/")

    return False


def is_generic_mime(mime_type: str) -> bool:
    """
    Check whether a MIME type is too generic to store a value under.

    Empty types, ``*/*`` and ``type/*`` wildcards describe a range rather
    than a concrete type.
    """
    mime_type = mime_type.strip()
    return not mime_type or mime_type == "*/*" or mime_type.endswith("/*")
