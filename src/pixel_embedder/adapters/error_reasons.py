"""Mapping of canvas server rejections to error kinds."""

from pixel_embedder.domain.pixels import ErrorKind

_CODE_KINDS: dict[str, ErrorKind] = {
    "RATE_LIMITED": ErrorKind.RATE_LIMITED,
    "RATE_LIMIT": ErrorKind.RATE_LIMITED,
    "BURST_LIMITED": ErrorKind.BURST_LIMITED,
    "BURST_LIMIT": ErrorKind.BURST_LIMITED,
    "QUOTA_EXHAUSTED": ErrorKind.QUOTA_EXHAUSTED,
    "INSUFFICIENT_CREDITS": ErrorKind.QUOTA_EXHAUSTED,
    "NO_CREDITS": ErrorKind.QUOTA_EXHAUSTED,
}

_STATUS_KINDS: dict[int, ErrorKind] = {
    402: ErrorKind.QUOTA_EXHAUSTED,
    429: ErrorKind.RATE_LIMITED,
}


def classify_message(message: str | None) -> ErrorKind:
    """Classify a free-text server error message.

    Rules are checked in order, so "burst limit" wins over the generic
    "limit" rule.
    """
    text = (message or "").lower()
    if "burst limit" in text:
        return ErrorKind.BURST_LIMITED
    if "rate" in text or "limit" in text:
        return ErrorKind.RATE_LIMITED
    if "credit" in text:
        return ErrorKind.QUOTA_EXHAUSTED
    return ErrorKind.UNKNOWN


def classify_reply(
    status_code: int | None, code: str | None, message: str | None
) -> ErrorKind:
    """Classify a rejection, preferring structured signals over text."""
    if code:
        kind = _CODE_KINDS.get(code.strip().upper())
        if kind is not None:
            return kind
    kind = classify_message(message)
    if kind is not ErrorKind.UNKNOWN:
        return kind
    if status_code is not None:
        return _STATUS_KINDS.get(status_code, ErrorKind.UNKNOWN)
    return ErrorKind.UNKNOWN
