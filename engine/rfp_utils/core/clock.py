from datetime import datetime, UTC


def utc_timestamp() -> str:
    """UTC now as ISO-8601 with millisecond precision and a ``Z`` suffix."""
    return datetime.now(UTC).isoformat(timespec="milliseconds").replace("+00:00", "Z")
