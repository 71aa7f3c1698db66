import re

from rfp_utils.core.activity import ActivityEvent, ActivityEventType
from rfp_utils.core.clock import utc_timestamp
from rfp_utils.core.errors import _make_error_payload

ISO_MILLIS_Z = re.compile(r"^\d{4}-\d{2}-\d{2}T\d{2}:\d{2}:\d{2}\.\d{3}Z$")


def test_utc_timestamp_format():
    assert ISO_MILLIS_Z.match(utc_timestamp())


def test_events_and_error_payloads_share_the_timestamp_format():
    event = ActivityEvent(event_type=ActivityEventType.AUTO_SCORE_RUN, summary="ran")
    payload = _make_error_payload("score_supplier", ValueError("boom"))
    assert ISO_MILLIS_Z.match(event.timestamp)
    assert ISO_MILLIS_Z.match(payload["timestamp"])
