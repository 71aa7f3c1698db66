"""
Activity events emitted by the scoring engine.

Events are the audit trail for scoring runs, AI degradations, per-supplier
failures and buyer overrides. A sink decides where they go: the in-memory
sink keeps them for the caller (and tests), the Slack sink posts them as
thread replies under one parent message per sink.
"""

import threading
from enum import Enum
from typing import Any, Dict, List, Optional
from dataclasses import dataclass, field, asdict

from slack_sdk import WebClient
from slack_sdk.errors import SlackApiError

from rfp_utils.vault import secrets
from rfp_utils.core.log import get_logger
from rfp_utils.core.clock import utc_timestamp


class ActivityEventType(str, Enum):
    AUTO_SCORE_RUN = "AUTO_SCORE_RUN"
    AUTO_SCORE_REGENERATED = "AUTO_SCORE_REGENERATED"
    AUTO_SCORE_AI_FAILURE = "AUTO_SCORE_AI_FAILURE"
    AUTO_SCORE_SUPPLIER_FAILED = "AUTO_SCORE_SUPPLIER_FAILED"
    AUTO_SCORE_OVERRIDDEN = "AUTO_SCORE_OVERRIDDEN"


@dataclass
class ActivityEvent:
    event_type: ActivityEventType
    summary: str
    actor_role: str = "SYSTEM"
    rfp_id: Optional[str] = None
    supplier_response_id: Optional[str] = None
    user_id: Optional[str] = None
    details: Dict[str, Any] = field(default_factory=dict)
    timestamp: str = field(default_factory=utc_timestamp)

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["event_type"] = self.event_type.value
        return data


class ActivitySink:
    """Destination for activity events."""

    def record(self, event: ActivityEvent) -> None:
        raise NotImplementedError


class MemoryActivitySink(ActivitySink):
    """Keeps events in process; safe to share between tasks and threads."""

    def __init__(self):
        self._lock = threading.Lock()
        self._events: List[ActivityEvent] = []

    def record(self, event: ActivityEvent) -> None:
        with self._lock:
            self._events.append(event)

    @property
    def events(self) -> List[ActivityEvent]:
        with self._lock:
            return list(self._events)

    def of_type(self, event_type: ActivityEventType) -> List[ActivityEvent]:
        return [e for e in self.events if e.event_type == event_type]


@dataclass
class SlackActivityMeta:
    tool: str
    user: str
    rfp_id: Optional[str] = None
    environment: str = ""
    company: Optional[str] = None


class SlackActivitySink(ActivitySink):
    """
    Posts events to Slack:
      - start(): parent message (header line)
      - record(): one thread reply per event
    """

    def __init__(
        self,
        meta: SlackActivityMeta,
        channel_id: Optional[str] = None,
        token: Optional[str] = None,
        client: Optional[WebClient] = None,
        thread_ts: Optional[str] = None,
    ):
        token = token or secrets.slack_token()
        self.channel_id = channel_id or secrets.slack_channel_id()
        if client is None and (not token or not self.channel_id):
            raise EnvironmentError("Missing SLACK_TOKEN or CHANNEL_ID")
        if not meta.environment:
            meta.environment = secrets.environment()
        self.meta = meta
        self._client = client or WebClient(token=token)
        self.thread_ts = thread_ts
        self._lock = threading.Lock()

    @property
    def header_text(self) -> str:
        company = self.meta.company or "-"
        rfp = self.meta.rfp_id or "-"
        return (
            f"ENV={self.meta.environment} | USER={self.meta.user} | "
            f"TOOL={self.meta.tool} | RFP={rfp} | COMPANY={company}"
        )

    def start(self) -> str:
        """Post the parent message and capture thread_ts."""
        resp = self._client.chat_postMessage(
            channel=self.channel_id, text=self.header_text
        )
        self.thread_ts = resp["ts"]
        return self.thread_ts

    @staticmethod
    def format_event(event: ActivityEvent) -> str:
        who = event.user_id or event.actor_role
        line = f"{event.event_type.value} - {event.summary} (by {who})"
        if event.event_type in (
            ActivityEventType.AUTO_SCORE_AI_FAILURE,
            ActivityEventType.AUTO_SCORE_SUPPLIER_FAILED,
        ):
            err = event.details.get("error")
            if err:
                line += f" - ERROR: {err}"
        return line

    def record(self, event: ActivityEvent) -> None:
        with self._lock:
            if not self.thread_ts:
                self.start()
        self._client.chat_postMessage(
            channel=self.channel_id,
            text=self.format_event(event),
            thread_ts=self.thread_ts,
        )


def record_activity(sink: Optional[ActivitySink], event: ActivityEvent) -> None:
    """
    Log an activity event and hand it to ``sink``.

    A failing sink is logged and does not interrupt scoring.
    """
    logger = get_logger()
    logger.info(f"[activity] {event.event_type.value}: {event.summary}")
    if sink is None:
        return
    try:
        sink.record(event)
    except SlackApiError as e:
        err = getattr(e, "response", {}).get("error", str(e))
        logger.error(f"Slack activity post failed for {event.event_type.value}: {err}")
    except Exception:
        logger.exception(f"Activity sink failed for {event.event_type.value}")
