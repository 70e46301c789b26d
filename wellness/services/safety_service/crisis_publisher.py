"""Crisis event publisher.

CRITICAL classifications are pushed to a Kinesis stream so human
follow-up happens outside the request path. Publishing is best effort:
the user already has the static crisis reply, so every failure is logged
at CRITICAL with the full event for manual processing and reported as
False, never raised.
"""
import json
import logging
import os
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional

import boto3

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CrisisDetectedEvent:
    """Immutable crisis event published for follow-up processing."""
    event_id: str
    event_type: str = "wellness.crisis.detected"
    session_id_hash: str = ""
    user_id_hash: Optional[str] = None
    level: str = "CRITICAL"
    confidence: float = 0.0
    triggers: List[str] = field(default_factory=list)
    contacts_provided: List[str] = field(default_factory=list)
    follow_up_needed: bool = True
    pattern_version: str = ""
    timestamp: datetime = field(default_factory=datetime.utcnow)

    @classmethod
    def new(cls, **fields: Any) -> "CrisisDetectedEvent":
        return cls(event_id=f"evt_{uuid.uuid4().hex[:12]}", **fields)

    def to_kinesis_payload(self) -> Dict[str, Any]:
        return {
            "event_id": self.event_id,
            "event_type": self.event_type,
            "timestamp": self.timestamp.isoformat() + "Z",
            "source": "therapy-service",
            "data": {
                "session_id_hash": self.session_id_hash,
                "user_id_hash": self.user_id_hash,
                "level": self.level,
                "confidence": self.confidence,
                "triggers": self.triggers,
                "contacts_provided": self.contacts_provided,
                "follow_up_needed": self.follow_up_needed,
                "pattern_version": self.pattern_version,
            }
        }

    def to_record(self) -> Dict[str, str]:
        """Kinesis record; events of one session share a shard."""
        return {
            "Data": json.dumps(self.to_kinesis_payload()),
            "PartitionKey": self.session_id_hash,
        }


class CrisisEventPublisher:
    """Publishes CrisisDetectedEvent records to Kinesis.

    With enabled=False (local development) nothing is sent and no AWS
    client is created.
    """

    def __init__(
        self,
        stream_name: str = "wellness-crisis-events",
        enabled: bool = True,
        region: Optional[str] = None,
    ):
        self.stream_name = stream_name
        self.enabled = enabled
        self.region = region or os.getenv("AWS_REGION", "us-east-1")
        self._kinesis_client = None

        logger.info(
            "CRISIS_PUBLISHER_INITIALIZED",
            extra={
                "stream_name": stream_name,
                "enabled": enabled,
                "region": self.region,
            }
        )

    @property
    def kinesis_client(self):
        """Kinesis client, created on first use; None if creation fails."""
        if self._kinesis_client is None and self.enabled:
            try:
                self._kinesis_client = boto3.client("kinesis", region_name=self.region)
            except Exception as e:
                logger.error(
                    "KINESIS_CLIENT_INIT_FAILED",
                    extra={"error": str(e), "error_type": type(e).__name__}
                )
        return self._kinesis_client

    def _manual_follow_up(self, event: CrisisDetectedEvent, reason: str, **extra: Any) -> None:
        logger.critical(
            "CRISIS_EVENT_NOT_PUBLISHED",
            extra={
                "event_id": event.event_id,
                "session_id_hash": event.session_id_hash,
                "reason": reason,
                "action": "MANUAL_PROCESSING_REQUIRED",
                "payload": json.dumps(event.to_kinesis_payload()),
                **extra,
            }
        )

    def publish(self, event: CrisisDetectedEvent) -> bool:
        """Send one event. True only when Kinesis accepted it."""
        if not self.enabled:
            logger.info(
                "CRISIS_PUBLISH_SKIPPED",
                extra={
                    "event_id": event.event_id,
                    "session_id_hash": event.session_id_hash,
                    "reason": "publishing_disabled",
                }
            )
            return False

        client = self.kinesis_client
        if client is None:
            self._manual_follow_up(event, "kinesis_client_unavailable")
            return False

        try:
            response = client.put_record(StreamName=self.stream_name, **event.to_record())
        except Exception as e:
            self._manual_follow_up(
                event,
                "put_record_failed",
                error=str(e),
                error_type=type(e).__name__,
            )
            return False

        logger.critical(
            "CRISIS_EVENT_PUBLISHED",
            extra={
                "event_id": event.event_id,
                "session_id_hash": event.session_id_hash,
                "shard_id": response.get("ShardId"),
                "sequence_number": response.get("SequenceNumber"),
            }
        )
        return True

    def publish_crisis(
        self,
        session_id_hash: str,
        level: str,
        confidence: float,
        triggers: List[str],
        pattern_version: str,
        contacts_provided: Optional[List[str]] = None,
        user_id_hash: Optional[str] = None,
    ) -> bool:
        """Build and publish a crisis event.

        Args:
            session_id_hash: Hashed session identifier
            level: Crisis level value
            confidence: Classifier confidence
            triggers: Keywords that matched
            pattern_version: Keyword table version for audit
            contacts_provided: Names of resources shown to the user
            user_id_hash: Hashed user identifier, None for anonymous sessions

        Returns:
            True if published, False otherwise
        """
        return self.publish(CrisisDetectedEvent.new(
            session_id_hash=session_id_hash,
            user_id_hash=user_id_hash,
            level=level,
            confidence=confidence,
            triggers=list(triggers),
            contacts_provided=list(contacts_provided or []),
            pattern_version=pattern_version,
        ))

    def publish_batch(self, events: List[CrisisDetectedEvent]) -> int:
        """Send several events with one put_records call.

        Returns:
            Number of events Kinesis accepted
        """
        if not self.enabled or not events:
            return 0

        client = self.kinesis_client
        if client is None:
            for event in events:
                self._manual_follow_up(event, "kinesis_client_unavailable")
            return 0

        try:
            response = client.put_records(
                StreamName=self.stream_name,
                Records=[event.to_record() for event in events],
            )
        except Exception as e:
            for event in events:
                self._manual_follow_up(
                    event,
                    "put_records_failed",
                    error=str(e),
                    error_type=type(e).__name__,
                )
            return 0

        # Results are positional; failed entries carry an ErrorCode
        results = response.get("Records", [])
        for event, result in zip(events, results):
            if result.get("ErrorCode"):
                self._manual_follow_up(event, "record_rejected", error=result["ErrorCode"])

        failed_count = response.get("FailedRecordCount", 0)

        logger.info(
            "CRISIS_BATCH_PUBLISHED",
            extra={
                "total": len(events),
                "success": len(events) - failed_count,
                "failed": failed_count,
            }
        )
        return len(events) - failed_count
