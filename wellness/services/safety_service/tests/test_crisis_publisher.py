"""Tests for CrisisEventPublisher.

Publishing is best-effort: failures are logged, never raised.
"""
import json
import pytest
from unittest.mock import patch, MagicMock

from wellness.services.safety_service.crisis_publisher import (
    CrisisEventPublisher,
    CrisisDetectedEvent,
)


def _publish(publisher, **overrides):
    kwargs = dict(
        session_id_hash="hash_sess",
        level="CRITICAL",
        confidence=0.9,
        triggers=["quero morrer"],
        pattern_version="2025.01.1",
    )
    kwargs.update(overrides)
    return publisher.publish_crisis(**kwargs)


class TestCrisisDetectedEvent:
    """Tests for CrisisDetectedEvent dataclass."""

    def test_event_defaults(self):
        event = CrisisDetectedEvent(event_id="evt_1", session_id_hash="hash_sess")

        assert event.event_type == "wellness.crisis.detected"
        assert event.level == "CRITICAL"
        assert event.follow_up_needed is True
        assert event.user_id_hash is None

    def test_event_to_kinesis_payload(self):
        event = CrisisDetectedEvent(
            event_id="evt_1",
            session_id_hash="hash_sess",
            user_id_hash="hash_user",
            confidence=0.9,
            triggers=["suicide"],
            contacts_provided=["CVV - Centro de Valorização da Vida"],
            pattern_version="2025.01.1",
        )

        payload = event.to_kinesis_payload()

        assert payload["event_id"] == "evt_1"
        assert payload["event_type"] == "wellness.crisis.detected"
        assert payload["source"] == "therapy-service"
        assert payload["timestamp"].endswith("Z")
        assert payload["data"]["session_id_hash"] == "hash_sess"
        assert payload["data"]["user_id_hash"] == "hash_user"
        assert payload["data"]["triggers"] == ["suicide"]
        assert payload["data"]["pattern_version"] == "2025.01.1"

    def test_event_is_immutable(self):
        event = CrisisDetectedEvent(event_id="evt_1")

        with pytest.raises(Exception):  # FrozenInstanceError
            event.level = "LOW"


class TestCrisisEventPublisher:
    """Tests for CrisisEventPublisher."""

    def test_publisher_initialization(self):
        publisher = CrisisEventPublisher(
            stream_name="test-stream",
            enabled=True,
            region="sa-east-1",
        )

        assert publisher.stream_name == "test-stream"
        assert publisher.enabled is True
        assert publisher.region == "sa-east-1"

    def test_publish_disabled_returns_false(self):
        publisher = CrisisEventPublisher(enabled=False)

        assert _publish(publisher) is False

    def test_disabled_publisher_never_creates_client(self):
        publisher = CrisisEventPublisher(enabled=False)

        assert publisher.kinesis_client is None

    def test_publish_success(self):
        mock_kinesis = MagicMock()
        mock_kinesis.put_record.return_value = {
            "ShardId": "shard-001",
            "SequenceNumber": "12345",
        }
        publisher = CrisisEventPublisher(stream_name="test-stream", enabled=True)
        publisher._kinesis_client = mock_kinesis

        result = _publish(publisher, contacts_provided=["CVV"], user_id_hash="hash_user")

        assert result is True
        mock_kinesis.put_record.assert_called_once()

        call_kwargs = mock_kinesis.put_record.call_args.kwargs
        assert call_kwargs["StreamName"] == "test-stream"
        assert call_kwargs["PartitionKey"] == "hash_sess"

        payload = json.loads(call_kwargs["Data"])
        assert payload["event_type"] == "wellness.crisis.detected"
        assert payload["data"]["contacts_provided"] == ["CVV"]
        assert payload["data"]["user_id_hash"] == "hash_user"

    def test_publish_failure_returns_false(self):
        mock_kinesis = MagicMock()
        mock_kinesis.put_record.side_effect = Exception("Kinesis error")
        publisher = CrisisEventPublisher(enabled=True)
        publisher._kinesis_client = mock_kinesis

        assert _publish(publisher) is False

    @patch('boto3.client')
    def test_publish_without_client_logs_fallback(self, mock_boto_client):
        mock_boto_client.side_effect = Exception("no credentials")
        publisher = CrisisEventPublisher(enabled=True)

        assert _publish(publisher) is False

    def test_publish_batch_success(self):
        mock_kinesis = MagicMock()
        mock_kinesis.put_records.return_value = {"FailedRecordCount": 1}
        publisher = CrisisEventPublisher(enabled=True)
        publisher._kinesis_client = mock_kinesis

        events = [
            CrisisDetectedEvent(event_id="evt_1", session_id_hash="hash_1"),
            CrisisDetectedEvent(event_id="evt_2", session_id_hash="hash_2"),
        ]

        assert publisher.publish_batch(events) == 1
        records = mock_kinesis.put_records.call_args.kwargs["Records"]
        assert [r["PartitionKey"] for r in records] == ["hash_1", "hash_2"]

    def test_publish_batch_empty_returns_zero(self):
        publisher = CrisisEventPublisher(enabled=True)

        assert publisher.publish_batch([]) == 0

    def test_publish_batch_error_returns_zero(self):
        mock_kinesis = MagicMock()
        mock_kinesis.put_records.side_effect = Exception("throttled")
        publisher = CrisisEventPublisher(enabled=True)
        publisher._kinesis_client = mock_kinesis

        events = [CrisisDetectedEvent(event_id="evt_1", session_id_hash="hash_1")]

        assert publisher.publish_batch(events) == 0

    def test_publish_batch_logs_rejected_records(self, caplog):
        mock_kinesis = MagicMock()
        mock_kinesis.put_records.return_value = {
            "FailedRecordCount": 1,
            "Records": [
                {"ShardId": "shard-001", "SequenceNumber": "1"},
                {"ErrorCode": "ProvisionedThroughputExceededException"},
            ],
        }
        publisher = CrisisEventPublisher(enabled=True)
        publisher._kinesis_client = mock_kinesis

        events = [
            CrisisDetectedEvent(event_id="evt_1", session_id_hash="hash_1"),
            CrisisDetectedEvent(event_id="evt_2", session_id_hash="hash_2"),
        ]

        with caplog.at_level("CRITICAL"):
            assert publisher.publish_batch(events) == 1

        rejected = [r for r in caplog.records if r.getMessage() == "CRISIS_EVENT_NOT_PUBLISHED"]
        assert [r.event_id for r in rejected] == ["evt_2"]

    def test_publish_prebuilt_event(self):
        mock_kinesis = MagicMock()
        mock_kinesis.put_record.return_value = {}
        publisher = CrisisEventPublisher(enabled=True)
        publisher._kinesis_client = mock_kinesis

        event = CrisisDetectedEvent.new(session_id_hash="hash_sess", level="CRITICAL")

        assert event.event_id.startswith("evt_")
        assert publisher.publish(event) is True
        assert mock_kinesis.put_record.call_args.kwargs["PartitionKey"] == "hash_sess"
