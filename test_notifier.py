"""
Tests for the S3-event notifier and the SNS adapter it publishes through.
"""

import json

import boto3
import pytest
from botocore.stub import Stubber

from thumbnailer import notifier
from thumbnailer.constants import WorkItem
from thumbnailer.io_sns import SNSClient
from thumbnailer.notifier import Notifier, parse_s3_event

TOPIC_ARN = "arn:aws:sns:us-east-1:123456789012:uploads"


def s3_event(bucket="b1", key="raw-images/foo.png", extra_records=0):
    record = {
        "eventSource": "aws:s3",
        "eventName": "ObjectCreated:Put",
        "s3": {"bucket": {"name": bucket}, "object": {"key": key, "size": 10}},
    }
    return {"Records": [record] + [dict(record) for _ in range(extra_records)]}


class FakePublisher:
    def __init__(self, fail=False):
        self.fail = fail
        self.published = []

    def publish(self, topic_arn, payload):
        if self.fail:
            raise ConnectionError("sns unreachable")
        self.published.append((topic_arn, payload))
        return f"msg-{len(self.published)}"


class TestParseS3Event:

    def test_first_record(self):
        assert parse_s3_event(s3_event()) == WorkItem("b1", "raw-images/foo.png")

    def test_extra_records_are_ignored(self):
        event = s3_event(extra_records=1)
        event["Records"][1] = {"s3": {"bucket": {"name": "b2"}, "object": {"key": "x"}}}

        assert parse_s3_event(event).bucket == "b1"

    def test_key_is_url_decoded(self):
        assert parse_s3_event(s3_event(key="raw-images/my%20cat%2B1.png")).key == "raw-images/my cat+1.png"

    def test_plus_is_a_space(self):
        assert parse_s3_event(s3_event(key="raw-images/my+photo.png")).key == "raw-images/my photo.png"

    @pytest.mark.parametrize("event", [{}, {"Records": []}, None])
    def test_no_record(self, event):
        with pytest.raises(ValueError, match="No S3 record"):
            parse_s3_event(event)

    def test_malformed_record(self):
        with pytest.raises(ValueError, match="Malformed S3 record"):
            parse_s3_event({"Records": [{"s3": {"bucket": {"name": "b1"}}}]})


class TestNotifier:

    def test_publishes_bucket_and_key(self):
        pub = FakePublisher()

        message_id = Notifier(pub, TOPIC_ARN).notify(s3_event())

        assert message_id == "msg-1"
        assert pub.published == [(TOPIC_ARN, {"bucket": "b1", "key": "raw-images/foo.png"})]

    def test_publish_failure_propagates(self):
        with pytest.raises(ConnectionError):
            Notifier(FakePublisher(fail=True), TOPIC_ARN).notify(s3_event())

    def test_topic_required(self):
        with pytest.raises(ValueError):
            Notifier(FakePublisher(), "")


class TestHandler:

    def test_handler_ok(self, monkeypatch):
        pub = FakePublisher()
        monkeypatch.setattr(notifier, "_default_notifier", Notifier(pub, TOPIC_ARN))

        assert notifier.handler(s3_event(), None) == {"statusCode": 200, "body": "OK"}
        assert len(pub.published) == 1

    def test_handler_reraises(self, monkeypatch):
        monkeypatch.setattr(notifier, "_default_notifier", Notifier(FakePublisher(), TOPIC_ARN))

        with pytest.raises(ValueError, match="No S3 record"):
            notifier.handler({"Records": []}, None)

    def test_handler_without_topic_fails(self, monkeypatch):
        monkeypatch.setattr(notifier, "_default_notifier", None)
        monkeypatch.delenv("TOPIC_ARN", raising=False)
        monkeypatch.delenv("WORKER_CONFIG", raising=False)

        with pytest.raises(ValueError, match="TOPIC_ARN"):
            notifier.handler(s3_event(), None)


class TestSNSClient:

    @pytest.fixture
    def stubbed(self):
        client = boto3.client("sns", region_name="us-east-1",
                              aws_access_key_id="testing", aws_secret_access_key="testing")
        with Stubber(client) as stubber:
            yield SNSClient(sns_client=client), stubber
            stubber.assert_no_pending_responses()

    def test_publish(self, stubbed):
        sns, stubber = stubbed
        stubber.add_response(
            "publish",
            {"MessageId": "abc-123"},
            {"TopicArn": TOPIC_ARN, "Message": json.dumps({"bucket": "b1", "key": "k"})},
        )

        assert sns.publish(TOPIC_ARN, {"bucket": "b1", "key": "k"}) == "abc-123"

    def test_publish_retries_throttling(self, stubbed, monkeypatch):
        monkeypatch.setattr("thumbnailer.retry.backoff_delay", lambda attempt: 0)
        sns, stubber = stubbed
        stubber.add_client_error("publish", service_error_code="Throttling", http_status_code=400)
        stubber.add_response("publish", {"MessageId": "abc-456"})

        assert sns.publish(TOPIC_ARN, {"bucket": "b1", "key": "k"}) == "abc-456"

    def test_publish_non_retriable_error_raises(self, stubbed):
        from botocore.exceptions import ClientError

        sns, stubber = stubbed
        stubber.add_client_error("publish", service_error_code="NotFound", http_status_code=404)

        with pytest.raises(ClientError):
            sns.publish(TOPIC_ARN, {"bucket": "b1", "key": "k"})

    def test_invalid_topic(self, stubbed):
        sns, _ = stubbed

        with pytest.raises(ValueError):
            sns.publish("not-an-arn", {"bucket": "b1", "key": "k"})
