"""
Tests for work item decoding, validation and the derived-key rule.
"""

import json

import pytest

from thumbnailer.constants import WorkItem
from thumbnailer.message import decode_work_item, derive_key, encode_work_item, unwrap_body, validate_work_item


class TestValidateWorkItem:

    def test_valid(self):
        assert validate_work_item({"bucket": "b1", "key": "raw-images/a.png"}) == WorkItem("b1", "raw-images/a.png")

    def test_work_item_is_immutable(self):
        item = validate_work_item({"bucket": "b1", "key": "k"})

        with pytest.raises(AttributeError):
            item.key = "other"

    @pytest.mark.parametrize("payload, expected_error", [
        ({"key": "k"}, "Missing required fields: bucket"),
        ({"bucket": "b1"}, "Missing required fields: key"),
        ({"bucket": 1, "key": "k"}, "bucket must be str"),
        ({"bucket": "b1", "key": None}, "key must be str"),
        ({"bucket": " ", "key": "k"}, "bucket must not be empty"),
        ({"bucket": "b1", "key": ""}, "key must not be empty"),
        (["b1", "k"], "Message must be a dict"),
    ])
    def test_invalid(self, payload, expected_error):
        with pytest.raises(ValueError, match=expected_error):
            validate_work_item(payload)

    def test_allowlist(self):
        assert validate_work_item({"bucket": "b1", "key": "k"}, ["b1"]).bucket == "b1"
        with pytest.raises(ValueError, match="Bucket not allowed"):
            validate_work_item({"bucket": "b2", "key": "k"}, ["b1"])

    def test_empty_allowlist_accepts_any_bucket(self):
        assert validate_work_item({"bucket": "anything", "key": "k"}, []).bucket == "anything"


class TestDecodeEncode:

    def test_decode(self):
        assert decode_work_item('{"bucket":"b1","key":"raw-images/foo.png"}') == WorkItem("b1", "raw-images/foo.png")

    def test_decode_applies_allowlist(self):
        with pytest.raises(ValueError, match="Bucket not allowed"):
            decode_work_item('{"bucket":"b2","key":"k"}', ["b1"])

    def test_sns_envelope_is_unwrapped(self):
        envelope = {"Type": "Notification", "Message": json.dumps({"bucket": "b1", "key": "k"})}

        assert decode_work_item(json.dumps(envelope)) == WorkItem("b1", "k")

    def test_envelope_unwrapping_can_be_disabled(self):
        envelope = {"Type": "Notification", "Message": "{}"}

        assert unwrap_body(json.dumps(envelope), allow_sns_envelope=False)["Type"] == "Notification"

    @pytest.mark.parametrize("body, expected_error", [
        ("", "body is empty"),
        (None, "body is empty"),
        ("{", "not JSON"),
        ("null", "must be a JSON object"),
        ("[1, 2]", "must be a JSON object"),
        (json.dumps({"Message": "{"}), "SNS envelope carries invalid JSON"),
        (json.dumps({"Message": "[]"}), "must be a JSON object"),
    ])
    def test_decode_invalid(self, body, expected_error):
        with pytest.raises(ValueError, match=expected_error):
            decode_work_item(body)

    def test_encode_has_only_bucket_and_key(self):
        assert json.loads(encode_work_item(WorkItem("b1", "k"))) == {"bucket": "b1", "key": "k"}


class TestDeriveKey:

    def test_prefix_is_swapped(self):
        assert derive_key("raw-images/a/b.png", "raw-images/", "thumbnails/") == "thumbnails/a/b.png"

    def test_no_prefix_is_noop(self):
        assert derive_key("other/x.png", "raw-images/", "thumbnails/") == "other/x.png"

    def test_only_first_occurrence_is_replaced(self):
        assert derive_key("raw-images/raw-images/x.png", "raw-images/", "thumbnails/") == "thumbnails/raw-images/x.png"

    def test_is_deterministic(self):
        key = "raw-images/2024/cat.jpg"
        assert derive_key(key, "raw-images/", "thumbnails/") == derive_key(key, "raw-images/", "thumbnails/")
