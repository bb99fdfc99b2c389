"""
pytest fixtures and in-memory fakes for the queue and the object store.

The fakes mirror the SQSClient / S3Storage methods the worker calls and
record every call, so tests can assert on ordering and arguments.
"""

import json
import threading
import time
from io import BytesIO

import pytest
from PIL import Image


class FakeQueue:
    def __init__(self, messages=None, journal=None, receive_errors=0,
                 fail_delete=False, fail_extend=False):
        self._lock = threading.Lock()
        self.pending = list(messages or [])
        self.journal = journal if journal is not None else []
        self.receive_errors = receive_errors
        self.fail_delete = fail_delete
        self.fail_extend = fail_extend
        self.receive_calls = []   # (monotonic time, kwargs)
        self.deleted = []
        self.extended = []        # (receipt, seconds)

    def receive_messages(self, queue_url, max_messages=1, wait_seconds=20, visibility_timeout=None):
        with self._lock:
            self.receive_calls.append((time.monotonic(), {
                "queue_url": queue_url,
                "max_messages": max_messages,
                "wait_seconds": wait_seconds,
                "visibility_timeout": visibility_timeout,
            }))
            if self.receive_errors > 0:
                self.receive_errors -= 1
                raise ConnectionError("queue unavailable")
            if self.pending:
                return [self.pending.pop(0)]
        # stand-in for an empty long-poll
        time.sleep(0.01)
        return []

    def delete_message(self, queue_url, receipt_handle):
        if self.fail_delete:
            raise RuntimeError("delete failed")
        with self._lock:
            self.deleted.append(receipt_handle)
            self.journal.append(("delete", receipt_handle))

    def change_visibility(self, queue_url, receipt_handle, visibility_timeout):
        if self.fail_extend:
            raise RuntimeError("change_visibility failed")
        with self._lock:
            self.extended.append((receipt_handle, visibility_timeout))
            self.journal.append(("extend", receipt_handle))


class FakeStorage:
    def __init__(self, objects=None, journal=None, fail_get=False, fail_put=False):
        self._lock = threading.Lock()
        self.objects = dict(objects or {})   # (bucket, key) -> bytes
        self.content_types = {}
        self.journal = journal if journal is not None else []
        self.fail_get = fail_get
        self.fail_put = fail_put
        self.puts = []

    def get_bytes(self, bucket, key):
        if self.fail_get:
            raise ConnectionError("s3 unreachable")
        try:
            return self.objects[(bucket, key)]
        except KeyError:
            raise FileNotFoundError(f"File not found: s3://{bucket}/{key}")

    def put_bytes(self, bucket, key, data, content_type):
        if self.fail_put:
            raise ConnectionError("s3 unreachable")
        with self._lock:
            self.objects[(bucket, key)] = data
            self.content_types[(bucket, key)] = content_type
            self.puts.append((bucket, key))
            self.journal.append(("put", key))
        return f"s3://{bucket}/{key}"


def make_raw(payload, receipt="rh-1", receive_count=1, message_id="m-1"):
    """Build an SQS message dict the way receive_message returns it."""
    body = payload if isinstance(payload, str) else json.dumps(payload)
    return {
        "MessageId": message_id,
        "ReceiptHandle": receipt,
        "Body": body,
        "Attributes": {"ApproximateReceiveCount": str(receive_count)},
    }


def image_bytes(size=(10, 10), fmt="PNG", mode="RGB", color=(200, 40, 40)):
    buf = BytesIO()
    Image.new(mode, size, color).save(buf, format=fmt)
    return buf.getvalue()


@pytest.fixture
def journal():
    return []


@pytest.fixture
def source_png():
    return image_bytes()
