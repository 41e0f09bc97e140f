"""
Pytest configuration and fixtures for table-copy.

Provides in-process DynamoDB, S3 and Redis backends wired into a ClientPool,
plus event loop configuration and error helpers.
"""

import asyncio
import fnmatch
import io
import sys
import threading
import uuid

import pytest
from botocore.exceptions import ClientError

from copy_client import ClientPool
from table_copy import BackoffPolicy
from table_copy.codec import from_attribute_values, to_attribute_values

# Set policy *before* pytest-asyncio creates any loops
if sys.platform.startswith("win"):
    asyncio.set_event_loop_policy(asyncio.WindowsSelectorEventLoopPolicy())


def make_client_error(code: str, operation: str = "Operation") -> ClientError:
    return ClientError({"Error": {"Code": code, "Message": f"{code} (simulated)"}}, operation)


class FakeDynamoDB:
    """DynamoDB low-level client stand-in: scan, batch_write_item, describe_table.

    Items are assigned to scan segments by insertion position. Errors queued
    in scan_errors / write_errors are raised by the next calls; each entry
    of unprocessed_plan leaves that many items of the next batch unprocessed.
    """

    def __init__(self):
        self._lock = threading.Lock()
        self.tables = {}
        self.schemas = {}
        self.scan_calls = []
        self.batch_calls = []
        self.scan_errors = []
        self.write_errors = []
        self.unprocessed_plan = []

    def create_table(self, name, hash_key, range_key=None, attribute_types=None):
        key_schema = [{"AttributeName": hash_key, "KeyType": "HASH"}]
        if range_key:
            key_schema.append({"AttributeName": range_key, "KeyType": "RANGE"})
        types = {hash_key: "S", **({range_key: "S"} if range_key else {}), **(attribute_types or {})}
        self.schemas[name] = {
            "TableName": name,
            "KeySchema": key_schema,
            "AttributeDefinitions": [
                {"AttributeName": attr, "AttributeType": t} for attr, t in types.items()
            ],
        }
        self.tables[name] = {}

    def _key_names(self, name):
        return [k["AttributeName"] for k in self.schemas[name]["KeySchema"]]

    def _key(self, name, item):
        return tuple(str(item[k]) for k in self._key_names(name))

    def put(self, name, record):
        item = to_attribute_values(record)
        self.tables[name][self._key(name, item)] = item

    def records(self, name):
        return [from_attribute_values(item) for item in self.tables[name].values()]

    # ---------- client API ----------

    def describe_table(self, TableName):
        return {"Table": self.schemas[TableName]}

    def scan(self, **params):
        with self._lock:
            self.scan_calls.append(dict(params))
            if self.scan_errors:
                raise self.scan_errors.pop(0)
            name = params["TableName"]
            items = list(self.tables[name].values())
            segment = params.get("Segment", 0)
            total = params.get("TotalSegments", 1)
            mine = [item for i, item in enumerate(items) if i % total == segment]
            start = 0
            if "ExclusiveStartKey" in params:
                start_key = self._key(name, params["ExclusiveStartKey"])
                keys = [self._key(name, item) for item in mine]
                start = keys.index(start_key) + 1
            page = mine[start : start + params["Limit"]]
            resp = {"Items": page, "Count": len(page)}
            if start + params["Limit"] < len(mine):
                last = page[-1]
                resp["LastEvaluatedKey"] = {k: last[k] for k in self._key_names(name)}
            return resp

    def batch_write_item(self, RequestItems):
        with self._lock:
            self.batch_calls.append({t: list(reqs) for t, reqs in RequestItems.items()})
            if self.write_errors:
                raise self.write_errors.pop(0)
            unprocessed = {}
            for name, requests in RequestItems.items():
                n_left = self.unprocessed_plan.pop(0) if self.unprocessed_plan else 0
                cut = len(requests) - n_left
                for request in requests[:cut]:
                    item = request["PutRequest"]["Item"]
                    self.tables[name][self._key(name, item)] = item
                if requests[cut:]:
                    unprocessed[name] = requests[cut:]
            return {"UnprocessedItems": unprocessed}


class FakeS3:
    """S3 client stand-in covering the multipart upload and read paths."""

    def __init__(self):
        self._lock = threading.Lock()
        self.objects = {}
        self.uploads = {}
        self.aborted = []
        self.calls = []
        self.fail_on = {}

    def put(self, bucket, key, body: bytes, content_encoding=None):
        self.objects[(bucket, key)] = {"Body": body, "ContentEncoding": content_encoding}

    def _maybe_fail(self, op):
        self.calls.append(op)
        if op in self.fail_on:
            raise self.fail_on.pop(op)

    def head_object(self, Bucket, Key):
        self._maybe_fail("head_object")
        if (Bucket, Key) not in self.objects:
            raise make_client_error("404", "HeadObject")
        obj = self.objects[(Bucket, Key)]
        head = {"ContentLength": len(obj["Body"])}
        if obj["ContentEncoding"]:
            head["ContentEncoding"] = obj["ContentEncoding"]
        return head

    def get_object(self, Bucket, Key):
        self._maybe_fail("get_object")
        if (Bucket, Key) not in self.objects:
            raise make_client_error("NoSuchKey", "GetObject")
        return {"Body": io.BytesIO(self.objects[(Bucket, Key)]["Body"])}

    def create_multipart_upload(self, Bucket, Key, **kwargs):
        self._maybe_fail("create_multipart_upload")
        upload_id = uuid.uuid4().hex
        self.uploads[upload_id] = {"Bucket": Bucket, "Key": Key, "parts": {}, **kwargs}
        return {"UploadId": upload_id}

    def upload_part(self, Bucket, Key, UploadId, PartNumber, Body):
        self._maybe_fail("upload_part")
        with self._lock:
            self.uploads[UploadId]["parts"][PartNumber] = Body
        return {"ETag": f'"etag-{PartNumber}"'}

    def complete_multipart_upload(self, Bucket, Key, UploadId, MultipartUpload):
        self._maybe_fail("complete_multipart_upload")
        upload = self.uploads.pop(UploadId)
        body = b"".join(upload["parts"][p["PartNumber"]] for p in MultipartUpload["Parts"])
        self.put(Bucket, Key, body, upload.get("ContentEncoding"))
        return {"Bucket": Bucket, "Key": Key, "ETag": '"final"', "Location": f"s3://{Bucket}/{Key}"}

    def abort_multipart_upload(self, Bucket, Key, UploadId):
        self.calls.append("abort_multipart_upload")
        self.uploads.pop(UploadId, None)
        self.aborted.append(UploadId)
        return {}


class FakeRedis:
    """Async Redis stand-in with hash commands and SCAN iteration."""

    def __init__(self):
        self.hashes = {}
        self.hset_calls = 0
        self.closed = False
        self.fail_hgetall = None

    async def hset(self, key, mapping):
        await asyncio.sleep(0)
        self.hset_calls += 1
        self.hashes.setdefault(key, {}).update(mapping)
        return len(mapping)

    async def hgetall(self, key):
        await asyncio.sleep(0)
        if self.fail_hgetall is not None:
            raise self.fail_hgetall
        return dict(self.hashes.get(key, {}))

    async def scan_iter(self, match=None, count=None):
        for key in list(self.hashes):
            if match is None or fnmatch.fnmatchcase(key, match):
                yield key

    async def aclose(self):
        self.closed = True


@pytest.fixture
def fake_dynamodb():
    return FakeDynamoDB()


@pytest.fixture
def fake_s3():
    return FakeS3()


@pytest.fixture
def fake_redis():
    return FakeRedis()


@pytest.fixture
def pool(fake_dynamodb, fake_s3, fake_redis):
    """ClientPool whose factories hand out the in-process backends."""
    return ClientPool(
        dynamodb_factory=lambda region, endpoint: fake_dynamodb,
        s3_factory=lambda region, endpoint: fake_s3,
        redis_factory=lambda host, port, db: fake_redis,
    )


@pytest.fixture
def client_error():
    """Factory for botocore ClientErrors with a given error code."""
    return make_client_error


@pytest.fixture
def fast_backoff():
    """Factory for backoff policies with millisecond-scale delays."""

    def _make(base_ms=1, max_ms=4):
        return BackoffPolicy(base_ms, max_ms)

    return _make
