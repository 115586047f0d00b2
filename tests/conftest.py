from __future__ import annotations

import hashlib
import hmac
import json
import sys
import time
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

import pytest
from botocore.exceptions import ClientError

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from subscription_sync.services.account_store import AccountStore  # noqa: E402

WEBHOOK_SECRET = "whsec_test_secret"
FIXED_NOW = "2024-05-01T12:00:00.000Z"


class FakeUsersTable:
    """In-memory stand-in for the DynamoDB users table resource."""

    def __init__(self, *, page_size: Optional[int] = None) -> None:
        self.items: Dict[Tuple[str, str], Dict[str, Any]] = {}
        self.page_size = page_size
        self.calls: List[str] = []
        self.fail_with: Optional[Exception] = None

    def add(self, **item: Any) -> Dict[str, Any]:
        self.items[(item["user_id"], item["university_id"])] = dict(item)
        return item

    def get(self, user_id: str, university_id: str) -> Optional[Dict[str, Any]]:
        return self.items.get((user_id, university_id))

    def writes(self) -> int:
        return self.calls.count("update_item")

    def _enter(self, op: str) -> None:
        self.calls.append(op)
        if self.fail_with is not None:
            raise self.fail_with

    def get_item(self, *, Key: Dict[str, str], **_: Any) -> Dict[str, Any]:
        self._enter("get_item")
        item = self.items.get((Key["user_id"], Key["university_id"]))
        return {"Item": dict(item)} if item else {}

    def update_item(
        self,
        *,
        Key: Dict[str, str],
        UpdateExpression: str,
        ExpressionAttributeValues: Dict[str, Any],
        ExpressionAttributeNames: Optional[Dict[str, str]] = None,
        ConditionExpression: Optional[str] = None,
        ReturnValues: Optional[str] = None,
        **_: Any,
    ) -> Dict[str, Any]:
        self._enter("update_item")
        names = ExpressionAttributeNames or {}
        key = (Key["user_id"], Key["university_id"])
        if ConditionExpression and key not in self.items:
            raise ClientError(
                {"Error": {"Code": "ConditionalCheckFailedException", "Message": "The conditional request failed"}},
                "UpdateItem",
            )
        item = self.items.setdefault(key, dict(Key))
        expr = UpdateExpression.strip()
        assert expr.startswith("SET ")
        for assignment in expr[4:].split(","):
            left, right = (part.strip() for part in assignment.split("=", 1))
            item[names.get(left, left)] = ExpressionAttributeValues[right]
        return {"Attributes": dict(item)} if ReturnValues == "ALL_NEW" else {}

    def _filter(self, keys, names: Dict[str, str], values: Dict[str, Any]) -> List[Dict[str, Any]]:
        attr = names["#f"]
        value = values[":v"]
        return [dict(self.items[k]) for k in keys if self.items[k].get(attr) == value]

    def scan(
        self,
        *,
        ExpressionAttributeNames: Dict[str, str],
        ExpressionAttributeValues: Dict[str, Any],
        ExclusiveStartKey: Optional[Dict[str, str]] = None,
        **_: Any,
    ) -> Dict[str, Any]:
        self._enter("scan")
        keys = sorted(self.items)
        start = 0
        if ExclusiveStartKey:
            start = keys.index((ExclusiveStartKey["user_id"], ExclusiveStartKey["university_id"])) + 1
        size = self.page_size or max(len(keys), 1)
        page = keys[start:start + size]
        out: Dict[str, Any] = {"Items": self._filter(page, ExpressionAttributeNames, ExpressionAttributeValues)}
        if start + size < len(keys):
            out["LastEvaluatedKey"] = {"user_id": page[-1][0], "university_id": page[-1][1]}
        return out

    def query(
        self,
        *,
        IndexName: str,
        ExpressionAttributeNames: Dict[str, str],
        ExpressionAttributeValues: Dict[str, Any],
        **_: Any,
    ) -> Dict[str, Any]:
        self._enter("query")
        return {"Items": self._filter(sorted(self.items), ExpressionAttributeNames, ExpressionAttributeValues)}


def sign_payload(payload: bytes, secret: str = WEBHOOK_SECRET, timestamp: Optional[int] = None) -> str:
    ts = int(time.time()) if timestamp is None else timestamp
    digest = hmac.new(secret.encode("utf-8"), f"{ts}.".encode("utf-8") + payload, hashlib.sha256).hexdigest()
    return f"t={ts},v1={digest}"


def event_body(event_type: str, obj: Dict[str, Any], event_id: str = "evt_1") -> bytes:
    return json.dumps({"id": event_id, "type": event_type, "data": {"object": obj}}).encode("utf-8")


@pytest.fixture
def users_table() -> FakeUsersTable:
    table = FakeUsersTable()
    table.add(
        user_id="u1",
        university_id="t1",
        email="ada@example.edu",
        given_name="Ada",
        family_name="Lovelace",
        stripe_customer_id="cus_1",
        subscription_status="trial",
        trial_ends_at="2024-05-20T00:00:00.000Z",
        stripe_subscription_id=None,
        subscription_plan=None,
        subscription_ends_at=None,
        updated_at="2024-04-01T00:00:00.000Z",
    )
    table.add(
        user_id="u2",
        university_id="t1",
        subscription_status="trial",
        updated_at="2024-04-01T00:00:00.000Z",
    )
    return table


@pytest.fixture
def store(users_table: FakeUsersTable) -> AccountStore:
    return AccountStore(users_table)


@pytest.fixture
def frozen_now(monkeypatch):
    monkeypatch.setattr("subscription_sync.services.reconciler.now_iso", lambda: FIXED_NOW)
    return FIXED_NOW


@pytest.fixture
def sign():
    return sign_payload


@pytest.fixture
def make_body():
    return event_body


@pytest.fixture
def make_table():
    return FakeUsersTable
