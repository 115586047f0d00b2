from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

from botocore.exceptions import BotoCoreError, ClientError

from subscription_sync.errors import AccountNotFound, StoreFailure
from subscription_sync.models import ACCOUNT_ATTRS, WRITABLE_FIELDS, Account

logger = logging.getLogger(__name__)


def _attr(field: str) -> str:
    try:
        return ACCOUNT_ATTRS[field]
    except KeyError:
        raise ValueError(f"Unknown account field: {field}") from None


class AccountStore:
    """Account records in the DynamoDB users table.

    Keyed by ``(user_id, university_id)``. Lookups by customer reference use
    ``customer_index`` when one is configured and fall back to a paginated
    scan otherwise; both satisfy the same ``find_by_field`` contract.
    """

    def __init__(self, table: Any, *, customer_index: str = "") -> None:
        self.table = table
        self.customer_index = customer_index

    def find_by_key(self, account_ref: str, tenant_ref: str) -> Optional[Account]:
        try:
            resp = self.table.get_item(Key={"user_id": account_ref, "university_id": tenant_ref})
        except (ClientError, BotoCoreError) as exc:
            raise StoreFailure(f"get_item failed for {account_ref}/{tenant_ref}") from exc
        item = resp.get("Item")
        return Account.from_item(item) if item else None

    def find_by_field(self, field: str, value: str) -> Optional[Account]:
        attr = _attr(field)
        if field == "external_customer_ref" and self.customer_index:
            items = self._query_index(attr, value)
        else:
            items = self._scan_eq(attr, value)
        if not items:
            return None
        if len(items) > 1:
            logger.warning("%d accounts share %s=%s; using the first", len(items), attr, value)
        return Account.from_item(items[0])

    def update_fields(self, account_ref: str, tenant_ref: str, field_map: Dict[str, Any]) -> Account:
        if not field_map:
            raise ValueError("field_map must not be empty")

        sets = []
        names: Dict[str, str] = {"#pk": "user_id"}
        values: Dict[str, Any] = {}

        i = 0
        for field, value in field_map.items():
            if field not in WRITABLE_FIELDS:
                raise ValueError(f"Field is not writable: {field}")
            i += 1
            nk = f"#k{i}"
            dv = f":v{i}"
            names[nk] = _attr(field)
            values[dv] = value
            sets.append(f"{nk} = {dv}")

        try:
            resp = self.table.update_item(
                Key={"user_id": account_ref, "university_id": tenant_ref},
                UpdateExpression="SET " + ", ".join(sets),
                ConditionExpression="attribute_exists(#pk)",
                ExpressionAttributeNames=names,
                ExpressionAttributeValues=values,
                ReturnValues="ALL_NEW",
            )
        except ClientError as exc:
            if exc.response["Error"]["Code"] == "ConditionalCheckFailedException":
                raise AccountNotFound(f"{account_ref}/{tenant_ref}") from exc
            raise StoreFailure(f"update_item failed for {account_ref}/{tenant_ref}") from exc
        except BotoCoreError as exc:
            raise StoreFailure(f"update_item failed for {account_ref}/{tenant_ref}") from exc
        return Account.from_item(resp.get("Attributes") or {})

    def _query_index(self, attr: str, value: str) -> List[Dict[str, Any]]:
        try:
            resp = self.table.query(
                IndexName=self.customer_index,
                KeyConditionExpression="#f = :v",
                ExpressionAttributeNames={"#f": attr},
                ExpressionAttributeValues={":v": value},
            )
        except (ClientError, BotoCoreError) as exc:
            raise StoreFailure(f"query on {self.customer_index} failed") from exc
        return resp.get("Items", [])

    def _scan_eq(self, attr: str, value: str) -> List[Dict[str, Any]]:
        kwargs: Dict[str, Any] = {
            "FilterExpression": "#f = :v",
            "ExpressionAttributeNames": {"#f": attr},
            "ExpressionAttributeValues": {":v": value},
        }
        items: List[Dict[str, Any]] = []
        try:
            while True:
                resp = self.table.scan(**kwargs)
                items.extend(resp.get("Items", []))
                last = resp.get("LastEvaluatedKey")
                if not last:
                    break
                kwargs["ExclusiveStartKey"] = last
        except (ClientError, BotoCoreError) as exc:
            raise StoreFailure(f"scan for {attr} failed") from exc
        return items


def get_account_store() -> AccountStore:
    from subscription_sync.core.settings import S
    from subscription_sync.core.tables import T

    return AccountStore(T.users, customer_index=S.users_customer_index)
