"""DynamoDB implementation of CashClearingRepository.

Each entity lives in its own table. Key attributes are stored as top-level
attributes so they can be indexed; the full model is stored as a JSON
``payload`` attribute, which keeps floats and nested step state out of
DynamoDB's type system.

Expected tables (names overridable through environment variables):
- batches: partition key ``batch_id``
- batch history: partition key ``batch_id``, sort key ``workflow_id``
- approval items: partition key ``item_id``, GSI ``batch_id-index``
- alerts: partition key ``alert_id``
- audit: partition key ``id``, GSI ``batch_id-index``
"""

import os
from typing import Any, Optional

import boto3
from botocore.exceptions import ClientError

from cash_clearing.core import get_logger
from cash_clearing.models.alert import Alert
from cash_clearing.models.approval import ApprovalDecision, ApprovalItem
from cash_clearing.models.audit import AuditEntry
from cash_clearing.models.batch import BatchRecord, BatchStatus
from cash_clearing.repository.base import CashClearingRepository

logger = get_logger(__name__)

DEFAULT_TABLE_NAMES = {
    "batches": "cash-clearing-batches",
    "batch_history": "cash-clearing-batch-history",
    "approval_items": "cash-clearing-approval-items",
    "alerts": "cash-clearing-alerts",
    "audit": "cash-clearing-audit",
}


class DynamoDBCashClearingRepository(CashClearingRepository):
    """Stores cash clearing state in DynamoDB."""

    def __init__(
        self,
        table_names: Optional[dict[str, str]] = None,
        dynamodb_resource: Optional[Any] = None,
    ):
        """Initialize the repository.

        Args:
            table_names: Overrides for the default table names, keyed by entity.
            dynamodb_resource: Optional boto3 DynamoDB resource (for testing)
        """
        self.table_names = {
            key: os.environ.get(f"CASH_CLEARING_{key.upper()}_TABLE", default)
            for key, default in DEFAULT_TABLE_NAMES.items()
        }
        if table_names:
            self.table_names.update(table_names)
        self._resource = dynamodb_resource
        self._tables: dict[str, Any] = {}

    @property
    def resource(self):
        """Get DynamoDB resource."""
        if self._resource is None:
            self._resource = boto3.resource("dynamodb")
        return self._resource

    def _table(self, key: str):
        if key not in self._tables:
            self._tables[key] = self.resource.Table(self.table_names[key])
        return self._tables[key]

    # ==================== Low-level helpers ====================

    def _put(self, key: str, item: dict[str, Any]) -> None:
        try:
            self._table(key).put_item(Item=item)
        except ClientError as e:
            logger.error("dynamodb_put_failed", table=self.table_names[key], error=str(e))
            raise

    def _get(self, key: str, item_key: dict[str, Any]) -> Optional[dict[str, Any]]:
        try:
            response = self._table(key).get_item(Key=item_key)
        except ClientError as e:
            logger.error("dynamodb_get_failed", table=self.table_names[key], error=str(e))
            raise
        return response.get("Item")

    def _query(self, key: str, **kwargs) -> list[dict[str, Any]]:
        items: list[dict[str, Any]] = []
        try:
            while True:
                response = self._table(key).query(**kwargs)
                items.extend(response.get("Items", []))
                last_key = response.get("LastEvaluatedKey")
                if not last_key:
                    return items
                kwargs["ExclusiveStartKey"] = last_key
        except ClientError as e:
            logger.error("dynamodb_query_failed", table=self.table_names[key], error=str(e))
            raise

    def _scan(self, key: str) -> list[dict[str, Any]]:
        items: list[dict[str, Any]] = []
        kwargs: dict[str, Any] = {}
        try:
            while True:
                response = self._table(key).scan(**kwargs)
                items.extend(response.get("Items", []))
                last_key = response.get("LastEvaluatedKey")
                if not last_key:
                    return items
                kwargs["ExclusiveStartKey"] = last_key
        except ClientError as e:
            logger.error("dynamodb_scan_failed", table=self.table_names[key], error=str(e))
            raise

    # ==================== Batch Records ====================

    @staticmethod
    def _batch_item(record: BatchRecord) -> dict[str, Any]:
        return {
            "batch_id": record.batch_id,
            "workflow_id": record.workflow_id,
            "status": record.status.value,
            "created_at": record.created_at.isoformat(),
            "payload": record.model_dump_json(),
        }

    def get_batch(self, batch_id: str) -> Optional[BatchRecord]:
        item = self._get("batches", {"batch_id": batch_id})
        return BatchRecord.model_validate_json(item["payload"]) if item else None

    def put_batch(self, record: BatchRecord) -> None:
        self._put("batches", self._batch_item(record))

    def list_batches(self, status: Optional[BatchStatus] = None) -> list[BatchRecord]:
        records = [BatchRecord.model_validate_json(i["payload"]) for i in self._scan("batches")]
        if status:
            records = [r for r in records if r.status == status]
        records.sort(key=lambda r: r.created_at)
        return records

    def archive_batch(self, record: BatchRecord) -> None:
        self._put("batch_history", self._batch_item(record))

    def get_batch_history(self, batch_id: str) -> list[BatchRecord]:
        items = self._query(
            "batch_history",
            KeyConditionExpression="batch_id = :batch_id",
            ExpressionAttributeValues={":batch_id": batch_id},
        )
        records = [BatchRecord.model_validate_json(i["payload"]) for i in items]
        records.sort(key=lambda r: r.created_at)
        return records

    # ==================== Approval Items ====================

    def get_approval_item(self, item_id: str) -> Optional[ApprovalItem]:
        item = self._get("approval_items", {"item_id": item_id})
        return ApprovalItem.model_validate_json(item["payload"]) if item else None

    def put_approval_item(self, item: ApprovalItem) -> None:
        self._put("approval_items", {
            "item_id": item.item_id,
            "batch_id": item.batch_id,
            "decision": item.decision.value,
            "sequence": item.sequence,
            "payload": item.model_dump_json(),
        })

    def list_approval_items(
        self,
        batch_id: Optional[str] = None,
        decision: Optional[ApprovalDecision] = None,
    ) -> list[ApprovalItem]:
        if batch_id:
            raw = self._query(
                "approval_items",
                IndexName="batch_id-index",
                KeyConditionExpression="batch_id = :batch_id",
                ExpressionAttributeValues={":batch_id": batch_id},
            )
        else:
            raw = self._scan("approval_items")

        items = [ApprovalItem.model_validate_json(i["payload"]) for i in raw]
        if decision:
            items = [i for i in items if i.decision == decision]
        items.sort(key=lambda i: (i.sequence, i.created_at))
        return items

    # ==================== Alerts ====================

    def get_alert(self, alert_id: str) -> Optional[Alert]:
        item = self._get("alerts", {"alert_id": alert_id})
        return Alert.model_validate_json(item["payload"]) if item else None

    def put_alert(self, alert: Alert) -> None:
        self._put("alerts", {
            "alert_id": alert.alert_id,
            "status": alert.status.value,
            "severity": alert.severity.value,
            "payload": alert.model_dump_json(),
        })

    def list_alerts(self) -> list[Alert]:
        return [Alert.model_validate_json(i["payload"]) for i in self._scan("alerts")]

    # ==================== Audit Trail ====================

    def add_audit_entry(self, entry: AuditEntry) -> None:
        item = {
            "id": entry.id,
            "entity_type": entry.entity_type,
            "entity_id": entry.entity_id,
            "timestamp": entry.timestamp.isoformat(),
            "payload": entry.model_dump_json(),
        }
        if entry.batch_id:
            item["batch_id"] = entry.batch_id
        self._put("audit", item)

    def get_audit_entries(
        self,
        entity_type: Optional[str] = None,
        entity_id: Optional[str] = None,
        batch_id: Optional[str] = None,
    ) -> list[AuditEntry]:
        if batch_id:
            raw = self._query(
                "audit",
                IndexName="batch_id-index",
                KeyConditionExpression="batch_id = :batch_id",
                ExpressionAttributeValues={":batch_id": batch_id},
            )
        else:
            raw = self._scan("audit")

        entries = [AuditEntry.model_validate_json(i["payload"]) for i in raw]
        if entity_type:
            entries = [e for e in entries if e.entity_type == entity_type]
        if entity_id:
            entries = [e for e in entries if e.entity_id == entity_id]
        entries.sort(key=lambda e: e.timestamp)
        return entries
