"""Transition Log Repository - Append-only history of workflow transitions"""
from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional
from pymongo.collection import Collection
from pymongo import ASCENDING, DESCENDING

from .mongo_client import get_collection
from ..domain.models import TransitionRecord
from ..utils.logger import get_logger

logger = get_logger(__name__)


class TransitionLogRepository:
    """Repository for transition records (append-only)"""

    def __init__(self, collection: Optional[Collection] = None):
        self._transitions: Collection = (
            collection if collection is not None else get_collection("workflow_transitions")
        )

    def append(self, record: TransitionRecord) -> TransitionRecord:
        """Append a transition record"""
        doc = record.model_dump(mode="json")
        doc["_id"] = record.transition_id
        doc["occurred_at"] = record.occurred_at  # Keep as datetime for range queries

        self._transitions.insert_one(doc)
        logger.debug(
            f"Logged transition {record.transition_id}",
            extra={
                "transition_id": record.transition_id,
                "request_id": record.request_id,
                "to_status": record.to_status.value
            }
        )
        return record

    def list_for_tenant(
        self,
        tenant_id: str,
        start_date: datetime,
        end_date: datetime
    ) -> List[TransitionRecord]:
        """Records for a tenant within [start_date, end_date], oldest first"""
        query: Dict[str, Any] = {
            "tenant_id": tenant_id,
            "occurred_at": {"$gte": start_date, "$lte": end_date},
        }
        cursor = self._transitions.find(query).sort("occurred_at", ASCENDING)
        return [self._from_document(doc) for doc in cursor]

    def list_latest_before(
        self,
        tenant_id: str,
        request_ids: Iterable[str],
        before: datetime
    ) -> List[TransitionRecord]:
        """
        Latest record strictly before a cut-off for each of the given requests

        These anchor the status a request was already in when a metrics
        window opened.
        """
        request_ids = sorted(set(request_ids))
        if not request_ids:
            return []

        pipeline = [
            {"$match": {
                "tenant_id": tenant_id,
                "request_id": {"$in": request_ids},
                "occurred_at": {"$lt": before},
            }},
            {"$sort": {"occurred_at": DESCENDING}},
            {"$group": {"_id": "$request_id", "latest": {"$first": "$$ROOT"}}},
        ]
        return [self._from_document(doc["latest"]) for doc in self._transitions.aggregate(pipeline)]

    def list_for_request(self, request_id: str) -> List[TransitionRecord]:
        """Full history of one request, oldest first"""
        cursor = self._transitions.find({"request_id": request_id}).sort("occurred_at", ASCENDING)
        return [self._from_document(doc) for doc in cursor]

    @staticmethod
    def _from_document(doc: Dict[str, Any]) -> TransitionRecord:
        doc.pop("_id", None)
        return TransitionRecord.model_validate(doc)
