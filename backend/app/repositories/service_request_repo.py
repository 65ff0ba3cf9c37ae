"""Service Request Repository - Data access for service requests"""
from typing import Any, Dict, List, Optional
from pymongo.collection import Collection
from pymongo import DESCENDING, ASCENDING, ReturnDocument

from .mongo_client import get_collection
from ..domain.models import RequestContext, ServiceRequest
from ..domain.enums import RequestStatus, TERMINAL_STATUSES
from ..domain.errors import ConcurrencyError, ServiceRequestNotFoundError
from ..utils.time import utc_now
from ..utils.logger import get_logger

logger = get_logger(__name__)


class ServiceRequestRepository:
    """Repository for service request state"""

    def __init__(self, collection: Optional[Collection] = None):
        self._requests: Collection = (
            collection if collection is not None else get_collection("service_requests")
        )

    @staticmethod
    def _to_document(request: ServiceRequest) -> Dict[str, Any]:
        # Top-level timestamps stay datetimes for sorting; context is stored JSON-shaped
        doc = request.model_dump()
        doc["_id"] = request.request_id
        doc["status"] = request.status.value
        doc["context"] = request.context.model_dump(mode="json")
        return doc

    @staticmethod
    def _from_document(doc: Dict[str, Any]) -> ServiceRequest:
        doc.pop("_id", None)
        return ServiceRequest.model_validate(doc)

    def create_request(self, request: ServiceRequest) -> ServiceRequest:
        """Create a new service request"""
        self._requests.insert_one(self._to_document(request))
        logger.info(
            f"Created service request: {request.request_id}",
            extra={"request_id": request.request_id, "tenant_id": request.tenant_id}
        )
        return request

    def get_request(self, request_id: str) -> Optional[ServiceRequest]:
        """Get service request by ID"""
        doc = self._requests.find_one({"request_id": request_id})
        if doc:
            return self._from_document(doc)
        return None

    def get_request_or_raise(self, request_id: str) -> ServiceRequest:
        """Get service request by ID or raise error"""
        request = self.get_request(request_id)
        if not request:
            raise ServiceRequestNotFoundError(
                f"Service request {request_id} not found",
                details={"request_id": request_id}
            )
        return request

    def update_state(
        self,
        request_id: str,
        status: RequestStatus,
        context: RequestContext,
        expected_version: int
    ) -> ServiceRequest:
        """
        Persist a new status/context with optimistic concurrency

        Raises:
            ConcurrencyError: If the stored version no longer matches
            ServiceRequestNotFoundError: If the request does not exist
        """
        updates = {
            "status": status.value,
            "context": context.model_dump(mode="json"),
            "updated_at": utc_now(),
            "version": expected_version + 1,
        }

        result = self._requests.find_one_and_update(
            {"request_id": request_id, "version": expected_version},
            {"$set": updates},
            return_document=ReturnDocument.AFTER
        )

        if result is None:
            exists = self._requests.find_one({"request_id": request_id})
            if exists:
                raise ConcurrencyError(
                    f"Service request {request_id} was modified. Please refresh and try again.",
                    details={"expected_version": expected_version}
                )
            raise ServiceRequestNotFoundError(
                f"Service request {request_id} not found",
                details={"request_id": request_id}
            )

        logger.info(
            f"Updated service request: {request_id}",
            extra={"request_id": request_id, "status": status.value}
        )
        return self._from_document(result)

    def list_requests(
        self,
        tenant_id: str,
        statuses: Optional[List[RequestStatus]] = None,
        requester_id: Optional[str] = None,
        assigned_to: Optional[str] = None,
        skip: int = 0,
        limit: int = 50
    ) -> List[ServiceRequest]:
        """List a tenant's requests, newest activity first"""
        query: Dict[str, Any] = {"tenant_id": tenant_id}
        if statuses:
            query["status"] = {"$in": [s.value for s in statuses]}
        if requester_id:
            query["context.requester_id"] = requester_id
        if assigned_to:
            query["context.assigned_to"] = assigned_to

        cursor = self._requests.find(query).sort("updated_at", DESCENDING).skip(skip).limit(limit)
        return [self._from_document(doc) for doc in cursor]

    def list_open_requests(self, limit: int = 200) -> List[ServiceRequest]:
        """Requests in any non-terminal status, oldest activity first"""
        cursor = self._requests.find(
            {"status": {"$nin": [s.value for s in TERMINAL_STATUSES]}}
        ).sort("updated_at", ASCENDING).limit(limit)
        return [self._from_document(doc) for doc in cursor]
