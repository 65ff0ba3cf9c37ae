"""Tests for ServiceRequestRepository against a mocked collection"""
from unittest.mock import MagicMock

import pytest
from pymongo import ReturnDocument

from app.domain.enums import RequestPriority, RequestStatus
from app.domain.errors import ConcurrencyError, ServiceRequestNotFoundError
from app.repositories.service_request_repo import ServiceRequestRepository


@pytest.fixture
def collection():
    return MagicMock()


@pytest.fixture
def repo(collection):
    return ServiceRequestRepository(collection=collection)


def stored(repo, request):
    return repo._to_document(request)


class TestCreateAndGet:
    def test_create_stores_request_document(self, repo, collection, make_request):
        request = make_request(priority=RequestPriority.URGENT, metadata={"total_amount": 12})

        repo.create_request(request)

        doc = collection.insert_one.call_args.args[0]
        assert doc["_id"] == request.request_id
        assert doc["status"] == "PENDING"
        assert doc["context"]["priority"] == "URGENT"
        assert doc["context"]["metadata"] == {"total_amount": 12}
        assert doc["created_at"] == request.created_at

    def test_get_round_trips_document(self, repo, collection, make_request):
        request = make_request(RequestStatus.ON_HOLD, assigned_to="u2", note="rush")
        collection.find_one.return_value = stored(repo, request)

        loaded = repo.get_request(request.request_id)

        assert loaded == request
        assert loaded.context.model_dump()["note"] == "rush"
        collection.find_one.assert_called_once_with({"request_id": request.request_id})

    def test_get_missing_returns_none(self, repo, collection):
        collection.find_one.return_value = None

        assert repo.get_request("SRQ-missing") is None
        with pytest.raises(ServiceRequestNotFoundError):
            repo.get_request_or_raise("SRQ-missing")


class TestUpdateState:
    def test_update_filters_on_expected_version(self, repo, collection, make_request):
        updated = make_request(RequestStatus.APPROVED, version=4)
        collection.find_one_and_update.return_value = stored(repo, updated)

        result = repo.update_state(
            updated.request_id, RequestStatus.APPROVED, updated.context, expected_version=3
        )

        assert result.version == 4
        filter_doc, update_doc = collection.find_one_and_update.call_args.args
        assert filter_doc == {"request_id": updated.request_id, "version": 3}
        assert update_doc["$set"]["version"] == 4
        assert update_doc["$set"]["status"] == "APPROVED"
        assert "updated_at" in update_doc["$set"]
        assert collection.find_one_and_update.call_args.kwargs["return_document"] == ReturnDocument.AFTER

    def test_stale_version_raises_concurrency_error(self, repo, collection, make_request):
        request = make_request()
        collection.find_one_and_update.return_value = None
        collection.find_one.return_value = stored(repo, request)

        with pytest.raises(ConcurrencyError):
            repo.update_state(request.request_id, RequestStatus.APPROVED, request.context, expected_version=1)

    def test_missing_request_raises_not_found(self, repo, collection, make_request):
        request = make_request()
        collection.find_one_and_update.return_value = None
        collection.find_one.return_value = None

        with pytest.raises(ServiceRequestNotFoundError):
            repo.update_state(request.request_id, RequestStatus.APPROVED, request.context, expected_version=1)


class TestListing:
    def test_list_requests_builds_query(self, repo, collection, make_request):
        request = make_request()
        cursor = collection.find.return_value.sort.return_value.skip.return_value.limit
        cursor.return_value = [stored(repo, request)]

        results = repo.list_requests(
            "tenant-1",
            statuses=[RequestStatus.PENDING, RequestStatus.ON_HOLD],
            requester_id="u1",
            limit=10,
        )

        assert results == [request]
        query = collection.find.call_args.args[0]
        assert query == {
            "tenant_id": "tenant-1",
            "status": {"$in": ["PENDING", "ON_HOLD"]},
            "context.requester_id": "u1",
        }
        cursor.assert_called_once_with(10)

    def test_list_open_requests_excludes_terminal(self, repo, collection):
        collection.find.return_value.sort.return_value.limit.return_value = []

        assert repo.list_open_requests(limit=25) == []

        query = collection.find.call_args.args[0]
        assert set(query["status"]["$nin"]) == {"COMPLETED", "CANCELLED", "REJECTED"}
        collection.find.return_value.sort.return_value.limit.assert_called_once_with(25)
