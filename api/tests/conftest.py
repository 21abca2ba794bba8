# -*- coding: utf-8 -*-
# SPDX-License-Identifier: Apache-2.0

"""
Pytest configuration and fixtures.
"""

import copy
import os
import pytest
from contextlib import contextmanager
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional
from unittest.mock import Mock

import jwt
from bson import ObjectId
from pymongo import ASCENDING

from models.entities import Event, EventApproval, Task, UserContext, WorkflowDefinition, WorkflowStepDefinition
from services.auth import AuthService, generate_key_pair
from services.dispatch import DispatchService, PublishResult
from services.redis import RedisService

# Set test environment
os.environ['ENVIRONMENT'] = 'test'
os.environ['MONGODB_DATABASE'] = 'gabinete_test'

POLITICIAN_ID = "pol-001"
OTHER_POLITICIAN_ID = "pol-002"


class InMemoryMongoService:
    """
    Tenant-scoped document store with the MongoDBService interface.

    Transactions snapshot every collection and restore it when the block raises.
    """

    def __init__(self):
        self.collections: Dict[str, Dict[str, Dict[str, Any]]] = {}
        self.transactions_started = 0

    def _collection(self, name: str) -> Dict[str, Dict[str, Any]]:
        return self.collections.setdefault(name, {})

    @staticmethod
    def _matches(document: Dict[str, Any], politician_id: str, filters: Optional[Dict],
                 include_deleted: bool) -> bool:
        if document.get("politicianId") != politician_id:
            return False
        if not include_deleted and document.get("deletedAt") is not None:
            return False

        for key, expected in (filters or {}).items():
            actual = document.get(key)
            if isinstance(expected, dict) and "$gte" in expected:
                if actual is None or actual < expected["$gte"]:
                    return False
            elif actual != expected:
                return False

        return True

    @contextmanager
    def transaction(self):
        self.transactions_started += 1
        snapshot = copy.deepcopy(self.collections)
        try:
            yield "session"
        except BaseException:
            self.collections = snapshot
            raise

    def create(self, collection: str, document: Dict, user_id: str, session=None) -> str:
        document = copy.deepcopy(document)
        now = datetime.utcnow()
        document.setdefault("createdAt", now)
        document["createdBy"] = user_id
        document["updatedAt"] = now
        document["updatedBy"] = user_id
        document["id"] = document.get("id") or str(ObjectId())
        self._collection(collection)[document["id"]] = document
        return document["id"]

    def insert_many(self, collection: str, documents: List[Dict], user_id: str, session=None) -> List[str]:
        return [self.create(collection, document, user_id, session=session) for document in documents]

    def find_by_org(self, collection: str, politician_id: str, filters: Dict = None,
                    include_deleted: bool = False, sort_by: Optional[str] = None,
                    sort_order: int = ASCENDING, session=None) -> List[Dict]:
        documents = [
            copy.deepcopy(document)
            for document in self._collection(collection).values()
            if self._matches(document, politician_id, filters, include_deleted)
        ]
        if sort_by:
            documents.sort(key=lambda document: document.get(sort_by), reverse=sort_order != ASCENDING)
        return documents

    def find_one_by_org(self, collection: str, politician_id: str, doc_id: str,
                        include_deleted: bool = False, session=None) -> Optional[Dict]:
        document = self._collection(collection).get(doc_id)
        if document is None or not self._matches(document, politician_id, None, include_deleted):
            return None
        return copy.deepcopy(document)

    def update_by_org(self, collection: str, politician_id: str, doc_id: str,
                      updates: Dict, user_id: str, session=None) -> bool:
        return self.compare_and_set_by_org(collection, politician_id, doc_id, {}, updates, user_id, session)

    def compare_and_set_by_org(self, collection: str, politician_id: str, doc_id: str,
                               expected: Dict, updates: Dict, user_id: str, session=None) -> bool:
        document = self._collection(collection).get(doc_id)
        if document is None or not self._matches(document, politician_id, expected, False):
            return False

        document.update(copy.deepcopy(updates))
        document["updatedAt"] = datetime.utcnow()
        document["updatedBy"] = user_id
        return True

    def count_by_org(self, collection: str, politician_id: str, filters: Dict = None,
                     include_deleted: bool = False, session=None) -> int:
        return len(self.find_by_org(collection, politician_id, filters, include_deleted))

    def health_check(self) -> Dict[str, Any]:
        return {"status": "healthy", "database": "in-memory"}

    def documents(self, collection: str) -> List[Dict[str, Any]]:
        """Raw stored documents of a collection, for assertions."""
        return list(self._collection(collection).values())


def make_user(role: str = "staff", user_id: str = None, politician_id: str = POLITICIAN_ID) -> UserContext:
    """Build a user context acting for a tenant."""
    return UserContext(
        user_id=user_id or f"user-{role}",
        politician_id=politician_id,
        role=role,
        email=f"{role}@gabinete.test",
        name=role.replace('_', ' ').title()
    )


@pytest.fixture
def mongo():
    """Empty in-memory tenant-scoped store."""
    return InMemoryMongoService()


@pytest.fixture
def staff_user():
    return make_user("staff")


@pytest.fixture
def event_manager():
    """Admin account, acts as event_manager."""
    return make_user("admin")


@pytest.fixture
def campaign_director():
    """Supervisor account, acts as campaign_director."""
    return make_user("supervisor")


@pytest.fixture
def chief_of_staff():
    """Super admin account, acts as chief_of_staff."""
    return make_user("super_admin")


@pytest.fixture
def sample_workflow():
    """Three-step workflow for the infrastructure category with a 5 day SLA."""
    return WorkflowDefinition(
        politician_id=POLITICIAN_ID,
        name="Pothole repair",
        category_id="infrastructure",
        subcategory="all",
        sla_days=5,
        steps=[
            WorkflowStepDefinition(step_number=2, title="Dispatch crew"),
            WorkflowStepDefinition(step_number=1, title="Inspect site", duration=30),
            WorkflowStepDefinition(step_number=3, title="Confirm with constituent", required=False),
        ],
        created_by="user-admin",
        updated_by="user-admin"
    )


@pytest.fixture
def sample_task():
    """Open task without deadline in the infrastructure category."""
    return Task(
        politician_id=POLITICIAN_ID,
        title="Pothole on Main Street",
        category_id="infrastructure",
        subcategory="roads",
        created_at=datetime(2025, 3, 1, 12, 0, 0),
        created_by="user-staff",
        updated_by="user-staff"
    )


@pytest.fixture
def seeded_mongo(mongo, sample_task, sample_workflow):
    """Store holding the sample task and workflow."""
    mongo.create("tasks", sample_task.to_document(), "user-staff")
    mongo.create("workflows", sample_workflow.to_document(), "user-admin")
    return mongo


@pytest.fixture
def sample_event_data():
    """Request payload for a press conference."""
    return {
        "title": "Budget press conference",
        "description": "Presenting the municipal budget",
        "type": "press_conference",
        "date": "2025-03-12",
        "time": "10:00",
        "duration": 60,
        "location": "City Hall",
        "expectedAttendees": 40,
        "priority": "high",
        "requiresApproval": True
    }


@pytest.fixture
def publish_ok():
    """Factory for successful publish results."""
    def build(exchange="events.notifications", routing_key="notification.event_approval.user"):
        return PublishResult(success=True, message_id="msg-1", exchange=exchange, routing_key=routing_key)
    return build


@pytest.fixture
def dispatch_service(publish_ok):
    """Dispatch service double recording publishes."""
    service = Mock(spec=DispatchService)
    service.notify.return_value = publish_ok()
    service.sync_approved_event.return_value = publish_ok("events.calendar", "calendar.sync.meeting")
    service.health_check.return_value = True
    return service


@pytest.fixture
def redis_service():
    """Redis double that behaves as unavailable."""
    service = Mock(spec=RedisService)
    service.is_available.return_value = False
    service.is_token_blocked.return_value = False
    service.get_cached_calendar_settings.return_value = None
    return service


@pytest.fixture(scope="session")
def rsa_key_pair():
    """RS256 key pair (private PEM, public PEM) shared by the test session."""
    return generate_key_pair()


@pytest.fixture
def auth_service(rsa_key_pair):
    return AuthService(public_key=rsa_key_pair[1], algorithm="RS256")


@pytest.fixture
def make_token(rsa_key_pair):
    """Factory signing access tokens for a user context."""
    def build(user: UserContext, expires_in: timedelta = timedelta(minutes=15), **overrides) -> str:
        now = datetime.utcnow()
        payload = {
            "sub": user.user_id,
            "politician_id": user.politician_id,
            "role": user.role,
            "email": user.email,
            "type": "access",
            "iat": now,
            "exp": now + expires_in,
        }
        payload.update(overrides)
        return jwt.encode(payload, rsa_key_pair[0], algorithm="RS256")
    return build


@pytest.fixture
def app(mongo, redis_service, auth_service, dispatch_service):
    """Application wired to in-memory and mocked services."""
    from app import create_app

    application = create_app(
        config={'TESTING': True, 'BASE_URL': 'https://api.test'},
        services={
            'mongodb_service': mongo,
            'redis_service': redis_service,
            'auth_service': auth_service,
            'dispatch_service': dispatch_service
        }
    )
    return application


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def auth_headers(make_token):
    """Factory for Authorization headers of a user context."""
    def build(user: UserContext) -> Dict[str, str]:
        return {"Authorization": f"Bearer {make_token(user)}"}
    return build


def approval_chain(event: Event, roles: List[str], statuses: List[str] = None) -> List[EventApproval]:
    """Approval records for an event with explicit statuses."""
    statuses = statuses or ["pending"] * len(roles)
    return [
        EventApproval(
            politician_id=event.politician_id,
            event_id=event.id,
            approval_level=level,
            approver_role=role,
            status=status,
            created_by=event.created_by,
            updated_by=event.created_by
        )
        for level, (role, status) in enumerate(zip(roles, statuses), start=1)
    ]
