# -*- coding: utf-8 -*-
# SPDX-License-Identifier: Apache-2.0

"""
MongoDB service layer with tenant-scoped operations, transactions and
optimistic updates.
"""

import os
import logging
from contextlib import contextmanager
from datetime import datetime
from typing import List, Dict, Optional, Any, Generator
from pymongo import MongoClient, ASCENDING, DESCENDING
from pymongo.client_session import ClientSession
from pymongo.collection import Collection
from pymongo.database import Database
from pymongo.errors import (
    ConnectionFailure,
    ServerSelectionTimeoutError,
    BulkWriteError,
    DuplicateKeyError,
    OperationFailure,
    PyMongoError
)
from bson import ObjectId
from bson.errors import InvalidId

from middleware.error_handler import ConflictException, TransientException

logger = logging.getLogger(__name__)

TENANT_FIELD = "politicianId"

DUPLICATE_KEY = 11000
WRITE_CONFLICT = 112


@contextmanager
def translate_persistence_errors(operation: str) -> Generator[None, None, None]:
    """Re-raise driver failures as TransientException for the caller."""
    try:
        yield
    except PyMongoError as e:
        logger.error(f"Persistence failure during {operation}: {e}")
        raise TransientException(f"Persistence failure during {operation}") from e


def is_write_conflict(error: PyMongoError) -> bool:
    """True when the server rejected a write because another writer got there first."""
    if isinstance(error, DuplicateKeyError):
        return True
    if isinstance(error, BulkWriteError):
        return any(
            write_error.get("code") == DUPLICATE_KEY
            for write_error in error.details.get("writeErrors", [])
        )
    if isinstance(error, OperationFailure):
        return error.code == WRITE_CONFLICT or error.has_error_label("TransientTransactionError")
    return False


@contextmanager
def translate_write_conflicts(message: str) -> Generator[None, None, None]:
    """Re-raise lost write races as ConflictException; other driver failures pass through."""
    try:
        yield
    except PyMongoError as e:
        if not is_write_conflict(e):
            raise
        logger.warning(f"Write conflict: {message}: {e}")
        raise ConflictException(message) from e


class MongoDBService:
    """MongoDB service with tenant-scoped operations and connection pooling."""

    def __init__(self, connection_string: str = None, database_name: str = None):
        """Initialize MongoDB service with connection pooling."""
        self.connection_string = connection_string or os.getenv(
            'MONGODB_URI',
            'mongodb://localhost:27017/gabinete_dev'
        )
        self.database_name = database_name or os.getenv('MONGODB_DATABASE', 'gabinete_dev')
        self._client: Optional[MongoClient] = None
        self._database: Optional[Database] = None

        # Connection pool settings
        self.max_pool_size = int(os.getenv('MONGODB_MAX_POOL_SIZE', '10'))
        self.min_pool_size = int(os.getenv('MONGODB_MIN_POOL_SIZE', '1'))
        self.max_idle_time_ms = int(os.getenv('MONGODB_MAX_IDLE_TIME_MS', '30000'))
        self.server_selection_timeout_ms = int(os.getenv('MONGODB_SERVER_SELECTION_TIMEOUT_MS', '5000'))

        logger.info(f"MongoDB service initialized for database: {self.database_name}")

    @property
    def client(self) -> MongoClient:
        """Get MongoDB client with connection pooling."""
        if self._client is None:
            try:
                self._client = MongoClient(
                    self.connection_string,
                    maxPoolSize=self.max_pool_size,
                    minPoolSize=self.min_pool_size,
                    maxIdleTimeMS=self.max_idle_time_ms,
                    serverSelectionTimeoutMS=self.server_selection_timeout_ms,
                    retryWrites=True,
                    retryReads=True
                )
                # Test connection
                self._client.admin.command('ping')
                logger.info("MongoDB connection established successfully")
            except (ConnectionFailure, ServerSelectionTimeoutError) as e:
                logger.error(f"Failed to connect to MongoDB: {e}")
                raise

        return self._client

    @property
    def database(self) -> Database:
        """Get MongoDB database."""
        if self._database is None:
            self._database = self.client[self.database_name]
        return self._database

    def get_collection(self, collection_name: str) -> Collection:
        """Get MongoDB collection."""
        return self.database[collection_name]

    def close_connection(self) -> None:
        """Close MongoDB connection."""
        if self._client:
            self._client.close()
            self._client = None
            self._database = None
            logger.info("MongoDB connection closed")

    def health_check(self) -> Dict[str, Any]:
        """Check MongoDB connection health."""
        try:
            result = self.client.admin.command('ping')
            server_info = self.client.server_info()

            return {
                'status': 'healthy',
                'ping': result.get('ok') == 1,
                'version': server_info.get('version'),
                'database': self.database_name,
                'connection_pool_size': self.max_pool_size
            }
        except Exception as e:
            logger.error(f"MongoDB health check failed: {e}")
            return {
                'status': 'unhealthy',
                'error': str(e),
                'database': self.database_name
            }

    @contextmanager
    def transaction(self) -> Generator[ClientSession, None, None]:
        """
        Run a block inside a multi-document transaction.

        The transaction commits when the block exits normally and aborts
        when it raises. Requires a replica set deployment.
        """
        with self.client.start_session() as session:
            with session.start_transaction():
                yield session

    def _validate_object_id(self, doc_id: str) -> ObjectId:
        """Validate and convert string ID to ObjectId."""
        try:
            return ObjectId(doc_id)
        except (InvalidId, TypeError):
            raise ValueError(f"Invalid ObjectId format: {doc_id}")

    def _build_tenant_query(self, politician_id: str, filters: Dict = None,
                            include_deleted: bool = False) -> Dict:
        """Build tenant-scoped query with optional filters."""
        query = {TENANT_FIELD: politician_id}

        # Exclude soft-deleted records by default
        if not include_deleted:
            query["deletedAt"] = None

        if filters:
            query.update(filters)

        return query

    def _add_timestamps(self, document: Dict, user_id: str, is_update: bool = False) -> Dict:
        """Add creation and update timestamps to document."""
        now = datetime.utcnow()

        if not is_update:
            document.setdefault("createdAt", now)
            document["createdBy"] = user_id

        document["updatedAt"] = now
        document["updatedBy"] = user_id

        return document

    def _prepare_insert(self, document: Dict, user_id: str) -> Dict:
        document = self._add_timestamps(dict(document), user_id)
        doc_id = document.pop("id", None)
        if "_id" not in document:
            document["_id"] = ObjectId(doc_id) if doc_id and ObjectId.is_valid(doc_id) else ObjectId()
        return document

    @staticmethod
    def _normalize(document: Dict) -> Dict:
        document["id"] = str(document.pop("_id"))
        return document

    # CRUD operations with tenant scoping

    def create(self, collection: str, document: Dict, user_id: str,
               session: Optional[ClientSession] = None) -> str:
        """Create a new document; the document carries its own tenant field."""
        try:
            document = self._prepare_insert(document, user_id)
            result = self.get_collection(collection).insert_one(document, session=session)

            logger.info(f"Created document in {collection}: {result.inserted_id}")
            return str(result.inserted_id)

        except DuplicateKeyError as e:
            logger.error(f"Duplicate key error in {collection}: {e}")
            raise ValueError("Document with this identifier already exists")
        except Exception as e:
            logger.error(f"Failed to create document in {collection}: {e}")
            raise

    def insert_many(self, collection: str, documents: List[Dict], user_id: str,
                    session: Optional[ClientSession] = None) -> List[str]:
        """Insert several documents; atomic only when run inside a transaction."""
        if not documents:
            return []

        try:
            prepared = [self._prepare_insert(document, user_id) for document in documents]
            result = self.get_collection(collection).insert_many(
                prepared, ordered=True, session=session
            )

            logger.info(f"Inserted {len(result.inserted_ids)} documents in {collection}")
            return [str(inserted_id) for inserted_id in result.inserted_ids]

        except Exception as e:
            logger.error(f"Failed to insert documents in {collection}: {e}")
            raise

    def find_by_org(self, collection: str, politician_id: str, filters: Dict = None,
                    include_deleted: bool = False, sort_by: Optional[str] = None,
                    sort_order: int = ASCENDING,
                    session: Optional[ClientSession] = None) -> List[Dict]:
        """Find documents by tenant with optional filters."""
        try:
            query = self._build_tenant_query(politician_id, filters, include_deleted)
            cursor = self.get_collection(collection).find(query, session=session)
            if sort_by:
                cursor = cursor.sort(sort_by, sort_order)

            documents = [self._normalize(doc) for doc in cursor]

            logger.debug(f"Found {len(documents)} documents in {collection} for tenant {politician_id}")
            return documents

        except Exception as e:
            logger.error(f"Failed to find documents in {collection}: {e}")
            raise

    def find_one_by_org(self, collection: str, politician_id: str, doc_id: str,
                        include_deleted: bool = False,
                        session: Optional[ClientSession] = None) -> Optional[Dict]:
        """Find a single document by tenant and ID."""
        try:
            object_id = self._validate_object_id(doc_id)
            query = self._build_tenant_query(politician_id, {"_id": object_id}, include_deleted)

            document = self.get_collection(collection).find_one(query, session=session)

            if document:
                logger.debug(f"Found document {doc_id} in {collection}")
                return self._normalize(document)

            logger.debug(f"Document {doc_id} not found in {collection} for tenant {politician_id}")
            return None

        except ValueError as e:
            logger.warning(f"Invalid document ID {doc_id}: {e}")
            return None
        except Exception as e:
            logger.error(f"Failed to find document {doc_id} in {collection}: {e}")
            raise

    def update_by_org(self, collection: str, politician_id: str, doc_id: str,
                      updates: Dict, user_id: str,
                      session: Optional[ClientSession] = None) -> bool:
        """Update a document by tenant and ID."""
        return self.compare_and_set_by_org(
            collection, politician_id, doc_id, {}, updates, user_id, session=session
        )

    def compare_and_set_by_org(self, collection: str, politician_id: str, doc_id: str,
                               expected: Dict, updates: Dict, user_id: str,
                               session: Optional[ClientSession] = None) -> bool:
        """
        Update a document only while it still holds the expected field values.

        Returns:
            True if the document matched and was written, False if another
            writer changed it first (or it does not exist)
        """
        try:
            object_id = self._validate_object_id(doc_id)
            query = self._build_tenant_query(politician_id, {"_id": object_id, **expected})

            updates = self._add_timestamps(dict(updates), user_id, is_update=True)
            result = self.get_collection(collection).update_one(
                query, {"$set": updates}, session=session
            )

            if result.matched_count > 0:
                logger.info(f"Updated document {doc_id} in {collection}")
                return True

            logger.warning(
                f"No document updated for {doc_id} in {collection}",
                extra={"expected": list(expected.keys())}
            )
            return False

        except ValueError as e:
            logger.warning(f"Invalid document ID {doc_id}: {e}")
            return False
        except Exception as e:
            logger.error(f"Failed to update document {doc_id} in {collection}: {e}")
            raise

    def count_by_org(self, collection: str, politician_id: str, filters: Dict = None,
                     include_deleted: bool = False,
                     session: Optional[ClientSession] = None) -> int:
        """Count documents by tenant with optional filters."""
        try:
            query = self._build_tenant_query(politician_id, filters, include_deleted)
            count = self.get_collection(collection).count_documents(query, session=session)

            logger.debug(f"Counted {count} documents in {collection} for tenant {politician_id}")
            return count

        except Exception as e:
            logger.error(f"Failed to count documents in {collection}: {e}")
            raise

    # Index management

    def create_indexes(self) -> None:
        """Create performance indexes for all collections."""
        try:
            logger.info("Creating MongoDB indexes...")

            tasks = self.get_collection("tasks")
            tasks.create_index([(TENANT_FIELD, ASCENDING), ("status", ASCENDING), ("deadline", ASCENDING)])
            tasks.create_index([(TENANT_FIELD, ASCENDING), ("deletedAt", ASCENDING)])

            workflows = self.get_collection("workflows")
            workflows.create_index([(TENANT_FIELD, ASCENDING), ("categoryId", ASCENDING), ("subcategory", ASCENDING)])

            steps = self.get_collection("task_workflow_steps")
            steps.create_index([(TENANT_FIELD, ASCENDING), ("taskId", ASCENDING), ("stepNumber", ASCENDING)])
            # One instance per (task, step definition)
            steps.create_index([("taskId", ASCENDING), ("stepNumber", ASCENDING)], unique=True)

            events = self.get_collection("events")
            events.create_index([(TENANT_FIELD, ASCENDING), ("status", ASCENDING), ("date", ASCENDING)])
            events.create_index([(TENANT_FIELD, ASCENDING), ("deletedAt", ASCENDING)])

            approvals = self.get_collection("event_approvals")
            approvals.create_index([("eventId", ASCENDING), ("approvalLevel", ASCENDING)], unique=True)
            approvals.create_index([(TENANT_FIELD, ASCENDING), ("approverRole", ASCENDING), ("status", ASCENDING)])

            settings = self.get_collection("calendar_settings")
            settings.create_index(TENANT_FIELD, unique=True)

            audit_logs = self.get_collection("audit_logs")
            audit_logs.create_index([(TENANT_FIELD, ASCENDING), ("timestamp", DESCENDING)])
            audit_logs.create_index([(TENANT_FIELD, ASCENDING), ("entity", ASCENDING), ("timestamp", DESCENDING)])
            audit_logs.create_index("traceId")

            logger.info("MongoDB indexes created successfully")

        except Exception as e:
            logger.error(f"Failed to create MongoDB indexes: {e}")
            raise


# Singleton instance for application use
_mongodb_service: Optional[MongoDBService] = None


def get_mongodb_service() -> MongoDBService:
    """Get singleton MongoDB service instance."""
    global _mongodb_service
    if _mongodb_service is None:
        _mongodb_service = MongoDBService()
    return _mongodb_service


def close_mongodb_connection() -> None:
    """Close MongoDB connection (for cleanup)."""
    global _mongodb_service
    if _mongodb_service:
        _mongodb_service.close_connection()
        _mongodb_service = None
