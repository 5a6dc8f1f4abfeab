# -*- coding: utf-8 -*-
# SPDX-License-Identifier: Apache-2.0

"""
MongoDB document store with connection pooling and conditional updates.
"""

import os
import logging
from contextlib import contextmanager
from typing import List, Dict, Optional, Any, Tuple

import pymongo
from pymongo import MongoClient, ASCENDING, DESCENDING, ReturnDocument
from pymongo.collection import Collection
from pymongo.database import Database
from pymongo.errors import (
    ConnectionFailure,
    ServerSelectionTimeoutError,
    DuplicateKeyError,
    PyMongoError,
)

from models.base import plain_value
from domain.errors import DeadlineExceededError
from .store import (
    ACTORS,
    AUDIT_ENTRIES,
    DONATIONS,
    NOTIFICATIONS,
    PICKUPS,
    SIDE_EFFECT_LEDGER,
    DocumentStore,
)

logger = logging.getLogger(__name__)


class MongoDBService(DocumentStore):
    """MongoDB implementation of the document store with connection pooling."""

    def __init__(self, connection_string: str = None, database_name: str = None):
        """Initialize MongoDB service with connection pooling."""
        self.connection_string = connection_string or os.getenv(
            'MONGODB_URI',
            'mongodb://localhost:27017/food_rescue_dev'
        )
        self.database_name = database_name or os.getenv('MONGODB_DATABASE', 'food_rescue_dev')
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
        except PyMongoError as e:
            logger.error(f"MongoDB health check failed: {e}")
            return {
                'status': 'unhealthy',
                'error': str(e),
                'database': self.database_name
            }

    @contextmanager
    def deadline(self, timeout: Optional[float]):
        """Run the enclosed operations under ``pymongo.timeout``."""
        if timeout is None:
            yield
            return
        try:
            with pymongo.timeout(timeout):
                yield
        except PyMongoError as e:
            if e.timeout:
                logger.warning(f"MongoDB operation exceeded deadline of {timeout}s: {e}")
                raise DeadlineExceededError(f"Operation exceeded deadline of {timeout}s") from e
            raise

    # Document operations

    def insert(self, collection: str, document: Dict[str, Any]) -> str:
        """Insert a document with a caller-assigned ``_id``."""
        try:
            result = self.get_collection(collection).insert_one(plain_value(document))
            logger.info(f"Created document in {collection}: {result.inserted_id}")
            return str(result.inserted_id)
        except DuplicateKeyError as e:
            logger.error(f"Duplicate key error in {collection}: {e}")
            raise ValueError("Document with this identifier already exists")
        except PyMongoError as e:
            logger.error(f"Failed to create document in {collection}: {e}")
            raise

    def insert_if_absent(self, collection: str, document: Dict[str, Any]) -> bool:
        try:
            self.get_collection(collection).insert_one(plain_value(document))
            return True
        except DuplicateKeyError:
            logger.debug(f"Document {document.get('_id')} already present in {collection}")
            return False

    def find_one(self, collection: str, query: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        try:
            return self.get_collection(collection).find_one(plain_value(query))
        except PyMongoError as e:
            logger.error(f"Failed to find document in {collection}: {e}")
            raise

    def find(
        self,
        collection: str,
        query: Optional[Dict[str, Any]] = None,
        sort: Optional[List[Tuple[str, int]]] = None,
        skip: int = 0,
        limit: int = 0,
    ) -> List[Dict[str, Any]]:
        try:
            cursor = self.get_collection(collection).find(plain_value(query or {}))
            if sort:
                cursor = cursor.sort(sort)
            if skip:
                cursor = cursor.skip(skip)
            if limit:
                cursor = cursor.limit(limit)
            documents = list(cursor)
            logger.debug(f"Found {len(documents)} documents in {collection}")
            return documents
        except PyMongoError as e:
            logger.error(f"Failed to find documents in {collection}: {e}")
            raise

    def count(self, collection: str, query: Optional[Dict[str, Any]] = None) -> int:
        try:
            return self.get_collection(collection).count_documents(plain_value(query or {}))
        except PyMongoError as e:
            logger.error(f"Failed to count documents in {collection}: {e}")
            raise

    def conditional_update(
        self,
        collection: str,
        query: Dict[str, Any],
        set_fields: Optional[Dict[str, Any]] = None,
        inc: Optional[Dict[str, int]] = None,
        unset: Optional[List[str]] = None,
    ) -> Optional[Dict[str, Any]]:
        """Apply the update only if ``query`` still matches, returning the new document."""
        update: Dict[str, Any] = {}
        if set_fields:
            update["$set"] = plain_value(set_fields)
        if inc:
            update["$inc"] = dict(inc)
        if unset:
            update["$unset"] = {path: "" for path in unset}
        try:
            document = self.get_collection(collection).find_one_and_update(
                plain_value(query),
                update,
                return_document=ReturnDocument.AFTER,
            )
        except PyMongoError as e:
            logger.error(f"Conditional update failed in {collection}: {e}")
            raise
        if document is None:
            logger.debug(f"Conditional update matched nothing in {collection}")
        return document

    def delete(self, collection: str, query: Dict[str, Any]) -> bool:
        try:
            result = self.get_collection(collection).delete_one(plain_value(query))
        except PyMongoError as e:
            logger.error(f"Failed to delete document in {collection}: {e}")
            raise
        return result.deleted_count == 1

    # Index Management

    def create_indexes(self) -> None:
        """Create indexes backing the workflow queries."""
        try:
            logger.info("Creating MongoDB indexes...")

            donations = self.get_collection(DONATIONS)
            donations.create_index([("status", ASCENDING), ("expiryAt", ASCENDING)])
            donations.create_index([("ownerId", ASCENDING), ("createdAt", DESCENDING)])
            donations.create_index([("claimedBy", ASCENDING), ("createdAt", DESCENDING)])

            pickups = self.get_collection(PICKUPS)
            pickups.create_index("donationId")
            pickups.create_index([("volunteerId", ASCENDING), ("status", ASCENDING)])
            pickups.create_index([("donorId", ASCENDING), ("createdAt", DESCENDING)])
            pickups.create_index([("recipientId", ASCENDING), ("createdAt", DESCENDING)])

            actors = self.get_collection(ACTORS)
            actors.create_index([("role", ASCENDING), ("isActive", ASCENDING), ("isVerified", ASCENDING)])

            notifications = self.get_collection(NOTIFICATIONS)
            notifications.create_index([("recipientActorId", ASCENDING), ("isRead", ASCENDING), ("createdAt", DESCENDING)])

            audit_entries = self.get_collection(AUDIT_ENTRIES)
            audit_entries.create_index([("entityId", ASCENDING), ("sequence", ASCENDING)])
            audit_entries.create_index([("performedBy", ASCENDING), ("createdAt", DESCENDING)])
            audit_entries.create_index("traceId")

            ledger = self.get_collection(SIDE_EFFECT_LEDGER)
            ledger.create_index("completedAt")

            logger.info("MongoDB indexes created successfully")

        except PyMongoError as e:
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
