# -*- coding: utf-8 -*-
# SPDX-License-Identifier: Apache-2.0

"""
Services package - Persistence, messaging and the workflow state machines.
"""

from .store import DocumentStore, InMemoryDocumentStore, PaginationResult
from .mongodb import MongoDBService, get_mongodb_service, close_mongodb_connection
from .realtime import EventPublisher, InMemoryEventPublisher, QueuedEventPublisher
from .amqp import AMQPConfig, AMQPEventPublisher, PublishResult, create_amqp_publisher
from .redis import RedisEventPublisher
from .audit import AuditService, AuditFilters
from .inbox import InboxService
from .dispatcher import SideEffectDispatcher
from .donation_workflow import DonationStateMachine
from .claims import ClaimArbiter
from .pickup_workflow import PickupStateMachine
from .matching import MatchingService
from .actors import ActorService

__all__ = [
    "DocumentStore",
    "InMemoryDocumentStore",
    "PaginationResult",
    "MongoDBService",
    "get_mongodb_service",
    "close_mongodb_connection",
    "EventPublisher",
    "InMemoryEventPublisher",
    "QueuedEventPublisher",
    "AMQPConfig",
    "AMQPEventPublisher",
    "PublishResult",
    "create_amqp_publisher",
    "RedisEventPublisher",
    "AuditService",
    "AuditFilters",
    "InboxService",
    "SideEffectDispatcher",
    "DonationStateMachine",
    "ClaimArbiter",
    "PickupStateMachine",
    "MatchingService",
    "ActorService",
]
