# SPDX-License-Identifier: Apache-2.0

"""
Food Rescue Workflow API - Flask Application Entry Point

Builds the Flask application with OpenAPI 3.0 support, wires the document
store, real-time publisher and workflow services, and registers the route
blueprints. Run with ``flask --app app:create_app run`` or a WSGI server
pointed at ``app:create_app()``.
"""

import os
from datetime import datetime
from typing import Callable, Optional

from flask import jsonify
from flask_openapi3 import OpenAPI, Info, Tag

from models.base import utcnow
from models.responses import HealthCheckResponse
from observability.config import setup_observability
from observability.middleware import add_observability_middleware
from middleware.error_handler import ErrorHandlerMiddleware
from services.store import DocumentStore, InMemoryDocumentStore
from services.mongodb import MongoDBService
from services.realtime import EventPublisher, InMemoryEventPublisher, QueuedEventPublisher
from services.amqp import create_amqp_publisher
from services.redis import RedisEventPublisher
from services.audit import AuditService
from services.inbox import InboxService
from services.dispatcher import SideEffectDispatcher
from services.donation_workflow import DonationStateMachine
from services.claims import ClaimArbiter
from services.pickup_workflow import PickupStateMachine
from services.matching import MatchingService
from services.actors import ActorService
from domain.matching import DEFAULT_TOP_K

API_VERSION = "1.0.0"

info = Info(
    title="Food Rescue Workflow API",
    version=API_VERSION,
    description="Donation-to-delivery workflow for surplus food rescue"
)

health_tag = Tag(name="Health", description="System health and status")


def create_store(backend: str) -> DocumentStore:
    """Document store for ``STORE_BACKEND`` (mongodb or memory)."""
    if backend == 'memory':
        return InMemoryDocumentStore()
    if backend == 'mongodb':
        return MongoDBService(os.getenv('MONGODB_URI'), os.getenv('MONGODB_DATABASE'))
    raise ValueError(f"Unknown STORE_BACKEND: {backend}")


def create_publisher(backend: str) -> EventPublisher:
    """
    Real-time publisher for ``REALTIME_BACKEND`` (memory, amqp or redis).

    Broker-backed publishers are wrapped in a queue so transitions never wait
    on the broker.
    """
    if backend == 'memory':
        return InMemoryEventPublisher()
    if backend == 'amqp':
        return QueuedEventPublisher(create_amqp_publisher())
    if backend == 'redis':
        return QueuedEventPublisher(RedisEventPublisher(os.getenv('REDIS_URL')))
    raise ValueError(f"Unknown REALTIME_BACKEND: {backend}")


def create_app(
    store: Optional[DocumentStore] = None,
    publisher: Optional[EventPublisher] = None,
    clock: Callable[[], datetime] = utcnow,
    testing: bool = False,
) -> OpenAPI:
    """
    Application factory.

    Args:
        store: Document store; built from ``STORE_BACKEND`` when omitted
        publisher: Real-time publisher; built from ``REALTIME_BACKEND`` when omitted
        clock: Source of the current UTC time for the workflow services
        testing: Skip tracing and logging setup

    Returns:
        Configured Flask application
    """
    environment = os.getenv('ENVIRONMENT', 'development')
    if not testing:
        setup_observability(environment)

    app = OpenAPI(__name__, info=info)

    # Environment configuration
    app.config['ENVIRONMENT'] = environment
    app.config['DEBUG'] = environment == 'development'
    app.config['TESTING'] = testing
    app.config['STORE_BACKEND'] = os.getenv('STORE_BACKEND', 'mongodb')
    app.config['REALTIME_BACKEND'] = os.getenv('REALTIME_BACKEND', 'memory')
    app.config['OTEL_ENABLED'] = os.getenv('OTEL_ENABLED', 'true').lower() == 'true'
    app.config['MATCH_TOP_K'] = int(os.getenv('MATCH_TOP_K', str(DEFAULT_TOP_K)))

    add_observability_middleware(app, instrument=app.config['OTEL_ENABLED'] and not testing)
    ErrorHandlerMiddleware(app)

    # Initialize services
    store = store if store is not None else create_store(app.config['STORE_BACKEND'])
    publisher = publisher if publisher is not None else create_publisher(app.config['REALTIME_BACKEND'])
    audit_service = AuditService(store)
    inbox = InboxService(store)
    dispatcher = SideEffectDispatcher(store, audit_service, inbox, publisher)

    # Make services available to routes
    app.store = store
    app.publisher = publisher
    app.audit_service = audit_service
    app.inbox = inbox
    app.dispatcher = dispatcher
    app.donations = DonationStateMachine(store, dispatcher, clock=clock)
    app.claims = ClaimArbiter(store, dispatcher, clock=clock)
    app.pickups = PickupStateMachine(store, dispatcher, clock=clock)
    app.matching = MatchingService(store, top_k=app.config['MATCH_TOP_K'])
    app.actors = ActorService(store, dispatcher, clock=clock)

    # Register routes
    from routes.donations import donations_bp
    from routes.pickups import pickups_bp
    from routes.volunteers import volunteers_bp
    from routes.actors import actors_bp
    from routes.notifications import notifications_bp
    from routes.audit import audit_bp

    app.register_api(donations_bp)
    app.register_api(pickups_bp)
    app.register_api(volunteers_bp)
    app.register_api(actors_bp)
    app.register_api(notifications_bp)
    app.register_api(audit_bp)

    @app.get('/api/healthz', tags=[health_tag])
    def health_check():
        """Health of the document store and the real-time publisher."""
        dependencies = {
            "store": app.store.health_check(),
            "realtime": app.publisher.health_check()
        }
        healthy = all(dep.get("status") == "healthy" for dep in dependencies.values())
        response = HealthCheckResponse(
            status="healthy" if healthy else "unhealthy",
            version=API_VERSION,
            environment=app.config['ENVIRONMENT'],
            timestamp=utcnow(),
            dependencies=dependencies
        )
        return jsonify(response.model_dump(mode="json")), 200 if healthy else 503

    return app


if __name__ == '__main__':
    # Development server
    application = create_app()
    application.run(
        host='0.0.0.0',
        port=int(os.getenv('PORT', 5000)),
        debug=application.config['DEBUG']
    )
