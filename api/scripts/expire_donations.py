#!/usr/bin/env python3
# -*- coding: utf-8 -*-
# SPDX-License-Identifier: Apache-2.0

"""
Expiry sweep: move unclaimed donations past their expiry to ``expired``.

Meant to run periodically (cron or a scheduler job). Each expiry goes
through the normal side-effect pipeline, so donors are notified and the
audit trail records the transition.
"""

import sys
import os
import logging

# Make the api packages importable when run as a script
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from pymongo.errors import PyMongoError

from app import create_publisher
from observability.config import setup_observability
from services.audit import AuditService
from services.dispatcher import SideEffectDispatcher
from services.donation_workflow import DonationStateMachine
from services.inbox import InboxService
from services.mongodb import get_mongodb_service, close_mongodb_connection

logger = logging.getLogger(__name__)


def run_sweep(store, publisher) -> int:
    """Run one sweep and return the number of expired donations."""
    dispatcher = SideEffectDispatcher(store, AuditService(store), InboxService(store), publisher)
    expired = DonationStateMachine(store, dispatcher).expire_overdue()
    return len(expired)


def main() -> int:
    setup_observability(os.getenv('ENVIRONMENT', 'development'))
    publisher = create_publisher(os.getenv('REALTIME_BACKEND', 'memory'))
    try:
        count = run_sweep(get_mongodb_service(), publisher)
        logger.info("Donation expiry sweep complete", extra={"extra_fields": {"expired_count": count}})
        return 0
    except PyMongoError as e:
        logger.error(f"Donation expiry sweep failed: {e}")
        return 1
    finally:
        publisher.flush(timeout=10)
        publisher.close()
        close_mongodb_connection()


if __name__ == "__main__":
    sys.exit(main())
