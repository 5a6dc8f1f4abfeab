#!/usr/bin/env python3
# -*- coding: utf-8 -*-
# SPDX-License-Identifier: Apache-2.0

"""
Create the MongoDB indexes behind the workflow queries.

Usage: python scripts/create_indexes.py  (reads MONGODB_URI / MONGODB_DATABASE)
"""

import sys
import os
import logging

# Make the api packages importable when run as a script
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from pymongo.errors import PyMongoError

from observability.config import setup_structured_logging
from services.mongodb import get_mongodb_service, close_mongodb_connection

logger = logging.getLogger(__name__)


def main() -> int:
    setup_structured_logging(os.getenv('ENVIRONMENT', 'development'))
    try:
        mongodb_service = get_mongodb_service()

        health = mongodb_service.health_check()
        if health['status'] != 'healthy':
            logger.error("MongoDB is not healthy", extra={"extra_fields": {"health": health}})
            return 1

        logger.info(f"Connected to MongoDB {health['version']} - Database: {health['database']}")
        mongodb_service.create_indexes()
        return 0

    except PyMongoError as e:
        logger.error(f"Failed to create indexes: {e}")
        return 1
    finally:
        close_mongodb_connection()


if __name__ == "__main__":
    sys.exit(main())
