#!/usr/bin/env python3
# -*- coding: utf-8 -*-
# SPDX-License-Identifier: Apache-2.0

"""
Prepare backing infrastructure for a deployment.

Creates the MongoDB indexes (including the unique keys that guard workflow
binding and approval levels) and declares the AMQP exchanges used for
notifications and calendar sync.
"""

import sys
import os
import logging

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from services.dispatch import create_dispatch_service
from services.mongodb import close_mongodb_connection, get_mongodb_service

logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)

logger = logging.getLogger(__name__)


def create_indexes() -> bool:
    mongodb_service = get_mongodb_service()
    try:
        health = mongodb_service.health_check()
        if health['status'] != 'healthy':
            logger.error(f"MongoDB is not healthy: {health}")
            return False

        logger.info(f"Creating indexes on {health['database']} (MongoDB {health['version']})")
        mongodb_service.create_indexes()
        return True
    finally:
        close_mongodb_connection()


def declare_exchanges() -> bool:
    return create_dispatch_service().declare_exchanges()


def main():
    ok = create_indexes()

    if os.getenv('AMQP_URL'):
        ok = declare_exchanges() and ok
    else:
        logger.info("AMQP_URL not set, skipping exchange declaration")

    if not ok:
        sys.exit(1)
    logger.info("Infrastructure ready")


if __name__ == "__main__":
    main()
