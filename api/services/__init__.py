# -*- coding: utf-8 -*-
# SPDX-License-Identifier: Apache-2.0

"""
Services package - External integrations and side effects.
"""

from .mongodb import MongoDBService, get_mongodb_service, close_mongodb_connection
from .dispatch import DispatchService, DispatchConfig, PublishResult, create_dispatch_service

__all__ = [
    "MongoDBService",
    "get_mongodb_service",
    "close_mongodb_connection",
    "DispatchService",
    "DispatchConfig",
    "PublishResult",
    "create_dispatch_service"
]
