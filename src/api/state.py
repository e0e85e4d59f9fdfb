"""
API State Management
====================
Process-wide store and pipeline shared by the API routes.
Set during server startup; tests may assign them directly.
"""

import logging
from typing import Optional

from importer import ImportPipeline

logger = logging.getLogger(__name__)

store = None
pipeline: Optional[ImportPipeline] = None


def get_store():
    if store is None:
        raise RuntimeError("Store not initialized - server startup may have failed")
    return store


def get_pipeline() -> ImportPipeline:
    if pipeline is None:
        raise RuntimeError("Import pipeline not initialized - server startup may have failed")
    return pipeline
