from functools import lru_cache

from google.cloud import firestore

from procsync.core.config import settings


# One client for the whole process; Firestore clients are safe to share
# across concurrent operations
@lru_cache
def get_firestore() -> firestore.AsyncClient:
    options = {}
    if settings.FIRESTORE_PROJECT:
        options["project"] = settings.FIRESTORE_PROJECT
    if settings.FIRESTORE_DATABASE:
        options["database"] = settings.FIRESTORE_DATABASE
    return firestore.AsyncClient(**options)
