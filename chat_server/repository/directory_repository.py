"""Read-only lookups into collections owned by other marketplace services.

The chat engine stores only opaque user ids and item references. These
repositories resolve them to display data for REST responses:
- users: name, email, role
- crops: listing name and price

Lookups are best-effort enrichment. A missing document yields no entry,
and lookup failures are logged rather than failing the chat request.
"""
import logging
from typing import Any, Dict, Iterable, Optional

from bson import ObjectId
from bson.errors import InvalidId
from pymongo.errors import PyMongoError

logger = logging.getLogger(__name__)


def _id_candidates(ids: Iterable[str]) -> list:
    """Match both string ids and ObjectId-shaped ids."""
    candidates = []
    for value in ids:
        candidates.append(value)
        try:
            candidates.append(ObjectId(value))
        except (InvalidId, TypeError):
            pass
    return candidates


class _DirectoryRepository:
    collection_name = None
    fields = ()

    def __init__(self, db=None, collection=None):
        if collection is None and db is not None:
            collection = db[self.collection_name]
        self.collection = collection

    def describe_many(self, ids: Iterable[Optional[str]]) -> Dict[str, Dict[str, Any]]:
        wanted = sorted({i for i in ids if i})
        if not wanted or self.collection is None:
            return {}
        projection = {f: 1 for f in self.fields}
        try:
            docs = list(self.collection.find({'_id': {'$in': _id_candidates(wanted)}}, projection))
        except PyMongoError as e:
            logger.warning("%s lookup failed: %s", self.collection_name, e)
            return {}
        result = {}
        for doc in docs:
            key = str(doc.pop('_id'))
            result[key] = {'id': key, **doc}
        return result


class UserDirectoryRepository(_DirectoryRepository):
    collection_name = 'users'
    fields = ('name', 'email', 'role')


class CatalogRepository(_DirectoryRepository):
    collection_name = 'crops'
    fields = ('name', 'price')
