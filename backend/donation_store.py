import logging
from typing import Any, Dict, Optional

from pymongo import DESCENDING
from pymongo.errors import DuplicateKeyError, PyMongoError

from backend.errors import DuplicateDonation, StorageUnavailable

logger = logging.getLogger(__name__)


class DonationStore:
    """Donation documents in the ``donations`` collection.

    Documents are plain dicts keyed by ``order_id``; the Mongo ``_id`` never
    leaves this class.
    """

    def __init__(self, db):
        self.collection = db.donations

    async def ensure_indexes(self):
        await self.collection.create_index("order_id", unique=True)
        await self.collection.create_index("payment_id", unique=True, sparse=True)
        await self.collection.create_index("status")
        await self.collection.create_index([("created_at", DESCENDING)])

    async def insert(self, doc: Dict[str, Any]) -> Dict[str, Any]:
        try:
            await self.collection.insert_one(doc)
        except DuplicateKeyError as e:
            logger.error(f"Duplicate donation rejected: order_id={doc.get('order_id')} payment_id={doc.get('payment_id')}")
            raise DuplicateDonation() from e
        except PyMongoError as e:
            logger.error(f"Failed to store donation {doc.get('order_id')}: {e}")
            raise StorageUnavailable() from e
        doc.pop("_id", None)
        return doc

    async def find_by_order_id(self, order_id: str) -> Optional[Dict[str, Any]]:
        try:
            return await self.collection.find_one({"order_id": order_id}, {"_id": 0})
        except PyMongoError as e:
            logger.error(f"Failed to read donation {order_id}: {e}")
            raise StorageUnavailable() from e

    async def find_by_reference(self, payment_id: Optional[str] = None,
                                order_id: Optional[str] = None) -> Optional[Dict[str, Any]]:
        clauses = []
        if payment_id:
            clauses.append({"payment_id": payment_id})
        if order_id:
            clauses.append({"order_id": order_id})
        if not clauses:
            return None
        try:
            return await self.collection.find_one({"$or": clauses}, {"_id": 0})
        except PyMongoError as e:
            logger.error(f"Failed to look up donation payment_id={payment_id} order_id={order_id}: {e}")
            raise StorageUnavailable() from e

    async def update_status(self, order_id: str, expected_status: str, update: Dict[str, Any]) -> bool:
        """Compare-and-set on ``status``; False when another writer got there first."""
        try:
            result = await self.collection.update_one(
                {"order_id": order_id, "status": expected_status},
                {"$set": update},
            )
        except PyMongoError as e:
            logger.error(f"Failed to update donation {order_id}: {e}")
            raise StorageUnavailable() from e
        return result.matched_count > 0

    async def mark_paid(self, order_id: str, paid_at: str) -> bool:
        # only the first paid notification sets paid_at
        try:
            result = await self.collection.update_one(
                {"order_id": order_id, "paid_at": None},
                {"$set": {"paid_at": paid_at}},
            )
        except PyMongoError as e:
            logger.error(f"Failed to mark donation {order_id} paid: {e}")
            raise StorageUnavailable() from e
        return result.modified_count > 0
