from typing import Any, Dict, List

from pymongo import DESCENDING
from pymongo.errors import PyMongoError

from backend.donation_store import DonationStore
from backend.errors import StorageUnavailable
from backend.models import PAID_STATUSES

RECENT_LIMIT = 10
ANONYMOUS = "Anonymous"


class DonationReporter:
    """Public read side over paid donations. Nothing is cached."""

    def __init__(self, store: DonationStore):
        self.collection = store.collection

    async def recent(self, limit: int = RECENT_LIMIT) -> List[Dict[str, Any]]:
        try:
            donations = await self.collection.find(
                {"status": {"$in": list(PAID_STATUSES)}},
                {"_id": 0, "donor_name": 1, "amount_usd": 1, "donor_message": 1, "created_at": 1},
                sort=[("created_at", DESCENDING)],
                limit=limit,
            ).to_list(limit)
        except PyMongoError as e:
            raise StorageUnavailable() from e
        return [
            {
                "name": d.get("donor_name") or ANONYMOUS,
                "amount": d["amount_usd"],
                "message": d.get("donor_message"),
                "date": d.get("created_at"),
            }
            for d in donations
        ]

    async def totals(self) -> Dict[str, Any]:
        pipeline = [
            {"$match": {"status": {"$in": list(PAID_STATUSES)}}},
            {"$group": {"_id": None, "total": {"$sum": "$amount_usd"}, "count": {"$sum": 1}}},
        ]
        try:
            result = await self.collection.aggregate(pipeline).to_list(1)
        except PyMongoError as e:
            raise StorageUnavailable() from e
        total = result[0] if result else {"total": 0, "count": 0}
        return {"total_amount": total["total"], "total_donations": total["count"]}
