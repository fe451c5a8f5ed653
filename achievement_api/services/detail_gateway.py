# achievement_api/services/detail_gateway.py
from typing import Any, Dict, Iterable, List, Optional

from beanie import PydanticObjectId

from achievement_api.core.deadline import bounded
from achievement_api.core.errors import NotFound, ValidationFailed
from achievement_api.models.achievement_detail import AchievementContent, AchievementDetail, Attachment
from achievement_api.services.store_errors import mongo_errors
from achievement_api.utils.dates import utcnow

# fields a patch may overwrite; created_at and deleted_at are never patched
REPLACEABLE_FIELDS = frozenset({"type", "title", "description", "tags", "points", "details"})

LIVE = {"deleted_at": None}


def _oid(detail_id: str) -> PydanticObjectId:
    return PydanticObjectId(detail_id)


def _scope(student_ids: Optional[Iterable[str]]) -> Dict[str, Any]:
    query = dict(LIVE)
    if student_ids is not None:
        query["student_id"] = {"$in": list(student_ids)}
    return query


class DetailGateway:
    """Document side of an achievement, stored in the ``achievements`` collection."""

    @property
    def collection(self):
        return AchievementDetail.get_motor_collection()

    async def insert(self, content: AchievementContent) -> str:
        detail = AchievementDetail(**content.model_dump(), attachments=[])
        with mongo_errors("insert detail"):
            await bounded(detail.insert(), "insert detail")
        return str(detail.id)

    async def get_by_id(self, detail_id: str) -> Optional[AchievementDetail]:
        """Fetch a detail document whether or not it is soft-deleted."""
        with mongo_errors("get detail"):
            return await bounded(AchievementDetail.get(_oid(detail_id)), "get detail")

    async def get_by_ids(self, detail_ids: Iterable[str]) -> List[AchievementDetail]:
        """Multi-get of live documents; unknown or deleted ids are simply absent."""
        with mongo_errors("get details"):
            oids = [_oid(i) for i in detail_ids]
            if not oids:
                return []
            query = dict(LIVE)
            query["_id"] = {"$in": oids}
            return await bounded(AchievementDetail.find(query).to_list(), "get details")

    async def replace_fields(self, detail_id: str, patch: Dict[str, Any]) -> None:
        unknown = set(patch) - REPLACEABLE_FIELDS
        if unknown:
            raise ValidationFailed(f"fields cannot be updated: {', '.join(sorted(unknown))}")
        fields = dict(patch)
        fields["updated_at"] = utcnow()
        with mongo_errors("update detail"):
            result = await bounded(
                self.collection.update_one({"_id": _oid(detail_id), **LIVE}, {"$set": fields}),
                "update detail",
            )
        if result.matched_count == 0:
            raise NotFound("achievement not found")

    async def soft_delete(self, detail_id: str) -> None:
        now = utcnow()
        with mongo_errors("delete detail"):
            result = await bounded(
                self.collection.update_one(
                    {"_id": _oid(detail_id), **LIVE},
                    {"$set": {"deleted_at": now, "updated_at": now}},
                ),
                "delete detail",
            )
        if result.matched_count == 0:
            raise NotFound("achievement not found")

    async def restore(self, detail_id: str) -> None:
        """Undo a soft delete."""
        with mongo_errors("restore detail"):
            result = await bounded(
                self.collection.update_one(
                    {"_id": _oid(detail_id)},
                    {"$set": {"deleted_at": None, "updated_at": utcnow()}},
                ),
                "restore detail",
            )
        if result.matched_count == 0:
            raise NotFound("achievement not found")

    async def hard_delete(self, detail_id: str) -> bool:
        with mongo_errors("remove detail"):
            result = await bounded(self.collection.delete_one({"_id": _oid(detail_id)}), "remove detail")
        return result.deleted_count > 0

    async def append_attachment(self, detail_id: str, attachment: Attachment) -> None:
        with mongo_errors("append attachment"):
            oid = _oid(detail_id)
            # older documents may carry a null or missing attachments field
            await bounded(
                self.collection.update_one(
                    {"_id": oid, "$or": [{"attachments": None}, {"attachments": {"$exists": False}}]},
                    {"$set": {"attachments": []}},
                ),
                "append attachment",
            )
            result = await bounded(
                self.collection.update_one(
                    {"_id": oid, **LIVE},
                    {
                        "$push": {"attachments": attachment.model_dump()},
                        "$set": {"updated_at": utcnow()},
                    },
                ),
                "append attachment",
            )
        if result.matched_count == 0:
            raise NotFound("achievement not found")

    async def count(self, student_ids: Optional[Iterable[str]] = None) -> int:
        with mongo_errors("count details"):
            return await bounded(self.collection.count_documents(_scope(student_ids)), "count details")

    # aggregations

    async def _group_count(self, operation: str, match: Dict[str, Any], key: Any) -> Dict[str, int]:
        pipeline = [
            {"$match": match},
            {"$group": {"_id": key, "count": {"$sum": 1}}},
            {"$sort": {"count": -1, "_id": 1}},
        ]
        with mongo_errors(operation):
            rows = await bounded(self.collection.aggregate(pipeline).to_list(length=None), operation)
        return {str(row["_id"]): row["count"] for row in rows if row["_id"] not in (None, "")}

    async def type_distribution(self, student_ids: Optional[Iterable[str]] = None) -> Dict[str, int]:
        return await self._group_count("type distribution", _scope(student_ids), "$type")

    async def event_year_distribution(self, student_ids: Optional[Iterable[str]] = None) -> Dict[str, int]:
        match = _scope(student_ids)
        match["details.event_date"] = {"$type": "string", "$ne": ""}
        return await self._group_count(
            "event year distribution",
            match,
            {"$arrayElemAt": [{"$split": ["$details.event_date", "-"]}, 0]},
        )

    async def competition_level_distribution(self, student_ids: Optional[Iterable[str]] = None) -> Dict[str, int]:
        match = _scope(student_ids)
        match["details.competition_level"] = {"$type": "string", "$ne": ""}
        return await self._group_count("competition level distribution", match, "$details.competition_level")
