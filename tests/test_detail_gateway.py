"""
Tests for the document-side gateway, run against an in-memory MongoDB.
"""
import uuid
from datetime import datetime

import pytest
from beanie import init_beanie
from bson import ObjectId
from mongomock_motor import AsyncMongoMockClient

from achievement_api.core.errors import NotFound, ValidationFailed
from achievement_api.models.achievement_detail import (
    AchievementContent,
    AchievementDetail,
    AchievementDetails,
    Attachment,
)
from achievement_api.services.detail_gateway import DetailGateway

LONG_AGO = datetime(2020, 1, 1)


def content(student_id="sp1", type="competition", **details):
    return AchievementContent(
        student_id=student_id,
        type=type,
        title=f"{type} for {student_id}",
        points=10,
        details=AchievementDetails(**details),
    )


def attachment(name="certificate.pdf"):
    return Attachment(file_name=name, file_url=f"/uploads/x/{name}", file_type="application/pdf")


def naive(value: datetime) -> datetime:
    return value.replace(tzinfo=None)


@pytest.fixture
async def gateway():
    client = AsyncMongoMockClient()
    await init_beanie(database=client[f"achievements_{uuid.uuid4().hex}"], document_models=[AchievementDetail])
    return DetailGateway()


async def backdate(gateway, detail_id):
    await gateway.collection.update_one(
        {"_id": ObjectId(detail_id)},
        {"$set": {"created_at": LONG_AGO, "updated_at": LONG_AGO}},
    )


# =============================================================================
# Writes
# =============================================================================

class TestInsertAndGet:
    async def test_insert_returns_hex_id(self, gateway):
        detail_id = await gateway.insert(content(event_date="2025-09-01"))

        assert ObjectId.is_valid(detail_id)
        stored = await gateway.get_by_id(detail_id)
        assert stored.student_id == "sp1"
        assert stored.details.event_date == "2025-09-01"
        assert stored.attachments == []
        assert stored.deleted_at is None

    async def test_unknown_and_malformed_ids(self, gateway):
        assert await gateway.get_by_id(str(ObjectId())) is None
        with pytest.raises(NotFound):
            await gateway.get_by_id("not-an-object-id")

    async def test_get_by_ids_skips_deleted_and_unknown(self, gateway):
        kept = await gateway.insert(content())
        also_kept = await gateway.insert(content(student_id="sp2"))
        removed = await gateway.insert(content())
        await gateway.soft_delete(removed)

        found = await gateway.get_by_ids([kept, removed, also_kept, str(ObjectId())])

        assert {str(d.id) for d in found} == {kept, also_kept}
        assert await gateway.get_by_ids([]) == []

    async def test_get_by_id_still_returns_deleted(self, gateway):
        detail_id = await gateway.insert(content())
        await gateway.soft_delete(detail_id)

        stored = await gateway.get_by_id(detail_id)
        assert stored.deleted_at is not None


class TestReplaceFields:
    async def test_patch_stamps_updated_at_only(self, gateway):
        detail_id = await gateway.insert(content(event_date="2025-09-01"))
        await backdate(gateway, detail_id)

        await gateway.replace_fields(detail_id, {"title": "Renamed", "points": 25})

        stored = await gateway.get_by_id(detail_id)
        assert stored.title == "Renamed"
        assert stored.points == 25
        assert stored.details.event_date == "2025-09-01"
        assert naive(stored.created_at) == LONG_AGO
        assert naive(stored.updated_at) > LONG_AGO
        assert stored.deleted_at is None

    async def test_protected_fields_rejected(self, gateway):
        detail_id = await gateway.insert(content())

        for field in ("created_at", "deleted_at", "student_id", "attachments"):
            with pytest.raises(ValidationFailed):
                await gateway.replace_fields(detail_id, {field: None})

        stored = await gateway.get_by_id(detail_id)
        assert stored.student_id == "sp1"
        assert stored.deleted_at is None

    async def test_deleted_document_not_patched(self, gateway):
        detail_id = await gateway.insert(content())
        await gateway.soft_delete(detail_id)

        with pytest.raises(NotFound):
            await gateway.replace_fields(detail_id, {"title": "Too late"})
        assert (await gateway.get_by_id(detail_id)).title == "competition for sp1"


class TestDeleteAndRestore:
    async def test_soft_delete_twice_is_not_found(self, gateway):
        detail_id = await gateway.insert(content())
        await gateway.soft_delete(detail_id)

        with pytest.raises(NotFound):
            await gateway.soft_delete(detail_id)

    async def test_restore_clears_marker(self, gateway):
        detail_id = await gateway.insert(content())
        await gateway.soft_delete(detail_id)

        await gateway.restore(detail_id)

        assert (await gateway.get_by_id(detail_id)).deleted_at is None
        assert [str(d.id) for d in await gateway.get_by_ids([detail_id])] == [detail_id]

    async def test_restore_missing(self, gateway):
        with pytest.raises(NotFound):
            await gateway.restore(str(ObjectId()))

    async def test_hard_delete(self, gateway):
        detail_id = await gateway.insert(content())

        assert await gateway.hard_delete(detail_id) is True
        assert await gateway.hard_delete(detail_id) is False
        assert await gateway.get_by_id(detail_id) is None


class TestAppendAttachment:
    async def test_appends_in_order(self, gateway):
        detail_id = await gateway.insert(content())
        await backdate(gateway, detail_id)

        await gateway.append_attachment(detail_id, attachment("first.pdf"))
        await gateway.append_attachment(detail_id, attachment("second.pdf"))

        stored = await gateway.get_by_id(detail_id)
        assert [a.file_name for a in stored.attachments] == ["first.pdf", "second.pdf"]
        assert naive(stored.updated_at) > LONG_AGO

    @pytest.mark.parametrize("change", [
        {"$set": {"attachments": None}},
        {"$unset": {"attachments": ""}},
    ])
    async def test_null_or_missing_array_is_created(self, gateway, change):
        detail_id = await gateway.insert(content())
        await gateway.collection.update_one({"_id": ObjectId(detail_id)}, change)

        await gateway.append_attachment(detail_id, attachment())

        stored = await gateway.get_by_id(detail_id)
        assert [a.file_name for a in stored.attachments] == ["certificate.pdf"]

    async def test_missing_document(self, gateway):
        with pytest.raises(NotFound):
            await gateway.append_attachment(str(ObjectId()), attachment())

    async def test_deleted_document(self, gateway):
        detail_id = await gateway.insert(content())
        await gateway.soft_delete(detail_id)

        with pytest.raises(NotFound):
            await gateway.append_attachment(detail_id, attachment())


# =============================================================================
# Aggregations
# =============================================================================

@pytest.fixture
async def populated(gateway):
    await gateway.insert(content(event_date="2025-09-01", competition_level="regional"))
    await gateway.insert(content(event_date="2025-03-10", competition_level="national"))
    await gateway.insert(content(type="certification", event_date="2024-11-20"))
    await gateway.insert(content(student_id="sp2", event_date="2025-01-05", competition_level="national"))
    await gateway.insert(content(student_id="sp2", type="organization"))
    gone = await gateway.insert(content(student_id="sp2", event_date="2019-01-01", competition_level="regional"))
    await gateway.soft_delete(gone)
    return gateway


class TestAggregations:
    async def test_count(self, populated):
        assert await populated.count() == 5
        assert await populated.count(["sp1"]) == 3
        assert await populated.count([]) == 0

    async def test_type_distribution(self, populated):
        assert await populated.type_distribution() == {"competition": 3, "certification": 1, "organization": 1}
        assert await populated.type_distribution(["sp2"]) == {"competition": 1, "organization": 1}

    async def test_event_year_distribution_skips_undated(self, populated):
        assert await populated.event_year_distribution() == {"2025": 3, "2024": 1}
        assert await populated.event_year_distribution(["sp1"]) == {"2025": 2, "2024": 1}

    async def test_competition_level_distribution(self, populated):
        assert await populated.competition_level_distribution() == {"national": 2, "regional": 1}
        assert await populated.competition_level_distribution(["sp2"]) == {"national": 1}
