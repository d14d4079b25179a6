# atlas_core/modules/survey/repository.py
from typing import Optional

from fastapi import Depends
from pymongo import DESCENDING, ReturnDocument

from atlas_core.core.database import get_database
from atlas_core.core.repository import BaseRepository, Document, utcnow


class SurveyLinkRepository(BaseRepository):
    collection_name = "delivery_survey_links"

    async def newest_open_for_order(self, order_id: str) -> Optional[Document]:
        return await self.get_by({"order_id": order_id, "consumed_at": None}, sort=[("created_at", DESCENDING)])

    async def get_by_token(self, token: str) -> Optional[Document]:
        return await self.get_by({"survey_token": token})

    async def claim(self, link_id: str) -> Optional[Document]:
        """
        Marks an unconsumed link as answered in a single conditional write.

        Returns the claimed link, or None when another submission got there first.
        Not retried: a retry after a lost acknowledgement would read as a conflict.
        """
        now = utcnow()
        try:
            document = await self.collection.find_one_and_update(
                {"_id": link_id, "consumed_at": None},
                {"$set": {"consumed_at": now, "send_status": "completed", "updated_at": now}},
                return_document=ReturnDocument.AFTER,
            )
        except Exception as e:
            self._log_db_error(e, "claim", link_id)
            raise
        return self.to_api(document)

    async def release(self, link_id: str, send_status: Optional[str]):
        """Undoes `claim` after the response row could not be stored."""
        await self.update(link_id, {"consumed_at": None, "send_status": send_status or "sent"})


class SurveyResponseRepository(BaseRepository):
    collection_name = "delivery_survey_responses"


async def get_survey_link_repository(db=Depends(get_database)) -> SurveyLinkRepository:
    return SurveyLinkRepository(db)


async def get_survey_response_repository(db=Depends(get_database)) -> SurveyResponseRepository:
    return SurveyResponseRepository(db)
