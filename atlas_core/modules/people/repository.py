# atlas_core/modules/people/repository.py
import re
from typing import Any, Dict, List, Optional, Tuple

from fastapi import Depends
from pymongo import DESCENDING, ReturnDocument
from loguru import logger

from atlas_core.core.database import get_database, with_db_retry
from atlas_core.core.repository import BaseRepository, Document, new_id, utcnow
from atlas_core.modules.people.login_index import build_login_indexes


class PeopleRepository(BaseRepository):
    collection_name = "people"

    async def find_by_login(self, identifier: str) -> Optional[Document]:
        """Finds a person by username or email, tolerant to case, accents and separators."""
        raw = (identifier or "").strip().lower()
        if not raw:
            return None
        norm, flat = build_login_indexes(raw)
        candidates: List[Dict[str, Any]] = [{"username": raw}, {"email": raw}]
        if norm:
            candidates += [{"username_norm": norm}, {"email_norm": norm}]
        if flat:
            candidates += [{"username_flat": flat}, {"email_flat": flat}]
        return await self.get_by({"$or": candidates})

    async def search(
        self,
        q: str = "",
        role: str = "",
        branch_filter: Optional[Tuple[str, str]] = None,
        active: Optional[bool] = None,
        skip: int = 0,
        limit: int = 20,
    ) -> Tuple[List[Document], int]:
        query: Dict[str, Any] = {}
        if q:
            pattern = {"$regex": re.escape(q), "$options": "i"}
            query["$or"] = [{field: pattern} for field in ("full_name", "username", "email", "local", "phone")]
        if role:
            query["fenix_role"] = role
        if branch_filter:
            kind, value = branch_filter
            if kind == "none":
                query["site_id"] = None
                query["local"] = None
            elif kind == "site":
                query["site_id"] = value
                # Promoters are not tied to a branch
                if "fenix_role" not in query:
                    query["fenix_role"] = {"$not": re.compile(r"^PROMOTOR", re.IGNORECASE)}
            elif kind == "legacy":
                query["local"] = {"$regex": re.escape(value), "$options": "i"}
        if active is not None:
            query["active"] = active

        rows = await self.list_by(query, skip=skip, limit=limit, sort=[("created_at", DESCENDING)])
        total = await self.count(query)
        return rows, total

    async def site_names(self, site_ids: List[str]) -> Dict[str, str]:
        if not site_ids:
            return {}
        sites = self.db["sites"]

        async def _run():
            return await sites.find({"_id": {"$in": site_ids}}, {"name": 1}).to_list(length=None)

        try:
            rows = await with_db_retry(_run, op_name="sites.lookup")
        except Exception as e:
            # Names are decoration only
            logger.warning(f"Site lookup failed: {e}")
            return {}
        return {row["_id"]: (row.get("name") or "").strip() or row["_id"] for row in rows}

    async def insert_person(self, payload: Dict[str, Any]) -> Document:
        """Raw insert. Store errors propagate so the login-index fallback can inspect them."""
        document = dict(payload)
        document.setdefault("_id", new_id())
        document.setdefault("created_at", utcnow())
        await self.collection.insert_one(document)
        return self.to_api(document)

    async def update_person(self, person_id: str, payload: Dict[str, Any]) -> Optional[Document]:
        """Raw `$set` update. Store errors propagate so the login-index fallback can inspect them."""
        update = dict(payload)
        update["updated_at"] = utcnow()
        document = await self.collection.find_one_and_update(
            {"_id": person_id}, {"$set": update}, return_document=ReturnDocument.AFTER
        )
        return self.to_api(document)

    async def list_active_names(self) -> List[str]:
        rows = await self.list_by({"active": True}, projection={"full_name": 1}, sort=[("full_name", 1)])
        return [row["full_name"] for row in rows if row.get("full_name")]


async def get_people_repository(db=Depends(get_database)) -> PeopleRepository:
    return PeopleRepository(db)
