# atlas_core/modules/people/services.py
import re
import secrets
import unicodedata
from typing import Any, Dict, List, Optional, Tuple

from fastapi import Depends, HTTPException, status
from pymongo.errors import DuplicateKeyError
from loguru import logger

from atlas_core.core.config import settings
from atlas_core.core.permissions import home_route_for_role, module_list_for_role
from atlas_core.core.security import SessionUser, get_password_hash, verify_password
from atlas_core.modules.people.login_index import (
    build_login_index_values,
    login_index_support,
    run_with_login_index_fallback,
)
from atlas_core.modules.people.models import (
    ALLOWED_RAW_ROLES,
    MIN_PASSWORD_LENGTH,
    BranchInput,
    PersonAPI,
    SessionInfo,
    UserCreateAPI,
    UserUpdateAPI,
)
from atlas_core.modules.people.repository import PeopleRepository, get_people_repository

_UUID_RE = re.compile(r"^[0-9a-f]{8}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{12}$", re.IGNORECASE)
_PASSWORD_CHARS = "ABCDEFGHJKLmnopqrstuvwxyz23456789$%*!@#"
CREDENTIAL_ATTEMPTS = 3


def is_uuid(value: Optional[str]) -> bool:
    return bool(value and _UUID_RE.match(value))


def random_password(length: int = 10) -> str:
    return "".join(secrets.choice(_PASSWORD_CHARS) for _ in range(length))


def username_base(full_name: str) -> str:
    """'José  Pérez' -> 'jose.perez'"""
    text = unicodedata.normalize("NFD", full_name.lower())
    text = "".join(ch for ch in text if not unicodedata.combining(ch))
    text = re.sub(r"[^a-z0-9]+", ".", text)
    return re.sub(r"\.+", ".", text).strip(".")


def parse_branch_filter(raw: str) -> Optional[Tuple[str, str]]:
    if not raw:
        return None
    if raw == "__none__":
        return ("none", "")
    if raw.startswith("site:") and raw[5:].strip():
        return ("site", raw[5:].strip())
    if is_uuid(raw):
        return ("site", raw)
    return ("legacy", raw)


def normalize_branch_payload(data: BranchInput) -> Dict[str, Optional[str]]:
    """Resolves `site_id`/`branch_id`/`branch_label`/`local` into the stored pair."""
    site_id = data.site_id
    if not site_id and is_uuid(data.branch_id):
        site_id = data.branch_id

    if data.branch_label:
        local = data.branch_label
    elif not site_id and data.branch_id:
        local = data.branch_id
    else:
        local = data.local
    return {"site_id": site_id, "local": local}


def to_person_api(row: Dict[str, Any], site_names: Optional[Dict[str, str]] = None) -> PersonAPI:
    person = PersonAPI.model_validate(row)
    if person.site_id and site_names:
        person.site_name = site_names.get(person.site_id)
    return person


class PeopleService:
    def __init__(self, repo: PeopleRepository):
        self.repo = repo

    # --- Session ---

    async def authenticate(self, identifier: str, password: str) -> Optional[Dict[str, Any]]:
        log = logger.bind(service="PeopleService", login=identifier)
        person = await self.repo.find_by_login(identifier)
        if not person or not verify_password(password, person.get("password_hash")):
            log.warning("Authentication failed: unknown login or wrong password.")
            return None
        if not person.get("active", True):
            log.warning(f"Authentication refused: person {person['id']} is inactive.")
            raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="inactive_user")
        log.success(f"Authentication successful for person {person['id']}")
        return person

    async def session_info(self, session: SessionUser) -> SessionInfo:
        person = await self.repo.get_by_id(session.person_id)
        site_id = person.get("site_id") if person else None
        site_names = await self.repo.site_names([site_id]) if site_id else {}
        return SessionInfo(
            person_id=session.person_id,
            role=session.role,
            raw_role=session.raw_role,
            name=session.name or (person or {}).get("full_name") or "",
            home=home_route_for_role(session.role),
            modules=module_list_for_role(session.role),
            site_id=site_id,
            site_name=site_names.get(site_id) if site_id else None,
            local=person.get("local") if person else None,
        )

    # --- Users administration ---

    async def list_users(
        self, q: str, role: str, branch: str, active: Optional[bool], page: int, page_size: int
    ) -> Tuple[List[PersonAPI], int]:
        rows, total = await self.repo.search(
            q=q.strip(),
            role=role.strip().upper(),
            branch_filter=parse_branch_filter(branch.strip()),
            active=active,
            skip=(page - 1) * page_size,
            limit=page_size,
        )
        site_ids = sorted({row["site_id"] for row in rows if row.get("site_id")})
        site_names = await self.repo.site_names(site_ids)
        return [to_person_api(row, site_names) for row in rows], total

    async def get_user(self, person_id: str) -> PersonAPI:
        row = await self.repo.get_by_id(person_id)
        if not row:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="user_not_found")
        return to_person_api(row)

    def _generate_credentials(self, base: str) -> Tuple[str, str]:
        username = f"{base}_{secrets.token_hex(2)}".lower()
        return username, f"{username}@{settings.LOGIN_DOMAIN.strip()}".lower()

    async def create_user(self, data: UserCreateAPI) -> Tuple[PersonAPI, Optional[str]]:
        """
        Creates a person. Missing credentials are generated from the full name and
        regenerated on collision; user supplied ones fail with 409 instead.

        Returns the created person and the generated password, if any.
        """
        log = logger.bind(service="PeopleService", action="create_user")
        if not data.full_name:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="full_name_required")

        user_provided = bool(data.username or data.email)
        base = username_base(data.full_name) or "user"
        username = data.username.lower() if data.username else self._generate_credentials(base)[0]
        email = data.email.lower() if data.email else f"{username}@{settings.LOGIN_DOMAIN.strip()}".lower()

        generated_password = None
        if data.password and len(data.password) >= MIN_PASSWORD_LENGTH:
            plain = data.password
        else:
            plain = generated_password = random_password(10)

        base_payload = {
            "full_name": data.full_name,
            "fenix_role": data.fenix_role,
            "role": data.fenix_role,
            "privilege_level": data.privilege_level,
            **normalize_branch_payload(data),
            "phone": data.phone,
            "vehicle_type": data.vehicle_type,
            "active": True,
            "password_hash": get_password_hash(plain),
        }

        for attempt in range(1, CREDENTIAL_ATTEMPTS + 1):
            try:
                created = await run_with_login_index_fallback(
                    login_index_support,
                    {**base_payload, "username": username, "email": email},
                    build_login_index_values(username, email),
                    self.repo.insert_person,
                )
            except DuplicateKeyError:
                if user_provided:
                    raise await self._conflict(username, email)
                log.warning(f"Generated credentials '{username}' collided (attempt {attempt}). Regenerating.")
                username, email = self._generate_credentials(base)
                continue
            log.success(f"Person created: {created['id']} ({username})")
            return to_person_api(created), generated_password

        log.error("Could not generate unique credentials.")
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="Username o email ya existen")

    async def _conflict(self, username: str, email: str) -> HTTPException:
        existing = await self.repo.get_by({"$or": [{"username": username}, {"email": email}]})
        if not existing:
            return HTTPException(status_code=status.HTTP_409_CONFLICT, detail="Username o email ya existen")
        state = "activo" if existing.get("active", True) else "inactivo"
        return HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail=f"Ya existe el usuario {existing.get('username') or existing.get('email')} ({state}).",
        )

    async def update_user(self, person_id: str, data: UserUpdateAPI) -> Optional[PersonAPI]:
        payload: Dict[str, Any] = {}
        username = email = None
        fields = data.model_fields_set

        if data.full_name is not None:
            payload["full_name"] = data.full_name
        if data.username is not None and data.username.strip():
            username = payload["username"] = data.username.strip().lower()
        if data.email is not None:
            email = payload["email"] = data.email.strip().lower()

        raw_role = data.fenix_role if data.fenix_role is not None else data.role
        if raw_role and raw_role.strip():
            payload["fenix_role"] = payload["role"] = raw_role.strip().upper()
        if data.privilege_level is not None:
            payload["privilege_level"] = int(data.privilege_level)
        if data.active is not None:
            payload["active"] = data.active
        if fields & {"site_id", "branch_id", "branch_label", "local"}:
            payload.update(normalize_branch_payload(data))
        if "phone" in fields:
            payload["phone"] = data.phone
        if "vehicle_type" in fields:
            payload["vehicle_type"] = data.vehicle_type

        if not payload:
            return None

        if "fenix_role" in payload and payload["fenix_role"] not in ALLOWED_RAW_ROLES:
            logger.bind(service="PeopleService").info(f"Non-standard role stored: {payload['fenix_role']}")

        try:
            updated = await run_with_login_index_fallback(
                login_index_support,
                payload,
                build_login_index_values(username, email or None),
                lambda final: self.repo.update_person(person_id, final),
            )
        except DuplicateKeyError:
            raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="Username o email ya existen")
        if updated is None:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="user_not_found")
        return to_person_api(updated)

    async def toggle_active(self, person_id: str) -> bool:
        person = await self.repo.get_by_id(person_id)
        if not person:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="user_not_found")
        next_state = not person.get("active", True)
        await self.repo.update(person_id, {"active": next_state})
        logger.bind(service="PeopleService").info(f"Person {person_id} active={next_state}")
        return next_state

    async def reset_password(self, person_id: str, new_password: Optional[str]):
        new_password = (new_password or "").strip()
        if len(new_password) < MIN_PASSWORD_LENGTH:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail=f"La contraseña debe tener al menos {MIN_PASSWORD_LENGTH} caracteres",
            )
        updated = await self.repo.update(person_id, {"password_hash": get_password_hash(new_password)})
        if updated is None:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="user_not_found")

    async def delete_user(self, person_id: str):
        if not await self.repo.delete(person_id):
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="user_not_found")


async def get_people_service(repo: PeopleRepository = Depends(get_people_repository)) -> PeopleService:
    return PeopleService(repo)
