"""Contact fan-out collaborator.

The CRM that owns recruiter contacts lives outside this package; the sync
only needs to know which users exist and how to upsert one email into a
user's contact pool. Upserts dedupe on the lower-cased email per user and
only fill fields that are still empty.
"""

from __future__ import annotations

import abc
import threading
import uuid
from dataclasses import dataclass, fields
from typing import Dict, List, Optional, Tuple


@dataclass(frozen=True)
class ContactUpsert:
    email: str
    company: Optional[str] = None
    position: Optional[str] = None
    source_ref: Optional[str] = None
    source_type: Optional[str] = None
    job_id: Optional[str] = None
    job_title: Optional[str] = None


@dataclass(frozen=True)
class ContactUpsertResult:
    id: str
    created: bool


@dataclass
class Contact:
    id: str
    user_id: str
    email: str
    company: Optional[str] = None
    position: Optional[str] = None
    source_ref: Optional[str] = None
    source_type: Optional[str] = None
    job_id: Optional[str] = None
    job_title: Optional[str] = None


class ContactDirectory(abc.ABC):
    @abc.abstractmethod
    def user_ids(self) -> List[str]:
        raise NotImplementedError

    @abc.abstractmethod
    def upsert_contact(self, user_id: str, contact: ContactUpsert) -> ContactUpsertResult:
        raise NotImplementedError


_FILLABLE = tuple(f.name for f in fields(ContactUpsert) if f.name != "email")


class InMemoryContactDirectory(ContactDirectory):
    def __init__(self, user_ids: Optional[List[str]] = None) -> None:
        self._users: List[str] = list(user_ids or [])
        self._mutex = threading.Lock()
        self.contacts: Dict[Tuple[str, str], Contact] = {}
        self.calls: List[Tuple[str, ContactUpsert]] = []

    def add_user(self, user_id: str) -> None:
        if user_id not in self._users:
            self._users.append(user_id)

    def user_ids(self) -> List[str]:
        return list(self._users)

    def upsert_contact(self, user_id: str, contact: ContactUpsert) -> ContactUpsertResult:
        email = contact.email.strip().lower()
        with self._mutex:
            self.calls.append((user_id, contact))
            key = (user_id, email)
            existing = self.contacts.get(key)
            if existing is None:
                created = Contact(id=str(uuid.uuid4()), user_id=user_id, email=email)
                for name in _FILLABLE:
                    setattr(created, name, getattr(contact, name))
                self.contacts[key] = created
                return ContactUpsertResult(id=created.id, created=True)

            for name in _FILLABLE:
                if not getattr(existing, name) and getattr(contact, name):
                    setattr(existing, name, getattr(contact, name))
            return ContactUpsertResult(id=existing.id, created=False)

    def for_user(self, user_id: str) -> List[Contact]:
        return [c for (uid, _), c in self.contacts.items() if uid == user_id]
