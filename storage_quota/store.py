"""
Document Store - query surface over the stored emails

Selectors are tuples of typed predicates that AND-combine. Only the three
predicates below are supported: no sorting, no projection.
"""

import asyncio
import json
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Protocol, Tuple, Union


logger = logging.getLogger(__name__)


# === Documents ===

@dataclass
class EmailBody:
    html: Optional[str] = None
    text: Optional[str] = None


@dataclass
class Attachment:
    size: int = 0


class EmailDocument(Protocol):
    """Shape of a stored email as consumed by the aggregators and the executor"""
    account_id: str
    timestamp: int  # epoch ms
    body: Optional[EmailBody]
    attachments: List[Attachment]

    async def remove(self) -> None:
        ...


# === Selectors ===

@dataclass(frozen=True)
class Equals:
    field: str
    value: Any

    def matches(self, document) -> bool:
        return getattr(document, self.field, None) == self.value


@dataclass(frozen=True)
class In:
    field: str
    values: Tuple[Any, ...]

    def __post_init__(self):
        object.__setattr__(self, 'values', tuple(self.values))

    def matches(self, document) -> bool:
        return getattr(document, self.field, None) in self.values


@dataclass(frozen=True)
class LessThan:
    field: str
    value: Union[int, float]

    def matches(self, document) -> bool:
        actual = getattr(document, self.field, None)
        return actual is not None and actual < self.value


Predicate = Union[Equals, In, LessThan]
Selector = Tuple[Predicate, ...]


def matches_selector(document, selector: Selector) -> bool:
    return all(predicate.matches(document) for predicate in selector)


class DocumentStore(Protocol):
    """The `emails` collection: query and per-document removal"""

    async def find(self, selector: Selector = ()) -> List[EmailDocument]:
        ...


# === In-memory implementation ===

@dataclass(eq=False)
class StoredEmail:
    """An email held by InMemoryDocumentStore"""
    id: str
    account_id: str
    timestamp: int
    body: Optional[EmailBody] = field(default_factory=EmailBody)
    attachments: List[Attachment] = field(default_factory=list)
    _store: Optional['InMemoryDocumentStore'] = field(default=None, repr=False)

    async def remove(self) -> None:
        if self._store is None:
            raise KeyError(f"Email {self.id} is not attached to a store")
        await self._store.remove(self.id)


class InMemoryDocumentStore:
    """Dict-backed email collection"""

    def __init__(self, emails: Optional[Iterable[StoredEmail]] = None):
        self._emails: Dict[str, StoredEmail] = {}
        for email in emails or ():
            self._attach(email)

    def __len__(self) -> int:
        return len(self._emails)

    def __contains__(self, email_id: str) -> bool:
        return email_id in self._emails

    def _attach(self, email: StoredEmail) -> StoredEmail:
        email._store = self
        self._emails[email.id] = email
        return email

    def add(
        self,
        email_id: str,
        account_id: str,
        timestamp: int,
        html: Optional[str] = None,
        text: Optional[str] = None,
        attachment_sizes: Iterable[int] = ()
    ) -> StoredEmail:
        """Insert (or replace) one email"""
        email = StoredEmail(
            id=email_id,
            account_id=account_id,
            timestamp=timestamp,
            body=EmailBody(html=html, text=text),
            attachments=[Attachment(size=size) for size in attachment_sizes]
        )
        return self._attach(email)

    async def find(self, selector: Selector = ()) -> List[StoredEmail]:
        results = [email for email in self._emails.values() if matches_selector(email, selector)]
        logger.debug(f"find matched {len(results)} of {len(self._emails)} emails")
        return results

    async def remove(self, email_id: str) -> None:
        # Yield like a real storage backend would
        await asyncio.sleep(0)
        try:
            email = self._emails.pop(email_id)
        except KeyError:
            raise KeyError(f"Email {email_id} not found") from None
        email._store = None

    # === Loading ===

    @classmethod
    def from_records(cls, records: Iterable[Dict]) -> 'InMemoryDocumentStore':
        """Build a store from camelCase records ({id, accountId, timestamp, body, attachments})"""
        store = cls()
        for index, record in enumerate(records):
            body = record.get('body') or {}
            store.add(
                email_id=str(record.get('id', index)),
                account_id=record['accountId'],
                timestamp=int(record['timestamp']),
                html=body.get('html'),
                text=body.get('text'),
                attachment_sizes=[att.get('size') or 0 for att in record.get('attachments') or []]
            )
        return store

    @classmethod
    def from_json_file(cls, path: Union[str, Path]) -> 'InMemoryDocumentStore':
        """Load a JSON array of email records"""
        path = Path(path)
        records = json.loads(path.read_text(encoding='utf-8'))
        store = cls.from_records(records)
        logger.info(f"Loaded {len(store)} emails from {path}")
        return store
