"""Data models for event and booking records."""
from dataclasses import asdict, dataclass
from typing import Dict, List, Optional


EVENT_MODES = ('online', 'offline', 'hybrid')


@dataclass
class EventCandidate:
    """Unvalidated event fields as submitted for creation."""
    title: Optional[str] = None
    description: Optional[str] = None
    overview: Optional[str] = None
    image: Optional[str] = None
    venue: Optional[str] = None
    location: Optional[str] = None
    date: Optional[str] = None
    time: Optional[str] = None
    mode: Optional[str] = None
    audience: Optional[str] = None
    organizer: Optional[str] = None
    agenda: Optional[List[str]] = None
    tags: Optional[List[str]] = None


@dataclass
class NormalizedEvent:
    """Validated and normalized event, ready to be persisted."""
    slug: str
    title: str
    description: str
    overview: str
    image: str
    venue: str
    location: str
    date: str
    time: str
    mode: str
    audience: str
    organizer: str
    agenda: List[str]
    tags: List[str]


@dataclass
class Event:
    """Persisted event record."""
    id: str
    slug: str
    title: str
    description: str
    overview: str
    image: str
    venue: str
    location: str
    date: str
    time: str
    mode: str
    audience: str
    organizer: str
    agenda: List[str]
    tags: List[str]
    created_at: str
    updated_at: str

    def to_dict(self) -> Dict:
        """Serialize to the camelCase shape used on the wire and in storage."""
        data = asdict(self)
        data['createdAt'] = data.pop('created_at')
        data['updatedAt'] = data.pop('updated_at')
        return data

    def to_candidate(self) -> EventCandidate:
        return EventCandidate(
            title=self.title,
            description=self.description,
            overview=self.overview,
            image=self.image,
            venue=self.venue,
            location=self.location,
            date=self.date,
            time=self.time,
            mode=self.mode,
            audience=self.audience,
            organizer=self.organizer,
            agenda=list(self.agenda),
            tags=list(self.tags)
        )


@dataclass
class Booking:
    """Email-capture record expressing interest in an event."""
    id: str
    event_id: str
    email: str
    created_at: str
    updated_at: str

    def to_dict(self) -> Dict:
        return {
            'id': self.id,
            'eventId': self.event_id,
            'email': self.email,
            'createdAt': self.created_at,
            'updatedAt': self.updated_at
        }


@dataclass
class EventQuery:
    """Listing options applied to an already-fetched set of events."""
    search: str = ''
    mode: Optional[str] = None
    location: Optional[str] = None
    sort: str = 'newest'
    limit: Optional[int] = None
