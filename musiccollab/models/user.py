from sqlalchemy import Column, String, Boolean, DateTime, ForeignKey, Integer, Text, JSON, Uuid
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import relationship
from datetime import datetime, timezone
from typing import Set
import uuid
import enum

from musiccollab.db.session import Base


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


# Plain JSON on SQLite, JSONB on Postgres
JSONType = JSON().with_variant(JSONB(), "postgresql")


class SkillName(str, enum.Enum):
    SINGER = "Singer"
    GUITARIST = "Guitarist"
    BASSIST = "Bassist"
    DRUMMER = "Drummer"
    PIANIST = "Pianist"
    KEYBOARDIST = "Keyboardist"
    PRODUCER = "Producer"
    DJ = "DJ"
    SONGWRITER = "Songwriter"
    COMPOSER = "Composer"
    SOUND_ENGINEER = "Sound Engineer"
    VIOLINIST = "Violinist"
    SAXOPHONIST = "Saxophonist"
    TRUMPETER = "Trumpeter"
    FLUTIST = "Flutist"
    CELLIST = "Cellist"
    RAPPER = "Rapper"
    BEATBOXER = "Beatboxer"
    OTHER = "Other"


class SkillLevel(str, enum.Enum):
    BEGINNER = "Beginner"
    INTERMEDIATE = "Intermediate"
    ADVANCED = "Advanced"
    PROFESSIONAL = "Professional"


class Genre(str, enum.Enum):
    ROCK = "Rock"
    POP = "Pop"
    HIP_HOP = "Hip Hop"
    RNB = "R&B"
    JAZZ = "Jazz"
    CLASSICAL = "Classical"
    ELECTRONIC = "Electronic"
    COUNTRY = "Country"
    FOLK = "Folk"
    BLUES = "Blues"
    REGGAE = "Reggae"
    PUNK = "Punk"
    METAL = "Metal"
    INDIE = "Indie"
    ALTERNATIVE = "Alternative"
    SOUL = "Soul"
    FUNK = "Funk"
    GOSPEL = "Gospel"
    LATIN = "Latin"
    WORLD = "World"
    OTHER = "Other"


class LookingFor(str, enum.Enum):
    BAND_MEMBERS = "Band Members"
    COLLABORATION_PARTNERS = "Collaboration Partners"
    SESSION_MUSICIANS = "Session Musicians"
    PRODUCERS = "Producers"
    SONGWRITING_PARTNERS = "Songwriting Partners"
    PERFORMANCE_PARTNERS = "Performance Partners"
    RECORDING_PARTNERS = "Recording Partners"
    JAM_SESSIONS = "Jam Sessions"
    MUSIC_LESSONS = "Music Lessons"
    MENTORSHIP = "Mentorship"


class Relation(str, enum.Enum):
    """Relationship sets stored on every profile."""
    LIKED_BY_ME = "liked_by_me"
    PASSED_BY_ME = "passed_by_me"
    MATCHED_WITH = "matched_with"
    PENDING_LIKES = "pending_likes"


class User(Base):
    """User authentication model."""

    __tablename__ = "users"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    email = Column(String(255), unique=True, nullable=False, index=True)
    password_hash = Column(String(255), nullable=False)
    created_at = Column(DateTime(timezone=True), default=utcnow)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)

    # Relationships
    profile = relationship("Profile", back_populates="user", uselist=False, lazy="selectin")


class Profile(Base):
    """
    Musician profile plus the four relationship sets.

    Relationship sets are stored as JSON arrays of user id strings. The
    ``version`` column is checked on every UPDATE so that two writers racing
    on the same profile cannot silently overwrite each other.
    """

    __tablename__ = "profiles"

    id = Column(Uuid, ForeignKey("users.id", ondelete="CASCADE"), primary_key=True)

    # Basic Info
    name = Column(String(50), nullable=False)
    age = Column(Integer, nullable=False)
    bio = Column(Text, default="")

    # Location
    city = Column(String(100), nullable=False)
    state = Column(String(100), nullable=False)
    country = Column(String(100), nullable=False)

    # Music
    genres = Column(JSONType, default=list)
    looking_for = Column(JSONType, default=list)
    social_links = Column(JSONType, default=dict)  # spotify, soundcloud, youtube, instagram
    music_links = Column(JSONType, default=dict)  # spotify_track, soundcloud_track, youtube_video
    profile_pictures = Column(JSONType, default=list)

    # Status
    is_active = Column(Boolean, default=True, nullable=False)
    last_seen_at = Column(DateTime(timezone=True), default=utcnow)

    # Relationship sets
    liked_by_me = Column(JSONType, default=list, nullable=False)
    passed_by_me = Column(JSONType, default=list, nullable=False)
    matched_with = Column(JSONType, default=list, nullable=False)
    pending_likes = Column(JSONType, default=list, nullable=False)

    version = Column(Integer, nullable=False)

    created_at = Column(DateTime(timezone=True), default=utcnow)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)

    __mapper_args__ = {"version_id_col": version}

    # Relationships
    user = relationship("User", back_populates="profile")
    skills = relationship(
        "Skill",
        back_populates="profile",
        order_by="Skill.position",
        cascade="all, delete-orphan",
        lazy="selectin",
    )

    # ==================== Relationship Sets ====================

    def ids(self, relation: Relation) -> Set[uuid.UUID]:
        """Return a relationship set as UUIDs."""
        return {uuid.UUID(value) for value in getattr(self, relation.value) or []}

    def has(self, relation: Relation, other_id: uuid.UUID) -> bool:
        return str(other_id) in (getattr(self, relation.value) or [])

    def add(self, relation: Relation, other_id: uuid.UUID) -> bool:
        """
        Add an id to a relationship set. Adding an id that is already present
        is a no-op. Returns True if the set changed.
        """
        current = list(getattr(self, relation.value) or [])
        key = str(other_id)
        if key in current:
            return False
        # Reassign so SQLAlchemy sees the change on the JSON column
        setattr(self, relation.value, current + [key])
        return True

    def discard(self, relation: Relation, other_id: uuid.UUID) -> bool:
        """Remove an id from a relationship set. Returns True if the set changed."""
        current = list(getattr(self, relation.value) or [])
        key = str(other_id)
        if key not in current:
            return False
        setattr(self, relation.value, [value for value in current if value != key])
        return True

    def has_decided(self, other_id: uuid.UUID) -> bool:
        """True if this profile already liked or passed ``other_id``."""
        return self.has(Relation.LIKED_BY_ME, other_id) or self.has(
            Relation.PASSED_BY_ME, other_id
        )

    @property
    def decided_ids(self) -> Set[uuid.UUID]:
        return self.ids(Relation.LIKED_BY_ME) | self.ids(Relation.PASSED_BY_ME)

    @property
    def location(self) -> dict:
        return {"city": self.city, "state": self.state, "country": self.country}


class Skill(Base):
    """A single skill entry on a profile (ordered)."""

    __tablename__ = "skills"

    id = Column(Integer, primary_key=True, autoincrement=True)
    profile_id = Column(
        Uuid, ForeignKey("profiles.id", ondelete="CASCADE"), nullable=False, index=True
    )
    position = Column(Integer, nullable=False, default=0)
    name = Column(String(50), nullable=False, index=True)
    level = Column(String(20), nullable=False)
    years_of_experience = Column(Integer, default=0, nullable=False)

    # Relationships
    profile = relationship("Profile", back_populates="skills")
