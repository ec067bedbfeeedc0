# Export all models for easy importing
from musiccollab.models.user import (
    User,
    Profile,
    Skill,
    Relation,
    SkillName,
    SkillLevel,
    Genre,
    LookingFor,
)

__all__ = [
    "User",
    "Profile",
    "Skill",
    "Relation",
    "SkillName",
    "SkillLevel",
    "Genre",
    "LookingFor",
]
