"""Profile Resolver: entity identifier -> assigned profile."""

from __future__ import annotations

import logging
from typing import Optional

from .models import Document, Profile

logger = logging.getLogger(__name__)


def resolve_profile(document: Optional[Document], entity_id: str) -> Optional[Profile]:
    """
    Find the profile mapped to ``entity_id``.

    Returns None when the entity has no assignment or the mapping points at
    a profile that no longer exists.
    """
    if document is None or not entity_id:
        return None
    profile_id = document.mappings.get(entity_id)
    if not profile_id:
        return None
    profile = document.find_profile(profile_id)
    if profile is None:
        logger.warning("Entity %s is mapped to missing profile %s", entity_id, profile_id)
    return profile


def has_dangling_mapping(document: Document, entity_id: str) -> bool:
    profile_id = document.mappings.get(entity_id)
    return bool(profile_id) and document.find_profile(profile_id) is None
