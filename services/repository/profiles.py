"""
Profile repository (profiles are managed by the auth platform, read-only here)
"""
from typing import Dict, Iterable, Optional

from db.models import Profile
from schemas.profiles import ProfileSummary, UNKNOWN_USER
from services.repository.base import BaseRepo


class ProfileRepo(BaseRepo):
    model = Profile

    async def map_by_ids(self, ids: Iterable[str]) -> Dict[str, Profile]:
        """Profiles keyed by id; ids without a profile are absent from the result"""
        return {profile.id: profile for profile in await self.list_by_ids(ids)}


def profile_summary(user_id: str, profile: Optional[Profile]) -> ProfileSummary:
    """Snapshot a profile, or a placeholder when it is missing"""
    if profile is None:
        return ProfileSummary(id=user_id, full_name=UNKNOWN_USER, available=False)
    return ProfileSummary(
        id=profile.id,
        full_name=profile.full_name or profile.username or UNKNOWN_USER,
        username=profile.username,
        avatar_url=profile.avatar_url,
        company_name=profile.company_name,
    )
