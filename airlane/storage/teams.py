"""
Airlane Teams — Team roster management.

Teams only touch the item tree through audience grants; membership is
read fresh on every access check.
"""

from __future__ import annotations

import logging
from typing import List, Optional, Set

from sqlalchemy.orm import Session

from airlane.db.models import Team, TeamMember, User
from airlane.engine.errors import ValidationFailedError
from airlane.utilities.utils import random_slug, slugify

logger = logging.getLogger("airlane.storage.teams")

TEAM_ROLES = ("member", "admin")


class TeamDirectory:
    def __init__(self, session: Session):
        self._session = session

    def _unique_slug(self, base: str, exclude_id: Optional[int] = None) -> str:
        base = base or random_slug()
        slug = base
        suffix = 0
        while True:
            query = self._session.query(Team.id).filter(Team.slug == slug)
            if exclude_id is not None:
                query = query.filter(Team.id != exclude_id)
            if query.first() is None:
                return slug
            suffix += 1
            slug = f"{base}-{suffix}"

    def create_team(self, name: str, description: Optional[str] = None) -> Team:
        team = Team(name=name, slug=self._unique_slug(slugify(name)), description=description)
        self._session.add(team)
        self._session.flush()
        logger.info(f"Created team '{team.slug}'")
        return team

    def add_member(self, team: Team, user: User, role: str = "member") -> TeamMember:
        """Add a user to a team, or update the role of an existing member."""
        if role not in TEAM_ROLES:
            raise ValidationFailedError(
                f"Unknown team role '{role}'",
                validation_errors=[{"field": "role", "error": f"must be one of {TEAM_ROLES}"}],
            )
        member = (
            self._session.query(TeamMember)
            .filter(TeamMember.team_id == team.id, TeamMember.user_id == user.id)
            .first()
        )
        if member is None:
            member = TeamMember(team_id=team.id, user_id=user.id, role=role)
            self._session.add(member)
        else:
            member.role = role
        self._session.flush()
        return member

    def remove_member(self, team: Team, user: User) -> bool:
        deleted = (
            self._session.query(TeamMember)
            .filter(TeamMember.team_id == team.id, TeamMember.user_id == user.id)
            .delete(synchronize_session="fetch")
        )
        self._session.flush()
        return deleted > 0

    def is_member(self, team_id: int, user: User) -> bool:
        return (
            self._session.query(TeamMember.id)
            .filter(TeamMember.team_id == team_id, TeamMember.user_id == user.id)
            .first()
            is not None
        )

    def team_ids_for(self, user: User) -> Set[int]:
        rows = self._session.query(TeamMember.team_id).filter(TeamMember.user_id == user.id).all()
        return {row[0] for row in rows}

    def teams_for(self, user: User) -> List[Team]:
        return (
            self._session.query(Team)
            .join(TeamMember, TeamMember.team_id == Team.id)
            .filter(TeamMember.user_id == user.id)
            .order_by(Team.name.asc())
            .all()
        )
