"""Connection Registry: maps connection tokens to joined users."""
import logging
from typing import Dict, List, Optional
from urllib.parse import quote

from .errors import DuplicateConnection, NotFound
from .schemas import User, UserProfile

logger = logging.getLogger(__name__)

DEFAULT_AVATAR_TEMPLATE = "https://api.dicebear.com/7.x/avataaars/svg?seed={seed}"


class ConnectionRegistry:
    """Owns every User record, keyed by connection token.

    Iteration order is registration order. The registry never emits events;
    callers decide what to broadcast.
    """

    def __init__(self, avatar_template: str = DEFAULT_AVATAR_TEMPLATE) -> None:
        self.avatar_template = avatar_template
        self._users: Dict[str, User] = {}

    def placeholder_avatar(self, username: str) -> str:
        """Derive a deterministic avatar URL from a display name."""
        return self.avatar_template.format(seed=quote(username, safe=""))

    def register(self, token: str, profile: UserProfile) -> User:
        """Create the User for a connection.

        Raises:
            DuplicateConnection: A User already exists for ``token``.
        """
        if token in self._users:
            raise DuplicateConnection(f"connection {token} already joined")

        user = User(
            id=token,
            username=profile.username,
            avatar=profile.avatar or self.placeholder_avatar(profile.username),
        )
        self._users[token] = user
        logger.debug("Registered user %s for connection %s", user.username, token)
        return user

    def lookup(self, token: str) -> User:
        """Return the User for ``token``.

        Raises:
            NotFound: No User is registered for ``token``.
        """
        try:
            return self._users[token]
        except KeyError:
            raise NotFound(f"no user for connection {token}") from None

    def get(self, token: str) -> Optional[User]:
        return self._users.get(token)

    def remove(self, token: str) -> User:
        """Remove and return the User for ``token``.

        Raises:
            NotFound: No User is registered for ``token``.
        """
        try:
            return self._users.pop(token)
        except KeyError:
            raise NotFound(f"no user for connection {token}") from None

    def users(self) -> List[User]:
        return list(self._users.values())

    def __contains__(self, token: object) -> bool:
        return token in self._users

    def __len__(self) -> int:
        return len(self._users)
