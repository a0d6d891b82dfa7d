"""
User profile store.

Profiles are provisioned the first time an identity-provider subject is seen
and updated from the profile endpoint. A user's role is fixed when the
profile is created.
"""
import threading
import uuid
from typing import Any, Dict, List, Optional

from pydantic import ValidationError as PydanticValidationError

from civicpulse.core.constants import UserConstants, UserRole
from civicpulse.core.exceptions import StorageError, ValidationError
from civicpulse.core.logging_config import LoggingContext, get_logger
from civicpulse.db.models import User
from civicpulse.services.utils.clock import Clock, utc_now
from civicpulse.services.utils.text import clamp_text, coerce_enum
from civicpulse.storage import DebouncedFlusher, JsonFileStorage

logger = get_logger(__name__, {"store": "users"})


class UserStore:
    """Users indexed by internal id and by external subject."""

    def __init__(self, storage: JsonFileStorage, flush_delay: float = 0.35, clock: Clock = utc_now):
        self.storage = storage
        self.clock = clock

        self._users: Dict[str, User] = {}
        self._by_external_uid: Dict[str, str] = {}
        self._lock = threading.RLock()
        self.flusher = DebouncedFlusher("users", self.snapshot, storage, delay=flush_delay)

    def __len__(self) -> int:
        with self._lock:
            return len(self._users)

    async def load(self) -> int:
        with LoggingContext(logger, f"Loading users from {self.storage.path}"):
            try:
                data = await self.storage.load_all()
            except StorageError as e:
                logger.error(f"Starting with an empty user store: {e.message}")
                data = None

            users: Dict[str, User] = {}
            if isinstance(data, list):
                for record in data:
                    try:
                        user = User.model_validate(record)
                    except PydanticValidationError as e:
                        logger.warning(f"Skipping malformed user record: {e}")
                        continue
                    users[user.id] = user

            with self._lock:
                self._users = users
                self._by_external_uid = {u.external_uid: u.id for u in users.values()}

        logger.info(f"Loaded {len(users)} users")
        return len(users)

    async def start(self) -> None:
        await self.flusher.start()

    async def shutdown(self) -> None:
        await self.flusher.shutdown()

    def snapshot(self) -> List[Dict[str, Any]]:
        with self._lock:
            return [user.to_record() for user in self._users.values()]

    @staticmethod
    def _validate_profile(name: Any, email: Any):
        user_name = clamp_text(name, UserConstants.MAX_NAME_LENGTH)
        user_email = clamp_text(email, UserConstants.MAX_EMAIL_LENGTH).lower()

        errors: Dict[str, List[str]] = {}
        if len(user_name) < UserConstants.MIN_NAME_LENGTH:
            errors["name"] = [f"Name must be at least {UserConstants.MIN_NAME_LENGTH} characters"]
        if "@" not in user_email:
            errors["email"] = ["Valid email required"]
        if errors:
            message = next(iter(errors.values()))[0]
            raise ValidationError(message, field_errors=errors)
        return user_name, user_email

    def create_or_update_user(
        self,
        external_uid: str,
        email: Any,
        name: Any,
        role: Any = None,
    ) -> User:
        """
        Create the profile for ``external_uid`` or refresh its name and email.

        ``role`` only applies when the profile is created; unknown roles
        become ``citizen``.

        Raises:
            ValidationError: If the subject, name or email is invalid
        """
        if not external_uid:
            raise ValidationError("External user id required", field_errors={"external_uid": ["required"]})
        user_name, user_email = self._validate_profile(name, email)

        with self._lock:
            now = self.clock()
            user_id = self._by_external_uid.get(external_uid)
            if user_id is not None:
                user = self._users[user_id]
                user.name = user_name
                user.email = user_email
                user.last_login = now
                self.flusher.mark_dirty()
                logger.info(f"Updated profile {user.id}", extra={"user_id": user.id})
                return user.model_copy()

            user = User(
                id=f"user_{uuid.uuid4().hex}",
                external_uid=external_uid,
                name=user_name,
                email=user_email,
                role=coerce_enum(role, UserRole, 16) or UserRole.CITIZEN,
                created_at=now,
                last_login=now,
            )
            self._users[user.id] = user
            self._by_external_uid[external_uid] = user.id
            self.flusher.mark_dirty()

        logger.info(f"Provisioned {user.role.value} profile {user.id}", extra={"user_id": user.id})
        return user.model_copy()

    def get_by_external_uid(self, external_uid: str) -> Optional[User]:
        with self._lock:
            user_id = self._by_external_uid.get(external_uid)
            return self._users[user_id].model_copy() if user_id else None

    def get_by_id(self, user_id: str) -> Optional[User]:
        with self._lock:
            user = self._users.get(user_id)
            return user.model_copy() if user else None
