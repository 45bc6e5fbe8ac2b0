# src/domain/actors.py

from dataclasses import dataclass
from enum import Enum
from typing import Union


class ActorRole(str, Enum):
    CARER = "carer"
    CLIENT = "client"
    ADMIN = "admin"


@dataclass(frozen=True)
class CarerActor:
    id: int

    @property
    def role(self) -> ActorRole:
        return ActorRole.CARER

    @property
    def party_key(self) -> str:
        return f"carer:{self.id}"


@dataclass(frozen=True)
class ClientActor:
    id: int

    @property
    def role(self) -> ActorRole:
        return ActorRole.CLIENT

    @property
    def party_key(self) -> str:
        return f"client:{self.id}"


@dataclass(frozen=True)
class AdminActor:
    id: int

    @property
    def role(self) -> ActorRole:
        return ActorRole.ADMIN

    @property
    def party_key(self) -> str:
        return f"admin:{self.id}"


Party = Union[CarerActor, ClientActor]
Actor = Union[CarerActor, ClientActor, AdminActor]

_ACTOR_TYPES = {
    ActorRole.CARER: CarerActor,
    ActorRole.CLIENT: ClientActor,
    ActorRole.ADMIN: AdminActor,
}


def actor_from_claims(role: str, actor_id: int) -> Actor:
    """
    Build an actor from an already verified (role, id) pair.
    Raises ValueError for an unknown role.
    """
    actor_role = ActorRole(role.strip().lower())
    return _ACTOR_TYPES[actor_role](id=actor_id)
