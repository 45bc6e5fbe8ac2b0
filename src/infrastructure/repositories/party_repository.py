# src/infrastructure/repositories/party_repository.py

from typing import Callable

from sqlalchemy.orm import Session

from src.domain.actors import CarerActor, ClientActor, Party
from src.infrastructure.db.models import Carer, Client


class PartyRepository:
    """
    Lookups for the two booking parties.
    Each actor variant resolves only against its own table.
    """

    def __init__(self, db: Session):
        self.db = db
        self._lookups: dict[type, Callable[[int], Carer | Client | None]] = {
            CarerActor: self.get_carer,
            ClientActor: self.get_client,
        }

    def get_carer(self, carer_id: int) -> Carer | None:
        return self.db.get(Carer, carer_id)

    def get_client(self, client_id: int) -> Client | None:
        return self.db.get(Client, client_id)

    def find(self, party: Party) -> Carer | Client | None:
        lookup = self._lookups.get(type(party))
        if lookup is None:
            raise TypeError(f"Expected CarerActor or ClientActor, got {type(party)}")
        return lookup(party.id)

    def set_carer_push_token(self, carer: Carer, token: str) -> None:
        carer.fcm_token = token
