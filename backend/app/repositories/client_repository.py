# backend/app/repositories/client_repository.py
"""Client repository: reads clients and moves their unpaid balance atomically."""

from datetime import datetime

from sqlalchemy import update
from sqlalchemy.orm import Session

from app.models.client import Client

from .base_repository import BaseRepository


class ClientRepository(BaseRepository[Client]):
    def __init__(self, db: Session):
        super().__init__(db, Client)

    def adjust_unpaid_balance(self, client_id: str, delta: int, now: datetime) -> bool:
        """Add ``delta`` (may be negative) to the client's unpaid balance in one UPDATE."""
        stmt = (
            update(Client)
            .where(Client.id == client_id)
            .values(unpaid_balance=Client.unpaid_balance + delta, updated_at=now)
        )
        return self._execute_rowcount(stmt, client_id) == 1

    def get_unpaid_balance(self, client_id: str) -> int:
        client = self.get_by_id(client_id)
        if client is None:
            return 0
        self.refresh(client)
        return int(client.unpaid_balance)
