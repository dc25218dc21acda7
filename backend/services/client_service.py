"""Client service - CRUD for a firm's monitored companies."""

import logging

from sqlalchemy.orm import Session

from models import Client, ReconciliationRun
from services.exceptions import ClientNotFound

logger = logging.getLogger(__name__)

_UPDATABLE_FIELDS = (
    "client_name",
    "realm_id",
    "dropbox_folder_url",
    "dropbox_folder_path",
    "sheet_url",
)


class ClientService:
    """Service for managing clients. All queries are firm-scoped."""

    @staticmethod
    def list_clients(db: Session, firm_id: str, include_inactive: bool = False) -> list[Client]:
        query = db.query(Client).filter(Client.firm_id == firm_id)
        if not include_inactive:
            query = query.filter(Client.is_active.is_(True))
        return query.order_by(Client.client_name).all()

    @staticmethod
    def get(db: Session, firm_id: str, client_id: str) -> Client:
        """Get a client owned by the firm.

        Raises:
            ClientNotFound: Missing or owned by another firm.
        """
        client = (
            db.query(Client)
            .filter(Client.id == client_id, Client.firm_id == firm_id)
            .first()
        )
        if client is None:
            raise ClientNotFound(f"Client not found: {client_id}")
        return client

    @staticmethod
    def find_by_realm(db: Session, firm_id: str, realm_id: str) -> Client | None:
        return (
            db.query(Client)
            .filter(Client.firm_id == firm_id, Client.realm_id == realm_id)
            .first()
        )

    @staticmethod
    def create(
        db: Session,
        firm_id: str,
        client_name: str,
        created_by: str | None = None,
        **fields,
    ) -> Client:
        client = Client(
            firm_id=firm_id,
            client_name=client_name,
            created_by=created_by,
            connection_status="pending",
            is_active=True,
        )
        for key in _UPDATABLE_FIELDS:
            if key in fields and fields[key] is not None:
                setattr(client, key, fields[key])
        db.add(client)
        db.flush()
        logger.info("Created client %s (%s) for firm %s", client.id, client_name, firm_id)
        return client

    @staticmethod
    def update(db: Session, client: Client, **fields) -> Client:
        """Apply the given fields. Unknown keys are ignored."""
        for key in _UPDATABLE_FIELDS:
            if key in fields:
                setattr(client, key, fields[key])
        db.flush()
        return client

    @staticmethod
    def deactivate(db: Session, client: Client) -> Client:
        """Soft-delete: hide from listings, keep history."""
        client.is_active = False
        db.flush()
        logger.info("Deactivated client %s", client.id)
        return client

    @staticmethod
    def list_runs(db: Session, client_id: str, limit: int = 50) -> list[ReconciliationRun]:
        return (
            db.query(ReconciliationRun)
            .filter(ReconciliationRun.client_id == client_id)
            .order_by(ReconciliationRun.started_at.desc())
            .limit(limit)
            .all()
        )
