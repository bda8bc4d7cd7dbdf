from typing import Optional, Tuple

from sqlalchemy import func
from sqlalchemy.orm import Session

from ..models.models import Client, Chantier


def _norm(value: Optional[str]) -> str:
    return (value or "").strip().lower()


def find_client(db: Session, name: str) -> Optional[Client]:
    return (
        db.query(Client)
        .filter(func.lower(func.trim(Client.name)) == _norm(name))
        .order_by(Client.created_at.asc())
        .first()
    )


def resolve_client(db: Session, name: str) -> Tuple[Client, bool]:
    """Existing client with the same name (case-insensitive), or a new one. Returns (client, created)."""
    client = find_client(db, name)
    if client:
        return client, False
    client = Client(name=name.strip())
    db.add(client)
    db.flush()
    return client, True


def find_site(db: Session, client: Client, name: str, address: str) -> Optional[Chantier]:
    return (
        db.query(Chantier)
        .filter(
            Chantier.client_id == client.id,
            func.lower(func.trim(Chantier.name)) == _norm(name),
            func.lower(func.trim(Chantier.address)) == _norm(address),
        )
        .order_by(Chantier.created_at.asc())
        .first()
    )


def create_site(
    db: Session,
    client: Client,
    name: str,
    address: str,
    city: str,
    postal_code: Optional[str] = None,
    internal_reference: Optional[str] = None,
) -> Chantier:
    site = Chantier(
        client_id=client.id,
        name=name.strip(),
        address=address.strip(),
        city=city.strip(),
        postal_code=postal_code,
        internal_reference=internal_reference,
    )
    db.add(site)
    db.flush()
    return site


def resolve_site(
    db: Session,
    client: Client,
    name: str,
    address: str,
    city: str,
    postal_code: Optional[str] = None,
    internal_reference: Optional[str] = None,
) -> Tuple[Chantier, bool]:
    """Reuse the site matching client + name + address, otherwise create it. Returns (site, created)."""
    site = find_site(db, client, name, address)
    if site:
        return site, False
    return create_site(db, client, name, address, city, postal_code, internal_reference), True
