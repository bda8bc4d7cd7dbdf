from datetime import date

from sps_dashboard.auth.security import get_password_hash, create_access_token
from sps_dashboard.models.models import User, Client, Chantier, Mission, Report

PASSWORD = "secret123"


def make_user(db, email, role="coordinator", first_name="Jean", last_name="Martin", is_active=True, **extra):
    u = User(
        email=email,
        password_hash=get_password_hash(PASSWORD),
        first_name=first_name,
        last_name=last_name,
        role=role,
        is_active=is_active,
        **extra,
    )
    db.add(u)
    db.commit()
    db.refresh(u)
    return u


def auth_headers(user):
    return {"Authorization": f"Bearer {create_access_token(str(user.id), role=user.role)}"}


def make_mission(db, client_name="Bouygues", site_name="Tour Alpha", address="1 rue de la Paix", city="Paris",
                 status="pending", coordinator=None, created_at=None):
    c = db.query(Client).filter(Client.name == client_name).first()
    if c is None:
        c = Client(name=client_name)
        db.add(c)
        db.flush()
    site = Chantier(client_id=c.id, name=site_name, address=address, city=city)
    db.add(site)
    db.flush()
    m = Mission(
        chantier_id=site.id,
        coordinator_id=coordinator.id if coordinator else None,
        start_date=date(2025, 3, 1),
        end_date=date(2025, 3, 10),
        status=status,
    )
    if created_at is not None:
        m.created_at = created_at
    db.add(m)
    db.commit()
    db.refresh(m)
    return m


def make_report(db, mission, status="draft", coordinator=None, content="Visite conforme", **fields):
    owner = coordinator or mission.coordinator
    r = Report(
        mission_id=mission.id,
        coordinator_id=owner.id if owner else None,
        content=content,
        status=status,
        **fields,
    )
    db.add(r)
    db.commit()
    db.refresh(r)
    return r
