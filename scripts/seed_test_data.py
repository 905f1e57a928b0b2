"""
Seed the local database with demo users, sites and stock.

Usage:
  python scripts/seed_test_data.py

This script is idempotent: users are matched on email, sites and items on
name, so running it again leaves existing records alone.
"""
from sitehub.db import Base, SessionLocal, engine
from sitehub.models.models import Item, Profile, Site
from sitehub.services import assignments, ledger, users
from sitehub.services.identity import LocalIdentityProvider


DEMO_PASSWORD = "password123"


def ensure_user(session, email: str, full_name: str, role: str, phone: str = "") -> Profile:
    profile = session.query(Profile).filter(Profile.email == email).first()
    if profile:
        return profile
    return users.create_user(session, LocalIdentityProvider(session), email, DEMO_PASSWORD, full_name, role, phone=phone)


def ensure_site(session, name: str, location: str, description: str = "") -> Site:
    site = session.query(Site).filter(Site.name == name, Site.deleted_at.is_(None)).first()
    if site:
        return site
    site = Site(name=name, location=location, description=description)
    session.add(site)
    session.flush()
    return site


def ensure_item(session, name: str, item_type: str, quantity: int) -> Item:
    item = session.query(Item).filter(Item.name == name, Item.deleted_at.is_(None)).first()
    if item:
        return item
    item = Item(name=name, item_type=item_type, quantity=quantity)
    session.add(item)
    session.flush()
    return item


def main():
    Base.metadata.create_all(bind=engine)
    session = SessionLocal()
    try:
        admin = ensure_user(session, "admin@example.com", "Site Admin", "admin")
        manager = ensure_user(session, "manager@example.com", "Morgan Manager", "site_manager")
        workers = [
            ensure_user(session, "sam.worker@example.com", "Sam Worker", "worker", phone="07700 900001"),
            ensure_user(session, "jo.worker@example.com", "Jo Worker", "worker", phone="07700 900002"),
        ]

        north = ensure_site(session, "North Yard", "Leeds", "Steel frame, phase 2")
        riverside = ensure_site(session, "Riverside Flats", "York", "Groundworks")
        mixer = ensure_item(session, "Cement mixer", "equipment", 4)
        cement = ensure_item(session, "Cement (25kg bag)", "material", 200)
        session.commit()

        if not assignments.managed_site_ids(session, manager.id):
            assignments.assign_manager(session, north.id, manager.id)
        for worker, site in zip(workers, (north, riverside)):
            if assignments.active_assignment(session, worker.id) is None:
                assignments.assign_worker(session, site.id, worker.id, actor_id=admin.id)

        if ledger.get_active_row(session, north.id, mixer.id) is None:
            ledger.add_quantity(session, north.id, mixer.id, 1)
            ledger.add_quantity(session, north.id, cement.id, 40)
        session.commit()
        print("Seed completed: users, sites and stock upserted.")
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()


if __name__ == "__main__":
    main()
