# scripts/seed_demo.py
# Crea tabelle, piani di default e un'org demo; stampa un token super_admin per uso locale.
import os, sys
import uuid
sys.path.append(os.path.abspath(os.path.join(os.path.dirname(__file__), "..")))

from app.core.security import ROLE_SUPER_ADMIN, create_access_token
from app.db.session import SessionLocal, init_db
from app.models.org import Org
from app.models.plan import LicensePlan

DEFAULT_PLANS = [
    {
        "name": "Basic", "code": "basic", "duration_days": 365, "max_devices": 1, "price_cents": 9900,
        "features": {"contacts": 1000, "campaigns": 10, "templates": 20, "support": "email"},
    },
    {
        "name": "Professional", "code": "pro", "duration_days": 365, "max_devices": 3, "price_cents": 29900,
        "features": {"contacts": 10000, "campaigns": 100, "templates": 100, "support": "priority", "automation": True},
    },
    {
        "name": "Enterprise", "code": "enterprise", "duration_days": 365, "max_devices": 10, "price_cents": 99900,
        "features": {
            "contacts": -1, "campaigns": -1, "templates": -1, "support": "24/7",
            "automation": True, "api_access": True, "white_label": True,
        },
    },
]

DEMO_ORG_NAME = "Demo Org"


def main():
    init_db()
    db = SessionLocal()
    try:
        existing = {p.code for p in db.query(LicensePlan).all()}
        created = 0
        for data in DEFAULT_PLANS:
            if data["code"] in existing:
                continue
            db.add(LicensePlan(**data))
            created += 1

        org = db.query(Org).filter(Org.name == DEMO_ORG_NAME).first()
        if org is None:
            org = Org(name=DEMO_ORG_NAME)
            db.add(org)
        db.commit()
        db.refresh(org)

        token = create_access_token(uuid.uuid4(), org.id, role=ROLE_SUPER_ADMIN)
        print(f"Seed completato. Piani creati: {created}. Totali: {db.query(LicensePlan).count()}.")
        print(f"Org demo: {org.id}")
        print(f"Token super_admin: {token}")
    finally:
        db.close()

if __name__ == "__main__":
    main()
