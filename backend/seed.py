"""
Seed script to populate the database with an admin and a few demo donors.
Run from backend/: python seed.py
"""
import sys
import os
sys.path.insert(0, os.path.dirname(__file__))

from lifepulse import create_app, db
from lifepulse.models import User
from lifepulse.utils.validators import parse_identifier

# (name, phone, blood group, longitude, latitude)
DEMO_DONORS = [
    ("Asha Verma", "+919800000001", "O+", 77.5946, 12.9716),
    ("Ravi Kumar", "+919800000002", "A+", 77.6101, 12.9352),
    ("Meera Nair", "+919800000003", "B-", 77.5670, 13.0070),
    ("Imran Shaikh", "+919800000004", "O-", 77.6408, 12.9784),
]


def seed():
    app = create_app()
    with app.app_context():
        db.create_all()

        admin_email = parse_identifier(os.getenv('SEED_ADMIN_EMAIL', 'admin@lifepulse.org'))
        admin = User.find_by_identifier(admin_email)
        if admin:
            print(f"  Admin user already exists (id={admin.id}), skipping.")
        else:
            admin = User(name="Admin", email=admin_email.value, role='REQUESTER',
                         blood_group='O+', is_admin=True)
            db.session.add(admin)
            db.session.commit()
            print(f"  Created admin user (id={admin.id}, email={admin_email.value})")

        for name, phone, blood_group, lon, lat in DEMO_DONORS:
            identifier = parse_identifier(phone)
            if User.find_by_identifier(identifier):
                print(f"  Donor '{name}' already exists, skipping.")
                continue
            donor = User(name=name, phone=identifier.value, role='DONOR',
                         blood_group=blood_group, availability=True)
            donor.update_location(lon, lat)
            db.session.add(donor)
            print(f"  Added donor '{name}' ({blood_group})")
        db.session.commit()
        print(f"Donors seeded: {User.query.filter_by(role='DONOR').count()} total.\n")

        print("\nDone.")


if __name__ == "__main__":
    seed()
