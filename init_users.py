#!/usr/bin/env python3
"""
Initialize demo users (admin, nurse, student) for the clinic system.
Run with: python3 init_users.py
"""
from eclinic import create_app
from eclinic.extensions import db
from eclinic.seeds import DEMO_USERS, seed_demo_users


def create_users():
    """Create tables if needed, then the demo users"""
    app = create_app()

    with app.app_context():
        print("=" * 60)
        print("Initializing Demo Users")
        print("=" * 60)
        print()

        db.create_all()
        created = seed_demo_users()

        for data in DEMO_USERS:
            if data['email'] in created:
                print(f"  ✓ Created: {data['email']} ({data['role']}) - Password: {data['password']}")
            else:
                print(f"  - User '{data['email']}' already exists (skipping)")

        print()
        print("=" * 60)
        print(f"✅ Created {len(created)} new user(s)")
        print("=" * 60)
        print("\n⚠️  IMPORTANT: Change passwords after first login!")
        print("\nAvailable Roles:")
        print("  - admin")
        print("  - nurse")
        print("  - student")


if __name__ == '__main__':
    create_users()
