#!/usr/bin/env python3
"""
Admin user creation script
Creates an admin user for the back-office
"""

import os

from storefront import create_app, db
from storefront.models import User
from storefront.models.user import ROLE_ADMIN

def create_admin():
    email = os.getenv('ADMIN_EMAIL', 'admin@example.com')
    password = os.getenv('ADMIN_PASSWORD', 'admin123')

    app = create_app()

    with app.app_context():
        admin_user = User.query.filter_by(email=email).first()

        if admin_user:
            if admin_user.role != ROLE_ADMIN:
                admin_user.role = ROLE_ADMIN
                db.session.commit()
                print(f"Existing user promoted to admin: {email}")
            else:
                print(f"Admin user already exists: {email}")
            return

        print("Creating admin user...")
        admin_user = User(name='Administrator', email=email, role=ROLE_ADMIN)
        admin_user.set_password(password)

        db.session.add(admin_user)
        db.session.commit()

        print("Admin user created successfully!")
        print(f"Email: {email}")

if __name__ == '__main__':
    create_admin()
