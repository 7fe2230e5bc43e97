import re
from datetime import datetime
from flask import current_app
from flask_security import hash_password
from sqlalchemy import extract
from app.extensions import db
from app.models import User, Role, Project, ProjectStatus, Donation, DonationStatus

DEFAULT_ROLES = [
    ('admin', 'Administrator'),
    ('user', 'Regular user'),
    ('donor', 'Donor'),
]


def _user_datastore():
    """user_datastore from extensions (set in init_extensions), or a fresh one"""
    from flask_security import SQLAlchemyUserDatastore
    from app.extensions import user_datastore
    return user_datastore or SQLAlchemyUserDatastore(db, User, Role)


def generate_slug(name):
    slug = re.sub(r'[^a-z0-9]+', '-', name.lower()).strip('-')
    return slug or 'projet'


def ensure_roles():
    created = False
    for name, description in DEFAULT_ROLES:
        if not Role.query.filter_by(name=name).first():
            db.session.add(Role(name=name, description=description))
            created = True
    if created:
        db.session.commit()
        print("✓ Roles created")


def init_db_command():
    """Initialize the database using Flask-Migrate."""
    from flask_migrate import upgrade, stamp
    from sqlalchemy import inspect

    existing_tables = inspect(db.engine).get_table_names()
    if not existing_tables:
        # Empty database: create everything then mark migrations as applied
        print("Database is empty. Creating all tables...")
        db.create_all()
        print(f"✓ {len(inspect(db.engine).get_table_names())} tables created")
        try:
            stamp(revision='head')
            print("✓ Migrations marked as applied")
        except Exception as e:
            print(f"⚠️  Could not stamp migrations: {e}")
    else:
        print("Upgrading database schema using migrations...")
        upgrade()
        print("✓ Database upgraded")

    ensure_roles()
    print("Database initialized successfully!")


def create_admin_user_command(email=None, password=None, username=None):
    """Create or update admin user."""
    uds = _user_datastore()

    if not email:
        email = current_app.config.get('ADMIN_USER_EMAIL', 'admin@nouveausouffle.org')

    if not password:
        password = current_app.config.get('ADMIN_PASSWORD')
        if not password:
            # Only in development: use default password
            if current_app.config.get('ENV') == 'development':
                password = 'admin123'
                print("⚠️  Using default password 'admin123' (development only)")
            else:
                print("❌ ERROR: ADMIN_PASSWORD not configured and no password provided.")
                print("   Set ADMIN_PASSWORD environment variable or use --password option.")
                return False

    username = username or 'admin'

    ensure_roles()
    admin_role = Role.query.filter_by(name='admin').first()

    admin_user = User.query.filter_by(email=email).first()
    if admin_user:
        print(f"User with email '{email}' already exists. Ensuring admin role...")
        if admin_role not in admin_user.roles:
            uds.add_role_to_user(admin_user, admin_role)
            print("✓ Admin role added to user")
        admin_user.password = hash_password(password)
        admin_user.active = True
        if not admin_user.confirmed_at:
            admin_user.confirmed_at = datetime.now()
        db.session.commit()
        print("✅ Admin user updated successfully!")
        return True

    uds.create_user(
        email=email,
        username=username,
        password=hash_password(password),
        active=True,
        confirmed_at=datetime.now(),
        roles=[admin_role]
    )
    db.session.commit()
    print("✅ Admin user created successfully!")
    print(f"   Email: {email}")
    print(f"   Username: {username}")
    return True


def create_project_command(name, slug=None, goal=None, status=ProjectStatus.ACTIVE.value):
    """Create a fundraising project (goal in euros)."""
    slug = slug or generate_slug(name)
    if Project.query.filter_by(slug=slug).first():
        print(f"❌ A project with slug '{slug}' already exists.")
        return None

    project = Project(
        name=name,
        slug=slug,
        status=status,
        goal_amount=int(round(goal * 100)) if goal is not None else None,
        collected_amount=0,
    )
    db.session.add(project)
    db.session.commit()
    print(f"✅ Project created: {project.name} (id={project.id}, slug={project.slug}, status={project.status})")
    return project


def generate_annual_receipts_command(year):
    """Issue the annual receipt of every donor account with completed donations in year."""
    from app.errors import DonationCoreError
    from app.services import get_donation_core

    receipts = get_donation_core().receipts
    user_ids = [row[0] for row in db.session.query(Donation.user_id)
                .filter(Donation.user_id.isnot(None),
                        Donation.status == DonationStatus.COMPLETED.value,
                        extract('year', Donation.paid_at) == year)
                .distinct()
                .all()]
    print(f"{len(user_ids)} donors with completed donations in {year}")

    generated = 0
    for user_id in user_ids:
        user = db.session.get(User, user_id)
        try:
            receipt = receipts.allocate_annual(user, year)
            db.session.commit()
        except DonationCoreError as e:
            db.session.rollback()
            current_app.logger.error(f'Annual receipt for user {user_id} failed: {e.message}')
            print(f"  ✗ {user.email}: {e.message}")
            continue
        generated += 1
        print(f"  ✓ {user.email}: {receipt.receipt_number} ({receipt.amount_euros}€)")

    print(f"✅ {generated} annual receipts generated for {year}")
    return generated
