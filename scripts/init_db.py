import sys
from pathlib import Path
import os

from werkzeug.security import generate_password_hash

# Ensure repo root is on sys.path when running as a script (Windows-friendly).
ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from app.roledash.models import Base, User  # noqa: E402
from app.roledash.rbac import Role  # noqa: E402
from scripts._db_utils import create_script_engine, script_session  # noqa: E402


def create_tables(*, database_url: str) -> None:
    """Development helper; production schema is managed by alembic."""
    engine = create_script_engine(database_url)
    try:
        Base.metadata.create_all(bind=engine)
    finally:
        engine.dispose()


def seed_only(*, database_url: str | None = None) -> None:
    """
    Seed the administrator account in an idempotent way.
    Does NOT overwrite an existing admin user's password.
    """
    admin_email = (os.environ.get("ADMIN_EMAIL") or "admin@roledash.local").strip().lower()
    admin_password = os.environ.get("ADMIN_PASSWORD") or "change-me"
    admin_name = (os.environ.get("ADMIN_NAME") or "Administrator").strip()

    db_url = (database_url or os.environ.get("DATABASE_URL") or "sqlite:///roledash.db").strip()

    with script_session(db_url) as s:
        user = s.query(User).filter(User.email == admin_email).one_or_none()
        if not user:
            user = User(
                email=admin_email,
                name=admin_name,
                password_hash=generate_password_hash(admin_password),
                role=Role.ADMINISTRATOR.value,
                is_active=True,
            )
            s.add(user)
        elif user.role != Role.ADMINISTRATOR.value:
            user.role = Role.ADMINISTRATOR.value

    print("Initialized database (seed_only).")
    print(f"Admin email: {admin_email}")
    print("Admin password: (from ADMIN_PASSWORD)")


def main() -> None:
    db_url = (os.environ.get("DATABASE_URL") or "sqlite:///roledash.db").strip()
    if db_url.startswith("sqlite"):
        create_tables(database_url=db_url)
    seed_only(database_url=db_url)


if __name__ == "__main__":
    main()
