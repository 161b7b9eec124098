# chesscal/db/init_db.py
from chesscal.config import Settings
from chesscal.db.session import EventStore


def main() -> int:
    """Create tables without Alembic (dev / fresh checkouts)."""
    settings = Settings.from_env()
    with EventStore(settings.database_url) as store:
        store.create_all()
    print(f"✅ Tables created (or already exist) in {settings.database_url}.")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
