#!/usr/bin/env python3
"""
Reset development database - creates a fresh schema, the dev admin, the default rate
brackets and payment destinations. Run from the backend/ directory.
"""
import os
from pathlib import Path

# Ensure we're in the backend directory
backend_dir = Path(__file__).parent
os.chdir(backend_dir)

# Force load .env before importing app modules
from dotenv import load_dotenv

load_dotenv(backend_dir / ".env", override=True)

# Always target the local sqlite dev DB for this script.
os.environ["DATABASE_URL"] = "sqlite:///./dev.db"
os.environ.setdefault("ENVIRONMENT", "dev")

from tetherdesk.config import settings  # noqa: E402
from tetherdesk.database import Base, engine  # noqa: E402
from tetherdesk.main import seed_dev_data  # noqa: E402


def main():
    db_path = backend_dir / "dev.db"

    if db_path.exists():
        print(f"Removing existing database: {db_path}")
        db_path.unlink()

    print("Creating database tables...")
    Base.metadata.create_all(bind=engine)

    seed_dev_data()
    print(f"Seeded admin {settings.dev_admin_email} (password from DEV_ADMIN_PASSWORD)")
    print(f"Development database reset complete: {db_path}")


if __name__ == "__main__":
    main()
