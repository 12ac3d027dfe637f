#!/usr/bin/env python3
"""
Database setup script for LearnSync.

This script initializes the database, creates all tables,
and provides options for resetting or auditing the database.

Usage:
    python scripts/setup_db.py            create missing tables
    python scripts/setup_db.py reset      drop and recreate every table
    python scripts/setup_db.py verify     count rows per table
    python scripts/setup_db.py audit      check every school's groups for cycles
"""

import sys
from pathlib import Path

# Add the project root to the Python path
project_dir = Path(__file__).parent.parent
sys.path.insert(0, str(project_dir))

from sqlalchemy import inspect, text
from sqlalchemy.exc import SQLAlchemyError

from learnsync.config.settings import settings
from learnsync.core.database import engine, create_tables, drop_tables, SessionLocal
from learnsync.core.locks import LocalTenantLockManager
from learnsync.models import School
from learnsync.services.domain import GroupService, SQLAlchemyGroupStore

EXPECTED_TABLES = ["schools", "users", "school_members", "groups", "group_members"]


def check_database_connection() -> bool:
    """Check if database connection is working."""
    try:
        with engine.connect() as conn:
            conn.execute(text("SELECT 1"))
        print("✅ Database connection successful")
        return True
    except SQLAlchemyError as e:
        print(f"❌ Database connection failed: {e}")
        return False


def create_database_tables() -> bool:
    """Create all database tables."""
    try:
        print("📝 Creating database tables...")
        create_tables()
        print(f"📋 Tables: {', '.join(inspect(engine).get_table_names())}")
        return True
    except SQLAlchemyError as e:
        print(f"❌ Failed to create tables: {e}")
        return False


def reset_database() -> bool:
    """Drop and recreate all database tables."""
    try:
        print("⚠️  Dropping all existing tables...")
        drop_tables()
        print("📝 Recreating database tables...")
        create_tables()
        return True
    except SQLAlchemyError as e:
        print(f"❌ Failed to reset database: {e}")
        return False


def verify_tables() -> bool:
    """Verify that all expected tables exist."""
    db = SessionLocal()
    try:
        for table_name in EXPECTED_TABLES:
            try:
                count = db.execute(text(f"SELECT COUNT(*) FROM {table_name}")).scalar()
                print(f"✅ Table '{table_name}': {count} records")
            except SQLAlchemyError as e:
                print(f"❌ Table '{table_name}': Error - {e}")
                return False
        return True
    finally:
        db.close()


def audit_group_forests() -> bool:
    """Run the cycle check for every school."""
    db = SessionLocal()
    try:
        service = GroupService(SQLAlchemyGroupStore(db), LocalTenantLockManager())
        service.initialize({"hierarchy_max_depth": settings.hierarchy_max_depth})

        healthy = True
        for school in db.query(School).order_by(School.name).all():
            result = service.verify_forest(school.id)
            if result.success:
                print(f"✅ {school.name}: {result.data['groups']} groups, {result.data['roots']} roots")
            else:
                healthy = False
                print(f"❌ {school.name}: {result.error.message} {result.error.details}")
        return healthy
    finally:
        db.close()


def main():
    """Main setup function."""
    print("🚀 LearnSync Database Setup")
    print("=" * 40)
    print(f"Database URL: {settings.database_url}")
    print()

    if not check_database_connection():
        print("❌ Cannot proceed without database connection")
        sys.exit(1)

    command = sys.argv[1].lower() if len(sys.argv) > 1 else "create"

    if command == "reset":
        print("⚠️  WARNING: This will delete all existing data!")
        response = input("Are you sure you want to reset the database? (yes/no): ")
        if response.lower() != "yes":
            print("❌ Database reset cancelled")
            sys.exit(0)
        if not reset_database():
            sys.exit(1)
        print("✅ Database reset completed successfully")

    elif command == "verify":
        print("🔍 Verifying database tables...")
        if not verify_tables():
            sys.exit(1)

    elif command == "audit":
        print("🔍 Checking group hierarchies...")
        if not audit_group_forests():
            sys.exit(1)

    elif command == "create":
        if not create_database_tables() or not verify_tables():
            print("❌ Database setup failed")
            sys.exit(1)
        print()
        print("✅ Database setup completed successfully!")
        print()
        print("Next steps:")
        print("1. Run seed data script: python scripts/seed_data.py")
        print("2. Start Redis server: redis-server")
        print("3. Start Celery worker: python scripts/run_workers.py")
        print("4. Start FastAPI server: uvicorn learnsync.main:app --reload")

    else:
        print(f"❌ Unknown command: {command}")
        print("Available commands: reset, verify, audit")
        sys.exit(1)


if __name__ == "__main__":
    main()
