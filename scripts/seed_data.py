#!/usr/bin/env python3
"""
Database seed data script for LearnSync.

This script populates the database with a demo school: staff and students
generated with Faker, a nested group tree (year → class → set) and student
assignments made through GroupService so they cascade to parent groups.

Usage:
    python scripts/seed_data.py          full dataset
    python scripts/seed_data.py small    smaller dataset for quick testing
"""

import random
import sys
from pathlib import Path
from typing import Dict, List

# Add the project root to the Python path
project_dir = Path(__file__).parent.parent
sys.path.insert(0, str(project_dir))

from faker import Faker
from sqlalchemy.orm import Session

from learnsync.config.settings import settings
from learnsync.core.database import SessionLocal, create_tables
from learnsync.core.locks import LocalTenantLockManager
from learnsync.models import School, User, SchoolMember, SchoolRole, Group, GroupMember
from learnsync.services.domain import GroupService, SQLAlchemyGroupStore

# Initialize Faker
fake = Faker()
Faker.seed(42)  # For reproducible data
random.seed(42)

YEARS = ["Year 7", "Year 8", "Year 9"]
CLASSES = ["A", "B", "C"]
SETS = ["Maths Set 1", "Maths Set 2"]


class DataSeeder:
    """Class to handle database seeding operations."""

    def __init__(self):
        self.db: Session = SessionLocal()
        self.service = GroupService(SQLAlchemyGroupStore(self.db), LocalTenantLockManager())
        self.service.initialize({"hierarchy_max_depth": settings.hierarchy_max_depth})
        self.school: School = None
        self.students: List[User] = []
        self.leaf_groups: List[int] = []

    def close(self):
        """Close database session."""
        self.db.close()

    def clear_existing_data(self):
        """Clear all existing data from tables."""
        print("🧹 Clearing existing data...")

        # Delete in reverse order of dependencies
        self.db.query(GroupMember).delete()
        self.db.query(Group).update({Group.parent_id: None})
        self.db.query(Group).delete()
        self.db.query(SchoolMember).delete()
        self.db.query(User).delete()
        self.db.query(School).delete()

        self.db.commit()
        print("✅ Existing data cleared")

    def create_school(self, staff_count: int, student_count: int):
        """Create the school with an admin, teachers and students."""
        print(f"🏫 Creating school with {staff_count} staff and {student_count} students...")

        self.school = School(name=f"{fake.city()} Academy")
        self.db.add(self.school)
        self.db.flush()

        roles: Dict[SchoolRole, int] = {SchoolRole.SUPER_ADMIN: 1, SchoolRole.ADMIN: 1, SchoolRole.TEACHER: staff_count}
        roles[SchoolRole.STUDENT] = student_count

        for role, count in roles.items():
            for _ in range(count):
                user = User(full_name=fake.name(), email=fake.unique.email())
                self.db.add(user)
                self.db.flush()
                self.db.add(SchoolMember(user_id=user.id, school_id=self.school.id, role=role))
                if role == SchoolRole.STUDENT:
                    self.students.append(user)

        self.db.commit()
        print(f"✅ Created school '{self.school.name}' ({self.school.id})")

    def create_group_tree(self):
        """Create year groups, classes inside each year and sets inside each class."""
        print("👥 Creating group hierarchy...")

        for year in YEARS:
            year_group = self.service.create_group(self.school.id, year).unwrap()
            for letter in CLASSES:
                class_group = self.service.create_group(
                    self.school.id, f"{year[-1]}{letter}", parent_id=year_group.id
                ).unwrap()
                for set_name in SETS:
                    set_group = self.service.create_group(
                        self.school.id, f"{class_group.name} {set_name}", parent_id=class_group.id
                    ).unwrap()
                    self.leaf_groups.append(set_group.id)

        print(f"✅ Created {len(YEARS) * (1 + len(CLASSES) * (1 + len(SETS)))} groups")

    def assign_students(self):
        """Put each student in one set; membership cascades to class and year."""
        print("🎓 Assigning students to sets...")

        created = 0
        for student in self.students:
            result = self.service.assign_members(self.school.id, random.choice(self.leaf_groups), [student.id])
            created += len(result.unwrap())

        print(f"✅ Created {created} memberships for {len(self.students)} students")

    def run_full_seed(self, staff_count: int = 12, student_count: int = 120):
        """Run complete database seeding process."""
        print("🌱 Starting database seeding process...")
        print("=" * 50)

        try:
            create_tables()
            self.clear_existing_data()
            self.create_school(staff_count, student_count)
            self.create_group_tree()
            self.assign_students()

            print()
            print("✅ Database seeding completed successfully!")
            print("=" * 50)
            print(f"📊 Summary:")
            print(f"   School: {self.school.name} ({self.school.id})")
            print(f"   Students: {len(self.students)}")
            print(f"   Leaf groups: {len(self.leaf_groups)}")

        except Exception as e:
            print(f"❌ Seeding failed: {e}")
            self.db.rollback()
            raise


def main():
    """Main seeding function."""
    seeder = DataSeeder()

    try:
        if len(sys.argv) > 1 and sys.argv[1] == "small":
            seeder.run_full_seed(staff_count=3, student_count=20)
        else:
            seeder.run_full_seed()
    finally:
        seeder.close()


if __name__ == "__main__":
    main()
