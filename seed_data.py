"""Seed initial data for development

Run this script to create:
- A few demo departments with default settings
- 30-minute weekday time slots for each department

Usage:
    python seed_data.py
"""
from app.core.database import SessionLocal, init_db
from app.models.models import Department, DepartmentSettings
from app.utils.slot_manager import replace_department_slots

DEPARTMENTS = [
    ("Civil Registry", "Birth, marriage and death certificates", True),
    ("Business Permits", "New and renewed business permits", True),
    ("Treasury", "Tax payments and clearances", False),
    ("Social Welfare", "Assistance programs and senior citizen IDs", True),
]


def seed_data():
    init_db()
    db = SessionLocal()

    try:
        # Check if data already exists
        existing = db.query(Department).first()
        if existing:
            print("Data already exists. Skipping seed.")
            return

        for order, (name, description, online) in enumerate(DEPARTMENTS):
            department = Department(name=name, description=description, display_order=order, is_active=True)
            department.settings = DepartmentSettings(can_receive_appointments=online)
            db.add(department)
            db.flush()

            slots = replace_department_slots(db, department, duration_minutes=30)
            print(f"✓ Created department: {department.name} (ID: {department.id}, {len(slots)} slots)")

        db.commit()

        print("\n" + "="*50)
        print("✅ Seed data created successfully!")
        print("="*50)
        print(f"\nDepartments created: {len(DEPARTMENTS)}")

    except Exception as e:
        db.rollback()
        print(f"❌ Error seeding data: {e}")
        raise
    finally:
        db.close()


if __name__ == "__main__":
    print("Seeding database with initial data...")
    seed_data()
