# seed_db.py
from database import SessionLocal, init_db
from data import DEMO_PASSWORD, demo_events, demo_users
import models, utils


def seed():
    print("🌱 Seeding Database...")

    # 1. Reset Tables (Drop & Create)
    init_db(reset=True)

    db = SessionLocal()

    try:
        hashed_pwd = utils.hash_password(DEMO_PASSWORD)

        # --- 2. Create USERS ---
        print(f"   Creating {len(demo_users)} Users...")
        for user_data in demo_users:
            db.add(models.User(
                id=user_data["id"],
                name=user_data["name"],
                email=user_data["email"],
                hashed_password=hashed_pwd,
                role=models.UserRole(user_data["role"]),
            ))

        db.commit() # Commit users so IDs exist for registrations

        # --- 3. Create EVENTS ---
        print(f"   Creating {len(demo_events)} Events...")
        for event_data in demo_events:
            db.add(models.Event(
                title=event_data["title"],
                description=event_data["description"],
                date=event_data["date"],
                location=event_data["location"],
                department=event_data["department"],
                image=event_data["image"],
                total_slots=event_data["total_slots"],
                available_slots=event_data["total_slots"],
            ))

        db.commit()
        print("✅ Seeding Complete!")

    except Exception as e:
        print("❌ Error:", e)
        db.rollback()
    finally:
        db.close()

if __name__ == "__main__":
    seed()
