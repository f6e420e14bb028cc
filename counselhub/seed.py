"""Create demo users and print a bearer token for each.

Usage:
    python -m counselhub.seed
"""
import sys

from sqlalchemy.exc import SQLAlchemyError

from counselhub.auth.jwt_handler import create_access_token
from counselhub.cache import invalidate
from counselhub.database import Base, SessionLocal, engine
from counselhub.models.user import ADMIN_ROLE, COUNSELOR_ROLE, STUDENT_ROLE, CounselorProfile, User

DEMO_USERS = [
    {"email": "admin@counselhub.edu", "full_name": "Campus Admin", "role": ADMIN_ROLE},
    {
        "email": "rivera@counselhub.edu",
        "full_name": "Dana Rivera",
        "role": COUNSELOR_ROLE,
        "profile": {"office": "Wellness Center 204", "phone": "555-0142", "department": "CCS"},
    },
    {
        "email": "okafor@counselhub.edu",
        "full_name": "Chidi Okafor",
        "role": COUNSELOR_ROLE,
        "profile": {"office": "Wellness Center 210", "phone": "555-0178", "department": "COE"},
    },
    {"email": "student@counselhub.edu", "full_name": "Sam Student", "role": STUDENT_ROLE},
]


def seed(db) -> list[User]:
    users = []
    for entry in DEMO_USERS:
        user = db.query(User).filter(User.email == entry["email"]).first()
        if user is None:
            user = User(email=entry["email"], full_name=entry["full_name"], role=entry["role"])
            db.add(user)
            db.flush()

        profile_data = entry.get("profile")
        if profile_data and user.counselor_profile is None:
            db.add(CounselorProfile(user_id=user.id, **profile_data))
        users.append(user)

    db.commit()
    invalidate("counselor_profile", None)
    return users


def main() -> None:
    Base.metadata.create_all(bind=engine)
    db = SessionLocal()
    try:
        users = seed(db)
        for user in users:
            print(f"{user.role:<10} {user.email:<28} {create_access_token(user.id, user.role)}")
    except SQLAlchemyError as exc:
        print(f"Seeding failed: {exc}", file=sys.stderr)
        sys.exit(1)
    finally:
        db.close()


if __name__ == "__main__":
    main()
