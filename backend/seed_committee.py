import os
from sqlmodel import Session, select
from core.database import engine, create_db_and_tables
from models.user import Permission, User, UserRole
from utils.security import hash_password

COMMITTEE_NAME = os.getenv("SEED_COMMITTEE_NAME", "Society Committee")
COMMITTEE_EMAIL = os.getenv("SEED_COMMITTEE_EMAIL", "committee@example.com").lower()
COMMITTEE_PASSWORD = os.getenv("SEED_COMMITTEE_PASSWORD", "Committee@123")


def seed_committee():
    create_db_and_tables()
    with Session(engine) as session:
        # check if the committee account already exists
        statement = select(User).where(User.email == COMMITTEE_EMAIL)
        existing = session.exec(statement).first()

        if existing:
            print("Committee member already exists")
            return

        member = User(
            name=COMMITTEE_NAME,
            email=COMMITTEE_EMAIL,
            password_hash=hash_password(COMMITTEE_PASSWORD),
            role=UserRole.committee,
            permissions=[permission.value for permission in Permission],
        )

        session.add(member)
        session.commit()
        print(f"Committee member {COMMITTEE_EMAIL} seeded successfully")


if __name__ == "__main__":
    seed_committee()
