"""Database seeder for local development of the heritage entries API."""
import asyncio
import argparse
import random
import time
from datetime import datetime, timezone, timedelta

from heritage.auth import create_access_token
from heritage.database import engine, async_session, Base
from heritage.models import Comment, Entry, EntryLike, User
from heritage.schemas import Category
from heritage.services.entry_service import derive_slug

PLACES = ["Hampi", "Kyoto", "Cusco", "Petra", "Varanasi", "Angkor", "Luxor", "Bagan",
          "Chichen Itza", "Lalibela", "Samarkand", "Konark"]
SUBJECTS = ["Temple of the Sun", "Stepwell", "Harvest Festival", "Bronze Casting",
            "Shadow Puppetry", "Stone Observatory", "Rock-cut Shrine", "Lantern Parade"]


async def seed(small: bool = False):
    num_users = 10 if small else 50
    num_entries = 50 if small else 2000
    max_comments_per_entry = 2 if small else 6

    print(f"Seeding: {num_users} users, {num_entries} entries")
    start = time.perf_counter()

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
        await conn.run_sync(Base.metadata.create_all)

    async with async_session() as session:
        admin = User(username="admin", email="admin@example.com", name="Administrator", role="admin")
        session.add(admin)
        users = [admin]
        for i in range(num_users):
            user = User(
                username=f"user_{i:04d}",
                email=f"user_{i:04d}@example.com",
                name=f"Explorer {i}",
            )
            session.add(user)
            users.append(user)
        await session.flush()
        print(f"  Created {len(users)} users")

        total_comments = 0
        categories = [c.value for c in Category]
        for i in range(num_entries):
            title = f"{random.choice(SUBJECTS)} of {random.choice(PLACES)} #{i}"
            created = datetime.now(timezone.utc) - timedelta(days=random.randint(0, 365))
            entry = Entry(
                title=title,
                slug=derive_slug(title),
                category=random.choice(categories),
                image_urls=[f"https://images.example.com/{i}/{n}.jpg" for n in range(random.randint(1, 3))],
                content=f"Field notes on {title}. " * 10,
                location=random.choice(PLACES),
                views=random.randint(0, 5000),
                keywords=random.sample(PLACES, k=2),
                created_by=admin.id,
                created_at=created,
                updated_at=created,
            )
            session.add(entry)
            await session.flush()

            for liker in random.sample(users, k=random.randint(0, min(5, len(users)))):
                session.add(EntryLike(entry_id=entry.id, user_id=liker.id))
            for _ in range(random.randint(0, max_comments_per_entry)):
                author = random.choice(users)
                session.add(Comment(
                    entry_id=entry.id,
                    user_id=author.id,
                    user_name=author.name,
                    text=f"Visited {entry.location} last year, unforgettable.",
                ))
                total_comments += 1

        await session.commit()

    elapsed = time.perf_counter() - start
    print(f"\nSeeding complete in {elapsed:.1f}s")
    print(f"  Entries: {num_entries}")
    print(f"  Comments: {total_comments}")
    print(f"  Admin token: {create_access_token(admin.id)}")


def main():
    parser = argparse.ArgumentParser(description="Seed the heritage entries database")
    parser.add_argument("--small", action="store_true", help="Use small dataset (50 entries)")
    args = parser.parse_args()
    asyncio.run(seed(small=args.small))


if __name__ == "__main__":
    main()
