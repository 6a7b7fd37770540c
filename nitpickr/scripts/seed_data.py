"""
Seed data script for local development.

Creates the fixed tiers, sample users, a team with members and a couple
of real estate listings with issues for exercising the API.
"""

import asyncio
from uuid import uuid4

from sqlalchemy import select

from nitpickr.database import AsyncSessionLocal, init_db
from nitpickr.models import (
    IssueComment,
    RealEstate,
    RealEstateIssue,
    Role,
    Team,
    TeamMember,
    Tier,
    User,
)
from nitpickr.scripts.sync_stripe import FIXED_TIERS
from nitpickr.security import hash_password


async def seed_database():
    """Create seed data for development."""

    print("🌱 Seeding database with sample data...")

    async with AsyncSessionLocal() as db:
        # Check if data already exists
        result = await db.execute(select(User))
        if result.scalars().first():
            print("⚠️  Database already has data. Skipping seed.")
            return

        # Tiers
        print("\n💳 Creating tiers...")
        for data in FIXED_TIERS:
            if await db.get(Tier, data["id"]) is None:
                db.add(Tier(**data))
        await db.commit()
        print(f"  ✅ Created {len(FIXED_TIERS)} tiers")

        # Users
        print("\n👤 Creating users...")
        alice = User(
            id=uuid4(),
            email="alice@example.com",
            name="Alice Buyer",
            hashed_password=hash_password("password123"),
        )
        bob = User(
            id=uuid4(),
            email="bob@example.com",
            name="Bob Partner",
            hashed_password=hash_password("password123"),
        )
        db.add_all([alice, bob])
        await db.commit()
        print(f"  ✅ Created {alice.email}")
        print(f"  ✅ Created {bob.email}")

        # Team
        print("\n👥 Creating team...")
        house_hunt = Team(id=uuid4(), name="House Hunt", slug="house-hunt")
        db.add(house_hunt)
        await db.flush()
        db.add_all([
            TeamMember(team_id=house_hunt.id, user_id=alice.id, role=Role.OWNER),
            TeamMember(team_id=house_hunt.id, user_id=bob.id, role=Role.MEMBER),
        ])
        await db.commit()
        print(f"  ✅ Created {house_hunt.name} with 2 members")

        # Listings
        print("\n🏠 Creating listings...")
        maple = RealEstate(
            id="seed-listing-1",
            address="12 Maple Street, Springfield",
            price=425000,
            bedrooms=3,
            bathrooms=2,
            area=1850,
            garage=1,
            year_built=1978,
            town="Springfield",
            status="for_sale",
            postal_code="01101",
            geo={"lat": 42.1015, "lng": -72.5898},
            property_history=[{"date": "2015-06-01", "event": "Sold", "price": 310000}],
        )
        oak = RealEstate(
            id="seed-listing-2",
            address="48 Oak Avenue, Springfield",
            price=389000,
            bedrooms=2,
            bathrooms=1.5,
            area=1320,
            year_built=1995,
            town="Springfield",
            status="for_sale",
            postal_code="01103",
            geo={"lat": 42.1102, "lng": -72.5771},
        )
        db.add_all([maple, oak])
        await db.flush()

        roof = RealEstateIssue(
            real_estate_id=maple.id,
            category="Exterior",
            area="Roof",
            title="Roof shingles near end of life",
            description="Original 2004 roof; expect replacement within 5 years.",
            severity="high",
            created_by=alice.id,
            team_id=house_hunt.id,
        )
        db.add(roof)
        await db.flush()
        db.add(
            IssueComment(
                issue_id=roof.id,
                content="Ask the seller for a credit.",
                created_by=bob.id,
                team_id=house_hunt.id,
            )
        )
        await db.commit()
        print(f"  ✅ Created {maple.address}")
        print(f"  ✅ Created {oak.address}")

    print("\n✅ Database seeded successfully!")
    print("\n🔑 Test Credentials:")
    print("  - alice@example.com / password123")
    print("  - bob@example.com / password123")


async def main():
    """Main entry point."""
    print("🔧 Initializing database schema...")
    await init_db()
    print("✅ Database schema created")

    await seed_database()


if __name__ == "__main__":
    asyncio.run(main())
