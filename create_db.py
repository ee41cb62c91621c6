# create_db.py
import asyncio
from sqlalchemy.future import select

from shared.db import engine, Base, AsyncSessionLocal

# Import all models here so they are registered with SQLAlchemy's metadata
import services.user_management.models
import services.exam_management.models
from services.exam_management.engine.grading import KCSE_BANDS
from services.exam_management.models.grading import GradingSystem
from services.exam_management.repository import ExamRepository

KCSE_NAME = "KCSE Grading System"

async def init_models():
    async with engine.begin() as conn:
        print("🔧 Creating tables...")
        await conn.run_sync(Base.metadata.create_all)
        print("✅ Tables created.")

async def seed_grading_system():
    async with AsyncSessionLocal() as session:
        existing = await session.execute(
            select(GradingSystem).where(GradingSystem.school_id.is_(None), GradingSystem.name == KCSE_NAME)
        )
        if existing.scalars().first():
            return
        await ExamRepository(session).create_grading_system(None, KCSE_NAME, KCSE_BANDS, is_default=True)
        print("✅ KCSE grading system seeded.")

async def main():
    await init_models()
    await seed_grading_system()

if __name__ == "__main__":
    asyncio.run(main())
