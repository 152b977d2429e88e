# scripts/init_db.py
import sys
from pathlib import Path

# Ensure project root is on the path when running this script directly
sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

import asyncio

from sqlalchemy import text

from kindling.config.settings import get_settings
from kindling.infrastructure.database.security_repository_db import DbSecurityRepository
from kindling.infrastructure.database.session import build_session_factory, create_tables, get_engine
from kindling.security.rbac import RBACService
from kindling.security.seed import seed_defaults


async def init_db():
    settings = get_settings()
    if settings.uses_memory_store:
        print("DATABASE_URL is memory://; nothing to initialize")
        return
    engine = get_engine(settings.database_url)
    async with engine.begin() as conn:
        result = await conn.execute(text("SELECT 1"))
        print("DB Connected:", result.scalar())

    await create_tables(engine)
    await seed_defaults(RBACService(DbSecurityRepository(build_session_factory(engine))))
    print("Tables created and default roles seeded")
    await engine.dispose()


asyncio.run(init_db())
