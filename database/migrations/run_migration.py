#!/usr/bin/env python3
"""
Script to create the business search tables
Usage: python run_migration.py
"""
import asyncio
import aiomysql
from pathlib import Path
import sys
from sqlalchemy.dialects import mysql
from sqlalchemy.schema import CreateIndex, CreateTable

# Add parent directory to path to import config
sys.path.insert(0, str(Path(__file__).parent.parent.parent))

from app.core.config import settings
from app.models.database_models import Base

def build_statements():
    """DDL for every search table, compiled for MySQL"""
    dialect = mysql.dialect()
    statements = []
    for table in Base.metadata.sorted_tables:
        statements.append(str(CreateTable(table).compile(dialect=dialect)))
        for index in sorted(table.indexes, key=lambda i: i.name):
            statements.append(str(CreateIndex(index).compile(dialect=dialect)))
    return statements

async def run_migration():
    """Create the search tables"""
    try:
        # Connect to database
        conn = await aiomysql.connect(
            host=settings.DATABASE_HOST,
            port=settings.DATABASE_PORT,
            user=settings.DATABASE_USER,
            password=settings.DATABASE_PASSWORD,
            db=settings.DATABASE_NAME,
            autocommit=False
        )

        cursor = await conn.cursor()

        for statement in build_statements():
            try:
                await cursor.execute(statement)
                print(f"✓ Executed: {statement.strip()[:50]}...")
            except Exception as e:
                # Ignore "table already exists" / duplicate index errors
                message = str(e).lower()
                if "already exists" in message or "duplicate key name" in message:
                    print(f"⚠ Already exists, skipping...")
                else:
                    print(f"✗ Error executing statement: {e}")
                    raise

        await conn.commit()
        print("\n✅ Migration completed successfully!")

        await cursor.close()
        conn.close()
        return True

    except Exception as e:
        print(f"\n❌ Migration failed: {e}")
        return False

if __name__ == "__main__":
    success = asyncio.run(run_migration())
    sys.exit(0 if success else 1)
