"""
Database migration utilities.
"""
import os
from sqlalchemy import text
from . import engine
from ..logging_config import logger


def run_sql_migrations():
    """
    Run all SQL migration files in the scripts directory.
    
    Migration files should:
    - Be named with a sortable prefix (e.g., 001_init.sql, 002_add_columns.sql)
    - End with .sql extension
    - Be idempotent (safe to run multiple times)
    
    Raises:
        Exception: If any migration fails
    """
    migrations_dir = os.path.join(os.path.dirname(__file__), "scripts")
    
    if not os.path.exists(migrations_dir):
        logger.warning("Migrations directory not found", path=migrations_dir)
        return
    
    migration_files = sorted(
        f for f in os.listdir(migrations_dir) 
        if f.endswith(".sql")
    )
    
    if not migration_files:
        logger.info("No migration files found", path=migrations_dir)
        return
    
    with engine.begin() as conn:
        for filename in migration_files:
            filepath = os.path.join(migrations_dir, filename)
            logger.info("Running migration", filename=filename)
            
            with open(filepath, "r", encoding="utf-8") as f:
                sql = f.read()
            
            conn.execute(text(sql))
    
    logger.info("Migrations applied", count=len(migration_files))
