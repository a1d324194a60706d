#!/usr/bin/env python3
"""Setup script for the CDC booking workflow service."""

import asyncio
import logging
import sys
from pathlib import Path

# Add the server directory to the Python path
server_dir = Path(__file__).parent.parent / "server"
sys.path.insert(0, str(server_dir))

from alembic import command
from alembic.config import Config
from sqlalchemy import func, select
from sqlalchemy.exc import SQLAlchemyError

from cdc_workflow.core.database import async_session_factory, close_db
from cdc_workflow.models import PARTITIONS, ProjectType
from cdc_workflow.schemas.booking import CreateBookingRequest
from cdc_workflow.services.booking_service import BookingService

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

SEED_USER = "setup-script"

SAMPLE_BOOKINGS = [
    CreateBookingRequest(
        project_type=ProjectType.AIR_ONLY,
        customer_name="Hanbit Tours",
        details={"route": "ICN-NRT", "pax": 12, "departure_date": "2026-12-04"},
    ),
    CreateBookingRequest(
        project_type=ProjectType.CINT_PACKAGE,
        customer_name="Seoul Alumni Association",
        details={"destination": "Da Nang", "nights": 4, "pax": 28},
    ),
    CreateBookingRequest(
        project_type=ProjectType.CINT_INCENTIVE_GROUP,
        customer_name="Daehan Electronics",
        details={"destination": "Bali", "nights": 5, "pax": 60, "program": "sales incentive"},
    ),
]


def setup_database():
    """Bring the schema up to the latest migration."""
    logger.info("Running database migrations...")
    alembic_cfg = Config(str(server_dir / "db" / "alembic.ini"))
    alembic_cfg.set_main_option("script_location", str(server_dir / "db" / "alembic"))
    command.upgrade(alembic_cfg, "head")
    logger.info("Database migrations completed")


async def create_sample_data():
    """Register a few sample bookings unless any booking exists already."""
    logger.info("Creating sample data...")

    async with async_session_factory() as db:
        try:
            existing = 0
            for model in PARTITIONS.values():
                result = await db.execute(select(func.count()).select_from(model))
                existing += result.scalar_one()
            if existing > 0:
                logger.info("Sample data already exists, skipping...")
                return

            service = BookingService(db)
            for request in SAMPLE_BOOKINGS:
                booking = await service.create_booking(request, SEED_USER)
                logger.info(f"Created {booking.booking_number} for {booking.customer_name}")

            logger.info("Sample data created successfully!")

        except SQLAlchemyError as e:
            await db.rollback()
            logger.error(f"Failed to create sample data: {e}")
            raise


async def main():
    """Main setup function."""
    logger.info("Starting CDC booking workflow setup...")

    # Alembic drives its own event loop, so run it outside ours
    await asyncio.to_thread(setup_database)

    if "--no-seed" not in sys.argv:
        await create_sample_data()

    await close_db()

    logger.info("Setup completed successfully!")
    logger.info("You can now start the API server with: cd server && uvicorn cdc_workflow.main:app --reload")


if __name__ == "__main__":
    asyncio.run(main())
