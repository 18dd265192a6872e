"""
Centralized table initialization for the titration engine.

Tables (3):
- sleep_observations
- prescribed_windows
- user_program_state
"""
from sleep_titration.models.base import Base, get_current_engine
from sleep_titration.utils.logging_config import get_logger

logger = get_logger(__name__)


def initialize_titration_tables():
    """
    Create the titration tables (idempotent - only creates if missing).
    """
    logger.info("Initializing titration tables...")

    # Import models (this registers them with Base.metadata)
    from sleep_titration.models.sleep_observations import SleepObservation
    from sleep_titration.models.prescribed_windows import PrescribedWindow
    from sleep_titration.models.user_program_state import UserProgramState

    engine = get_current_engine()
    Base.metadata.create_all(
        engine,
        tables=[
            SleepObservation.__table__,
            PrescribedWindow.__table__,
            UserProgramState.__table__,
        ],
        checkfirst=True,
    )
    logger.info("✅ Titration tables initialized (3 tables)")
