import logging

from sqlalchemy.orm import Session

from signage.db import SessionLocal, init_schema
from signage.models.display import Display
from signage.models.scenario import Scenario, ScenarioAssignment
from signage.models.screen import Screen

logger = logging.getLogger(__name__)

DEFAULT_DISPLAY_ID = "main"
DEFAULT_SCREEN_ID = "default-screen"
DEFAULT_SCENARIOS = ["Scene 1", "Scene 2", "Scene 3"]
DEFAULT_IMAGE_PATH = "/content/default/default.png"


def seed(db: Session) -> bool:
    """Create a default display, screen and scenarios when the database is empty."""
    display_count = db.query(Display).count()
    if display_count:
        logger.info("Found %d existing display(s), skipping initialization", display_count)
        return False

    db.add(Display(id=DEFAULT_DISPLAY_ID, name="Main Display"))
    db.flush()
    db.add(
        Screen(
            id=DEFAULT_SCREEN_ID,
            display_id=DEFAULT_DISPLAY_ID,
            name="Default Screen",
            x=0,
            y=0,
            width=512,
            height=512,
        )
    )
    if db.query(Scenario).count() == 0:
        for order, name in enumerate(DEFAULT_SCENARIOS):
            db.add(Scenario(name=name, display_order=order))
    db.flush()
    db.add(ScenarioAssignment(screen_id=DEFAULT_SCREEN_ID, scenario=DEFAULT_SCENARIOS[0], image_path=DEFAULT_IMAGE_PATH))
    db.commit()
    logger.info("Created default display %r with screen %r", DEFAULT_DISPLAY_ID, DEFAULT_SCREEN_ID)
    return True


def init_default_data(session_factory=SessionLocal) -> bool:
    db: Session = session_factory()
    try:
        return seed(db)
    except Exception:
        db.rollback()
        # Startup continues without defaults.
        logger.exception("Failed to initialize default data")
        return False
    finally:
        db.close()


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO)
    init_schema()
    init_default_data()
