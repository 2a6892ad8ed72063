# core/logger.py
import logging
from datetime import datetime

from core.config import LOG_LEVEL
from models.audit_log import AuditLog

logger = logging.getLogger("foodcourier.audit")


def configure_logging(level: str = None):
    """Set up root logging once at process start."""
    logging.basicConfig(
        level=getattr(logging, (level or LOG_LEVEL).upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def log_action(db, caller, action: str):
    """
    Record an action into the audit log.

    The row is added to the caller's session, so it is committed (or rolled
    back) together with the change it describes.
    """
    actor_id = caller.user_id if caller else None
    actor_role = caller.role.value if caller else None
    db.add(AuditLog(actor_id=actor_id, actor_role=actor_role, action=action, timestamp=datetime.utcnow()))
    logger.info("%s#%s %s", actor_role, actor_id, action)
