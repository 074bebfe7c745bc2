"""
Exclusive-use lease around a shared Lobstr squid
"""
import logging
from datetime import datetime, timedelta, timezone
from typing import Optional

from sqlalchemy.exc import IntegrityError

from const import SQUID_LEASE_TTL_SECONDS
from database import SessionLocal, session_scope
from errors import SquidBusyError
from models import SquidLease

logger = logging.getLogger(__name__)


def _as_utc(value: datetime) -> datetime:
    # SQLite hands back naive datetimes
    return value if value.tzinfo else value.replace(tzinfo=timezone.utc)


def acquire_squid(squid_id: str, holder: str, ttl_seconds: int = SQUID_LEASE_TTL_SECONDS) -> SquidLease:
    """
    Take (or renew) the lease on a squid

    Raises:
        SquidBusyError: another holder has an unexpired lease
    """
    now = datetime.now(timezone.utc)
    expires_at = now + timedelta(seconds=ttl_seconds)

    db = SessionLocal()
    try:
        lease = db.query(SquidLease).filter(SquidLease.squid_id == squid_id).with_for_update().first()

        if lease and lease.holder != holder and _as_utc(lease.expires_at) > now:
            raise SquidBusyError(
                f"Squid {squid_id} is in use by another run until {_as_utc(lease.expires_at).isoformat()}",
                debug={"squidId": squid_id, "holder": lease.holder},
            )

        if lease:
            lease.holder = holder
            lease.acquired_at = now
            lease.expires_at = expires_at
        else:
            lease = SquidLease(squid_id=squid_id, holder=holder, acquired_at=now, expires_at=expires_at)
            db.add(lease)

        db.commit()
        db.refresh(lease)
        logger.info(f"[SquidLease] {holder} holds squid {squid_id} until {expires_at.isoformat()}")
        return lease
    except IntegrityError as e:
        # Lost an insert race with another caller
        db.rollback()
        raise SquidBusyError(f"Squid {squid_id} was claimed concurrently", debug={"squidId": squid_id}) from e
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()


def release_squid(squid_id: str, holder: Optional[str] = None) -> bool:
    """
    Drop the lease. With a holder given, only that holder's lease is released.

    Returns:
        True if a lease was removed
    """
    with session_scope() as db:
        query = db.query(SquidLease).filter(SquidLease.squid_id == squid_id)
        if holder:
            query = query.filter(SquidLease.holder == holder)
        removed = query.delete()

    if removed:
        logger.info(f"[SquidLease] Released squid {squid_id}")
    return bool(removed)
