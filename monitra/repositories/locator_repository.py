"""Persistent per-domain locator store."""

from __future__ import annotations

from typing import Any, Dict, List, Optional
from urllib.parse import urlsplit

from sqlalchemy.exc import IntegrityError

from monitra.models import DomainLocator, now_utc
from monitra.records import LocatorPair


def domain_from_url(url: str) -> str:
    """Lower-cased hostname without a leading `www.`."""
    raw = (url or "").strip()
    host = urlsplit(raw if "//" in raw else f"//{raw}").hostname or ""
    host = host.lower()
    return host[4:] if host.startswith("www.") else host


class DomainLocatorStore:
    """get/upsert of learned locator pairs; one short session per call."""

    def __init__(self, session_factory):
        self.session_factory = session_factory

    def get(self, domain: str) -> Optional[LocatorPair]:
        session = self.session_factory()
        try:
            row = session.query(DomainLocator).filter(DomainLocator.domain == domain).one_or_none()
            if row is None:
                return None
            return LocatorPair(name_locator=row.name_locator, price_locator=row.price_locator)
        finally:
            session.close()

    def upsert(self, domain: str, pair: LocatorPair) -> None:
        """Replace the stored pair for `domain`; last write wins."""
        session = self.session_factory()
        try:
            if not self._update(session, domain, pair):
                session.add(
                    DomainLocator(domain=domain, name_locator=pair.name_locator, price_locator=pair.price_locator)
                )
            try:
                session.commit()
            except IntegrityError:
                # Another writer inserted the domain first.
                session.rollback()
                self._update(session, domain, pair)
                session.commit()
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    @staticmethod
    def _update(session, domain: str, pair: LocatorPair) -> bool:
        row = session.query(DomainLocator).filter(DomainLocator.domain == domain).one_or_none()
        if row is None:
            return False
        row.name_locator = pair.name_locator
        row.price_locator = pair.price_locator
        row.updated_at = now_utc()
        return True

    def list_all(self) -> List[Dict[str, Any]]:
        session = self.session_factory()
        try:
            rows = session.query(DomainLocator).order_by(DomainLocator.domain).all()
            return [
                {
                    "domain": row.domain,
                    "name_locator": row.name_locator,
                    "price_locator": row.price_locator,
                    "updated_at": row.updated_at.isoformat() if row.updated_at else None,
                }
                for row in rows
            ]
        finally:
            session.close()
