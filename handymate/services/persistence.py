"""
Lagringshjälpare gemensamma för tjänsterna.

Alla statusändringar skrivs med ett villkorat UPDATE mot dokumentets
version (optimistisk låsning). Noll påverkade rader betyder att någon
annan hunnit ändra dokumentet sedan det lästes.
"""

from __future__ import annotations

import logging
from contextlib import contextmanager
from typing import Any, Dict, Iterator, Optional, Type

from sqlalchemy import update
from sqlmodel import Session, SQLModel, select

from handymate.core.errors import ConcurrentModification, DocumentNotFound
from handymate.server.models import Customer

logger = logging.getLogger(__name__)


@contextmanager
def unit_of_work(session: Session) -> Iterator[Session]:
    """
    Allt eller inget: commit när blocket går klart, rollback vid fel.
    """
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise


def check_version(doc: Any, expected_version: Optional[int]) -> None:
    if expected_version is not None and expected_version != doc.version:
        logger.warning(
            "%s %s: version %s förväntades men är %s",
            type(doc).__name__, doc.id, expected_version, doc.version,
        )
        raise ConcurrentModification(
            f"dokumentet har ändrats (version {doc.version}, förväntade {expected_version})"
        )


def save_changes(
    session: Session,
    doc: Any,
    changes: Dict[str, Any],
    *,
    expected_version: Optional[int] = None,
) -> int:
    """
    Skriver changes med villkoret att versionen fortfarande är den vi läste.
    Committar inte – anroparen äger transaktionen. Returnerar ny version.
    """
    check_version(doc, expected_version)

    model = type(doc)
    current = doc.version
    stmt = (
        update(model)
        .where(model.id == doc.id, model.version == current)
        .values(**changes, version=current + 1)
    )
    result = session.connection().execute(stmt)
    if result.rowcount != 1:
        logger.warning("%s %s: samtidig ändring upptäckt (version %s)", model.__name__, doc.id, current)
        raise ConcurrentModification(f"{model.__name__.lower()} {doc.id} ändrades samtidigt")
    return current + 1


def get_owned(session: Session, model: Type[SQLModel], doc_id: int, business_id: str) -> Any:
    """
    Hämtar ett dokument som ägs av företaget. Andra företags dokument
    rapporteras som saknade.
    """
    doc = session.get(model, doc_id)
    if doc is None or doc.business_id != business_id:
        raise DocumentNotFound(f"{model.__name__.lower()} {doc_id} hittades inte")
    return doc


def find_or_create_customer(
    session: Session,
    business_id: str,
    *,
    name: Optional[str],
    email: Optional[str] = None,
    phone_number: Optional[str] = None,
    address_line: Optional[str] = None,
) -> Optional[Customer]:
    """
    Hämta eller skapa kund – först på e-post, sedan på namn.
    Lägger till i sessionen men committar inte.
    """
    name = (name or "").strip()
    email = (email or "").strip() or None
    if not name and not email:
        return None

    cust = None
    if email:
        cust = session.exec(
            select(Customer).where(Customer.business_id == business_id, Customer.email == email)
        ).first()
    if not cust and name:
        cust = session.exec(
            select(Customer).where(Customer.business_id == business_id, Customer.name == name)
        ).first()

    if cust:
        # Fyll på uppgifter som saknas
        if phone_number and not cust.phone_number:
            cust.phone_number = phone_number
        if address_line and not cust.address_line:
            cust.address_line = address_line
        if email and not cust.email:
            cust.email = email
        return cust

    cust = Customer(
        business_id=business_id,
        name=name or email,
        email=email,
        phone_number=phone_number,
        address_line=address_line,
    )
    session.add(cust)
    session.flush()
    return cust
