"""Party resolution: find a sender or recipient by natural key, or record a new one.

Every resolution is its own command, and therefore its own unit of work,
committed before the call returns. When the same person appears as both
sender and recipient of one order, the second resolution re-queries the
store and finds the party the first one created.
"""

from dataclasses import dataclass

import structlog
from protean import handle
from protean.fields import String
from protean.utils.globals import current_domain

from courier.domain import courier
from courier.party.party import Party

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class ContactDetails:
    """Normalized contact block of an inbound order."""

    name: str
    email: str
    reference_code: str | None = None
    phone: str | None = None
    company: str | None = None


@courier.command(part_of="Party")
class ResolveParty:
    """Return the id of the party matching the contact, creating it if needed."""

    reference_code = String(max_length=64)
    name = String(required=True, max_length=200)
    email = String(required=True, max_length=254)
    phone = String(max_length=30)
    company = String(max_length=200)


def find_party(reference_code: str | None, email: str | None) -> Party | None:
    """Look a party up by reference code first, then by email."""
    repo = current_domain.repository_for(Party)

    if reference_code:
        results = repo._dao.query.filter(reference_code=reference_code).all()
        if results.items:
            return results.first

    if email:
        results = repo._dao.query.filter(email=email).all()
        if results.items:
            return results.first

    return None


@courier.command_handler(part_of=Party)
class ResolvePartyHandler:
    @handle(ResolveParty)
    def resolve_party(self, command):
        existing = find_party(command.reference_code, command.email)
        if existing is not None:
            logger.debug("Resolved existing party", party_id=str(existing.id), email=command.email)
            return str(existing.id)

        party = Party.register(
            name=command.name,
            email=command.email,
            reference_code=command.reference_code,
            phone=command.phone,
            company=command.company,
        )
        current_domain.repository_for(Party).add(party)
        logger.info("Registered new party", party_id=str(party.id), reference_code=party.reference_code)
        return str(party.id)


class PartyResolver:
    """Resolves order contacts to party ids, one committed unit of work per call."""

    def resolve(self, contact: ContactDetails) -> str:
        command = ResolveParty(
            reference_code=contact.reference_code,
            name=contact.name,
            email=contact.email,
            phone=contact.phone,
            company=contact.company,
        )
        return current_domain.process(command, asynchronous=False)
