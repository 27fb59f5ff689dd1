"""
Account and voicemail repositories.

Every operation opens its own session and runs a single statement, so the
database's statement-level atomicity is the only consistency guarantee
relied on. Owner scoping is always part of the statement's predicate.
"""

import logging
from enum import Enum
from typing import List, Optional

from sqlalchemy import delete, select, update
from sqlalchemy.sql import expression

from voicemail_log.errors import ConstraintViolation, StorageError
from voicemail_log.models import Account, Voicemail, to_utc, utcnow
from voicemail_log.schemas import VoicemailInput, VoicemailRecord
from voicemail_log.storage import Database, translate_errors

logger = logging.getLogger(__name__)

# Placeholder a client holds before it has been issued an account id
UNASSIGNED_SENTINEL = "Loading..."
# Clients that failed to obtain an id hold a string starting with this
ERROR_MARKER_PREFIX = "Error"


class LookupErrorPolicy(str, Enum):
    """What resolve_or_create_account does when the existence check fails."""
    CREATE_NEW = "create_new"
    RAISE = "raise"


class ReturnedAtPolicy(str, Enum):
    """What a repeated mark_returned does to returned_at."""
    FIRST_WRITE_WINS = "first_write_wins"
    REFRESH = "refresh"


class IdentityResolver:
    """Issues and validates the opaque account ids clients hold."""

    def __init__(self, db: Database, on_lookup_error: LookupErrorPolicy = LookupErrorPolicy.CREATE_NEW):
        self.db = db
        self.on_lookup_error = LookupErrorPolicy(on_lookup_error)

    def create_account(self) -> str:
        """
        Insert one account row.

        Returns:
            The generated account id

        Raises:
            StorageError: if the insert fails
        """
        with translate_errors("create_account"), self.db.session() as session:
            account = Account()
            session.add(account)
            session.flush()
            account_id = account.id
        logger.info(f"Account created: {account_id}")
        return account_id

    def account_exists(self, account_id: str) -> bool:
        with translate_errors("account_exists"), self.db.session() as session:
            found = session.execute(
                select(Account.id).where(Account.id == account_id)
            ).first()
        return found is not None

    def resolve_or_create_account(self, candidate_id: Optional[str]) -> str:
        """
        Map a client-held token to an existing account id.

        A new account is created when the candidate is missing, is the
        unassigned sentinel, carries the error marker, or does not name an
        existing account. If the existence check itself fails the configured
        LookupErrorPolicy decides between creating a new account and raising.

        Args:
            candidate_id: Identifier presented by the client, may be None

        Returns:
            A valid, existing account id
        """
        if (
            not candidate_id
            or candidate_id == UNASSIGNED_SENTINEL
            or candidate_id.startswith(ERROR_MARKER_PREFIX)
        ):
            logger.debug(f"No usable account id presented ({candidate_id!r}), creating one")
            return self.create_account()

        try:
            exists = self.account_exists(candidate_id)
        except StorageError as e:
            if self.on_lookup_error is LookupErrorPolicy.RAISE:
                raise
            logger.warning(f"Account lookup failed, issuing a new account: {e}")
            return self.create_account()

        if not exists:
            logger.info(f"Unknown account id presented: {candidate_id}")
            return self.create_account()

        return candidate_id

    def delete_account(self, account_id: str) -> bool:
        """
        Delete an account; its voicemails go with it via ON DELETE CASCADE.
        Unknown ids are a silent no-op.
        """
        with translate_errors("delete_account"), self.db.session() as session:
            result = session.execute(delete(Account).where(Account.id == account_id))
        logger.info(f"Account delete: id={account_id}, rows={result.rowcount}")
        return True


class VoicemailStore:
    """CRUD over voicemail records, always scoped to one owner."""

    def __init__(self, db: Database, returned_at_policy: ReturnedAtPolicy = ReturnedAtPolicy.FIRST_WRITE_WINS):
        self.db = db
        self.returned_at_policy = ReturnedAtPolicy(returned_at_policy)

    def list_active(self, owner_id: str) -> List[VoicemailRecord]:
        """
        Unreturned voicemails of owner_id, most recent call first.

        Returns a snapshot; callers re-invoke to observe later changes.
        """
        logger.debug(f"Listing active voicemails for {owner_id}")
        with translate_errors("list_active"), self.db.session() as session:
            rows = session.scalars(
                select(Voicemail)
                .where(Voicemail.owner_id == owner_id, Voicemail.returned == expression.false())
                .order_by(Voicemail.date_time.desc())
            ).all()
            records = [VoicemailRecord.model_validate(row) for row in rows]
        logger.debug(f"Found {len(records)} active voicemails for {owner_id}")
        return records

    def create(self, owner_id: str, record: VoicemailInput) -> str:
        """
        Insert a voicemail for owner_id.

        The record is trusted as given; presentation-level validation happens
        in the request schema.

        Returns:
            The generated voicemail id

        Raises:
            ConstraintViolation: owner_id is missing or names no account
            StorageUnavailable: on any other storage failure
        """
        if not owner_id:
            raise ConstraintViolation("create requires an owner_id")

        with translate_errors("create_voicemail"), self.db.session() as session:
            voicemail = Voicemail(
                owner_id=owner_id,
                from_name=record.from_name,
                to_name=record.to_name,
                phone_number=record.phone_number,
                message_content=record.message_content,
                date_time=to_utc(record.date_time),
                taken_by=record.taken_by,
                returned=False,
                returned_at=None,
                created_at=utcnow(),
            )
            session.add(voicemail)
            session.flush()
            voicemail_id = voicemail.id
        logger.info(f"Voicemail created: id={voicemail_id}, owner={owner_id}")
        return voicemail_id

    def delete(self, owner_id: str, voicemail_id: str) -> bool:
        """Delete one voicemail of owner_id. No match is a silent success."""
        with translate_errors("delete_voicemail"), self.db.session() as session:
            result = session.execute(
                delete(Voicemail).where(
                    Voicemail.id == voicemail_id,
                    Voicemail.owner_id == owner_id,
                )
            )
        logger.info(f"Voicemail delete: id={voicemail_id}, owner={owner_id}, rows={result.rowcount}")
        return True

    def mark_returned(self, owner_id: str, voicemail_id: str) -> bool:
        """
        Flag one voicemail of owner_id as returned, stamping returned_at.

        Under FIRST_WRITE_WINS an already returned row is left alone; under
        REFRESH its returned_at is overwritten. No match is a silent success.
        """
        stmt = update(Voicemail).where(
            Voicemail.id == voicemail_id,
            Voicemail.owner_id == owner_id,
        )
        if self.returned_at_policy is ReturnedAtPolicy.FIRST_WRITE_WINS:
            stmt = stmt.where(Voicemail.returned == expression.false())
        stmt = stmt.values(returned=True, returned_at=utcnow())

        with translate_errors("mark_returned"), self.db.session() as session:
            result = session.execute(stmt, execution_options={"synchronize_session": False})
        logger.info(f"Voicemail mark returned: id={voicemail_id}, owner={owner_id}, rows={result.rowcount}")
        return True
