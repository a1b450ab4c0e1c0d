"""Named counters that hand out strictly increasing integers.

Each allocation is one ``INSERT ... ON CONFLICT DO UPDATE ... RETURNING``
statement: the counter row is created on first use and incremented on every
later call by the store itself, so concurrent callers can never read the
same value. A separate read followed by a write would race.
"""

import logging

from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from errors import AllocatorUnavailable, ValidationError
from models import USER_SEQUENCE, Counter

logger = logging.getLogger(__name__)

_INSERTS = {
    "sqlite": sqlite_insert,
    "postgresql": pg_insert,
}


def format_user_sequence(sequence: int) -> str:
    return f"user{sequence:03d}"


class SequenceAllocator:
    def __init__(self, session: Session) -> None:
        self.session = session

    def _insert_for_dialect(self):
        dialect = self.session.get_bind().dialect.name
        try:
            return _INSERTS[dialect]
        except KeyError:
            raise ValueError(
                f"Sequence allocation is not supported on {dialect}"
            ) from None

    def allocate(self, name: str) -> int:
        """Increment the counter ``name`` and return its new value.

        The first allocation for an unseen name returns 1. The new value is
        committed before it is returned; on failure nothing is assumed to
        have been allocated.
        """
        clean_name = (name or "").strip()
        if not clean_name:
            raise ValidationError("Counter name cannot be empty")

        insert = self._insert_for_dialect()
        stmt = (
            insert(Counter)
            .values(name=clean_name, sequence=1)
            .on_conflict_do_update(
                index_elements=[Counter.name],
                set_={"sequence": Counter.sequence + 1},
            )
            .returning(Counter.sequence)
        )
        try:
            value = int(self.session.execute(stmt).scalar_one())
            self.session.commit()
        except SQLAlchemyError as exc:
            self.session.rollback()
            logger.exception(f"sequence_allocate_failed: counter={clean_name}")
            raise AllocatorUnavailable("allocate") from exc

        logger.debug(f"sequence_allocated: counter={clean_name} value={value}")
        return value

    def allocate_user_sequence(self) -> int:
        return self.allocate(USER_SEQUENCE)
