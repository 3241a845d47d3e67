"""SQLAlchemy commit manager with error handling."""

from sqlalchemy.ext.asyncio import AsyncSession

from repokit._internal.mapper import ErrorContext, ExceptionMapper


class SqlAlchemyCommitManager:
    """Commits or flushes a session, translating failures into repository exceptions.

    On a failed commit the session is rolled back before the translated
    exception is raised. A failed flush leaves the session to the enclosing
    transaction, which the caller is expected to roll back.
    """

    def __init__(self, session: AsyncSession, exception_mapper: ExceptionMapper) -> None:
        self._session = session
        self._exception_mapper = exception_mapper

    async def safe_commit(self, context: ErrorContext) -> None:
        """Commit the session.

        Raises:
            DatabaseError: The translated exception (specific or generic).
        """
        try:
            await self._session.commit()
        except Exception as e:
            await self._session.rollback()
            raise self._exception_mapper.map(e, context) from e

    async def safe_flush(self, context: ErrorContext) -> None:
        """Flush pending changes without committing.

        Raises:
            DatabaseError: The translated exception (specific or generic).
        """
        try:
            await self._session.flush()
        except Exception as e:
            raise self._exception_mapper.map(e, context) from e
