import logging
from typing import AsyncGenerator

from fastapi import HTTPException, Request
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from loginguard.services.login_recorder import LoginAttemptRecorder
from loginguard.services.threshold_config import ThresholdConfig

logger = logging.getLogger(__name__)


async def get_db(request: Request) -> AsyncGenerator[AsyncSession, None]:
    """
    Dependency for getting async database sessions.
    Commits on success and rolls back on any error.
    """
    session = request.app.state.session_factory()
    try:
        yield session

        if session.in_transaction():
            await session.commit()

    except HTTPException:
        if session.in_transaction():
            await session.rollback()
        raise

    except SQLAlchemyError as e:
        logger.error(f"Database error in get_db: {type(e).__name__}: {e}")
        if session.in_transaction():
            await session.rollback()
        raise

    except Exception as e:
        logger.error(f"Unexpected error in get_db: {type(e).__name__}: {e}")
        if session.in_transaction():
            await session.rollback()
        raise

    finally:
        await session.close()


def get_threshold_config(request: Request) -> ThresholdConfig:
    return request.app.state.threshold_config


def get_login_recorder(request: Request) -> LoginAttemptRecorder:
    return request.app.state.login_recorder
