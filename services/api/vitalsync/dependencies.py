"""FastAPI dependency injection."""

import uuid

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError, jwt
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine

from vitalsync.config import Settings, get_settings
from vitalsync.exceptions import ConfigurationError
from vitalsync.services.crypto_service import CryptoService, get_crypto_service
from vitalsync.services.health_store import HealthStore
from vitalsync.services.sync_engine import SyncEngine

# Database engine and session factory (initialized explicitly at process start)
_engine: AsyncEngine | None = None
_session_factory: async_sessionmaker[AsyncSession] | None = None

security = HTTPBearer()


def init_db(settings: Settings) -> tuple[AsyncEngine, async_sessionmaker[AsyncSession]]:
    """Create the engine and session factory. Called from the lifespan and Celery tasks."""
    global _engine, _session_factory
    _engine = create_async_engine(
        settings.database_url,
        echo=settings.debug,
        pool_size=10,
        max_overflow=5,
        pool_pre_ping=True,
    )
    _session_factory = async_sessionmaker(_engine, expire_on_commit=False)
    return _engine, _session_factory


async def shutdown_db() -> None:
    """Dispose of the database engine. Called from the lifespan."""
    global _engine, _session_factory
    if _engine:
        await _engine.dispose()
    _engine = None
    _session_factory = None


def get_session_factory() -> async_sessionmaker[AsyncSession]:
    if _session_factory is None:
        raise ConfigurationError("Database not initialised; call init_db() at startup")
    return _session_factory


def get_store() -> HealthStore:
    return HealthStore(get_session_factory())


def get_crypto(settings: Settings = Depends(get_settings)) -> CryptoService:
    return get_crypto_service(settings)


def get_sync_engine(
    store: HealthStore = Depends(get_store),
    crypto: CryptoService = Depends(get_crypto),
    settings: Settings = Depends(get_settings),
) -> SyncEngine:
    return SyncEngine(store, crypto, settings)


async def get_current_user_id(
    credentials: HTTPAuthorizationCredentials = Depends(security),
    settings: Settings = Depends(get_settings),
) -> uuid.UUID:
    """Extract user_id from a session JWT issued by the hosted auth service."""
    token = credentials.credentials
    try:
        payload = jwt.decode(
            token,
            settings.auth_jwt_secret.get_secret_value(),
            algorithms=[settings.auth_jwt_algorithm],
            audience=settings.auth_jwt_audience,
        )
        user_id = payload.get("sub")
        if user_id is None:
            raise HTTPException(
                status_code=status.HTTP_401_UNAUTHORIZED,
                detail="Invalid token payload",
            )
        return uuid.UUID(user_id)
    except JWTError as e:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Could not validate credentials",
        ) from e
    except ValueError as e:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid user ID in token",
        ) from e
