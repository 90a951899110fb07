"""FastAPI dependencies for dependency injection."""

from __future__ import annotations

from collections.abc import Generator  # noqa: TC003
from typing import Annotated

from fastapi import Depends

from admission.config import EngineSettings
from admission.engine import RegistrationOrchestrator
from admission.store import AdmissionStore

# Global AdmissionStore instance (initialized on app startup)
_store: AdmissionStore | None = None


def init_store(settings: EngineSettings) -> AdmissionStore:
    """Initialize the global AdmissionStore instance."""
    global _store  # noqa: PLW0603
    _store = AdmissionStore(settings.db_path, busy_timeout=settings.busy_timeout_seconds)
    return _store


def close_store() -> None:
    """Close the global AdmissionStore instance."""
    global _store  # noqa: PLW0603
    if _store is not None:
        _store.close()
        _store = None


def get_store() -> Generator[AdmissionStore, None, None]:
    """Dependency that provides the AdmissionStore instance."""
    if _store is None:
        raise RuntimeError("AdmissionStore not initialized. Call init_store() first.")
    yield _store


# Type alias for dependency injection
StoreDep = Annotated[AdmissionStore, Depends(get_store)]

# Global RegistrationOrchestrator instance (initialized on app startup)
_orchestrator: RegistrationOrchestrator | None = None


def init_orchestrator(orchestrator: RegistrationOrchestrator) -> None:
    """Initialize the global RegistrationOrchestrator instance."""
    global _orchestrator  # noqa: PLW0603
    _orchestrator = orchestrator


def close_orchestrator() -> None:
    """Close the global RegistrationOrchestrator instance."""
    global _orchestrator  # noqa: PLW0603
    _orchestrator = None


def get_orchestrator() -> Generator[RegistrationOrchestrator, None, None]:
    """Dependency that provides the RegistrationOrchestrator instance."""
    if _orchestrator is None:
        raise RuntimeError("Orchestrator not initialized. Call init_orchestrator() first.")
    yield _orchestrator


# Type alias for dependency injection
OrchestratorDep = Annotated[RegistrationOrchestrator, Depends(get_orchestrator)]
