"""Base class for pipeline backends.

A backend turns the accumulated pipeline steps into a native, still lazy
artefact (``compile``) and evaluates that artefact into a local Polars
DataFrame (``collect``). ``compile`` never touches the data.
"""

from __future__ import annotations

import copy
import logging
import time
from abc import ABC, abstractmethod
from typing import TYPE_CHECKING, Any, Sequence

from boxstats.base import BoxplotConfig

if TYPE_CHECKING:
    import polars as pl

    from boxstats.pipeline import PipelineStep

logger = logging.getLogger(__name__)


class BaseBackend(ABC):
    """Abstract base class for all backends.

    Subclasses provide ``name`` (the declared backend identity used by the
    dialect detector) and the three abstract methods below.
    """

    name: str = "base"

    def __init__(self, config: BoxplotConfig | None = None) -> None:
        """Initialize the backend.

        Args:
            config: Optional configuration.
        """
        self._config = config or BoxplotConfig()

    @property
    def config(self) -> BoxplotConfig:
        """Get the backend configuration."""
        return self._config

    def with_config(self, config: BoxplotConfig) -> "BaseBackend":
        """Return a copy of this backend using ``config``."""
        backend = copy.copy(self)
        backend._config = config
        return backend

    # -------------------------------------------------------------------------
    # Abstract Methods
    # -------------------------------------------------------------------------

    @abstractmethod
    def compile(self, source: Any, steps: Sequence["PipelineStep"]) -> Any:
        """Translate pipeline steps into a lazy native artefact."""
        pass

    @abstractmethod
    def collect(self, compiled: Any) -> "pl.DataFrame":
        """Evaluate a compiled artefact into a local DataFrame."""
        pass

    @abstractmethod
    def schema(self, source: Any) -> dict[str, str]:
        """Get column name -> semantic type for the source."""
        pass

    # -------------------------------------------------------------------------
    # Default Implementations
    # -------------------------------------------------------------------------

    def explain(self, compiled: Any) -> str:
        """Human readable form of a compiled artefact."""
        return str(compiled)

    def execute(self, source: Any, steps: Sequence["PipelineStep"]) -> "pl.DataFrame":
        """Compile and evaluate the steps in a single backend request."""
        compiled = self.compile(source, steps)
        logger.debug("Compiled %s plan:\n%s", self.name, self.explain(compiled))

        start = time.perf_counter()
        result = self.collect(compiled)
        elapsed = time.perf_counter() - start
        logger.info(
            "%s backend returned %d row(s) in %.3fs",
            self.name,
            result.height,
            elapsed,
        )
        return result

    def __repr__(self) -> str:
        return f"{type(self).__name__}()"
