from __future__ import annotations

from dataclasses import dataclass, field

from rich.console import Console

from lectern.application.services.project_service import ProjectService
from lectern.application.wiring import ServiceBundle, build_services
from lectern.core.config import AppPaths


@dataclass(slots=True)
class CLIContext:
    paths: AppPaths
    console: Console
    _services: ServiceBundle | None = field(default=None, repr=False)

    def services(self) -> ServiceBundle:
        """Build the service graph on first use; requires ``lectern init``."""
        if self._services is None:
            ProjectService(self.paths).require_initialized()
            self._services = build_services(self.paths)
        return self._services
