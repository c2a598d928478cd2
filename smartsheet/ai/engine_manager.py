from __future__ import annotations

import logging
import threading
from typing import Dict, Optional

from smartsheet.ai_engine import AIEngine, HTTPAIEngine, MockAIEngine

logger = logging.getLogger(__name__)

ENGINE_SETTING = "ai_engine"


class AIEngineManager:
    """Named engines behind the sheet assistant; one of them is active."""

    def __init__(self) -> None:
        self._engines: Dict[str, AIEngine] = {}
        self._active: Optional[str] = None
        self._lock = threading.RLock()

    def register(self, name: str, engine: AIEngine) -> None:
        with self._lock:
            self._engines[name] = engine
        logger.info("Registered %s engine %r", engine.kind, name)

    def set_active(self, name: str) -> None:
        """Raises ValueError for an unregistered name."""
        with self._lock:
            if name not in self._engines:
                raise ValueError(f"Unknown engine: {name!r}. Available: {sorted(self._engines)}")
            self._active = name
        logger.info("Active engine set to %r", name)

    def restore(self, saved: Optional[str]) -> bool:
        """Re-activate the engine chosen in an earlier session, if it is still registered."""
        if not saved or saved not in self._engines:
            if saved:
                logger.info("Saved engine %r is not available, keeping %r", saved, self._active)
            return False
        self.set_active(saved)
        return True

    def get_active(self) -> AIEngine:
        with self._lock:
            return self._engines[self.active_name]

    @property
    def active_name(self) -> str:
        with self._lock:
            if self._active is None or self._active not in self._engines:
                raise RuntimeError("No active AI engine configured")
            return self._active

    def list_engines(self) -> list[dict]:
        with self._lock:
            return [
                {"name": name, "type": engine.kind, "active": name == self._active}
                for name, engine in self._engines.items()
            ]


def build_default_manager(enable_llm: bool = False) -> AIEngineManager:
    """Mock engine always; the HTTP engine too (and active) when LLM is enabled."""
    manager = AIEngineManager()
    manager.register("mock", MockAIEngine())
    if enable_llm:
        manager.register("openai", HTTPAIEngine())
        manager.set_active("openai")
    else:
        manager.set_active("mock")
    logger.info("AI ENGINE SELECTED: %s", manager.active_name)
    return manager
