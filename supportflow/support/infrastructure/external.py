"""
Support External Service Adapters
=================================

Adapters between the support application layer and external systems:
- LLMChatCompletionAdapter: chat completion through the shared LLM client
- PolicyConfigManager: routing_policy.yaml with hot-reload
"""

import threading
from pathlib import Path
from typing import Optional, Tuple

import yaml
from pydantic import ValidationError
from watchdog.events import FileSystemEventHandler
from watchdog.observers import Observer

from supportflow.config import settings
from supportflow.core import ConfigurationException
from supportflow.infrastructure.llm import ILLMClient
from supportflow.shared.infrastructure.logging import get_logger
from supportflow.support.application import IChatCompletionClient
from supportflow.support.domain import RoutingPolicy

logger = get_logger(__name__)


class LLMChatCompletionAdapter(IChatCompletionClient):
    """Chat-completion function backed by the injected LLM client."""

    def __init__(self, llm_client: ILLMClient, temperature: float = settings.llm_temperature):
        self._llm = llm_client
        self._temperature = temperature

    async def complete(self, system_prompt: str, user_prompt: str, max_tokens: int) -> Tuple[Optional[str], str]:
        result = await self._llm.chat_completion(
            messages=[
                {"role": "system", "content": system_prompt},
                {"role": "user", "content": user_prompt},
            ],
            temperature=self._temperature,
            max_tokens=max_tokens,
            operation="support_draft",
        )
        return result.content, result.model


class PolicyFileHandler(FileSystemEventHandler):
    """Watchdog event handler for routing policy file changes."""

    def __init__(self, manager: "PolicyConfigManager", policy_path: Path):
        self.manager = manager
        self.policy_path = policy_path
        super().__init__()

    def on_modified(self, event):
        if event.is_directory:
            return
        if Path(event.src_path).resolve() == self.policy_path.resolve():
            logger.info("Routing policy file changed", extra={"path": str(event.src_path)})
            self.manager.reload()


class PolicyConfigManager:
    """
    Thread-safe routing policy holder with hot-reload support.

    A missing file yields the default RoutingPolicy. A broken file at
    startup is a configuration error; a broken file on reload keeps the
    previous policy.
    """

    def __init__(self):
        self._policy: Optional[RoutingPolicy] = None
        self._lock = threading.Lock()
        self._path: Optional[Path] = None
        self._observer = None

    def load(self, path: Path) -> RoutingPolicy:
        """Initial policy load."""
        self._path = path
        try:
            policy = self._load_from_file(path)
        except (yaml.YAMLError, ValidationError, TypeError) as e:
            raise ConfigurationException(
                f"Invalid routing policy file: {path}",
                {"error": str(e)}
            ) from e
        with self._lock:
            self._policy = policy
        return policy

    def _load_from_file(self, path: Path) -> RoutingPolicy:
        if not path.exists():
            logger.warning("Routing policy file not found, using defaults", extra={"path": str(path)})
            return RoutingPolicy()

        with open(path, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}

        return RoutingPolicy(**data)

    def reload(self) -> bool:
        """Reload the policy from file; the old policy stays on failure."""
        if self._path is None:
            return False

        try:
            policy = self._load_from_file(self._path)
        except (OSError, yaml.YAMLError, ValidationError, TypeError) as e:
            logger.error(
                "Failed to reload routing policy",
                extra={"path": str(self._path), "error_message": str(e)}
            )
            return False

        with self._lock:
            self._policy = policy
        logger.info("Routing policy reloaded", extra={"path": str(self._path)})
        return True

    def start_watching(self) -> None:
        """Watch the policy file; skipped when the file does not exist."""
        if self._path is None:
            raise RuntimeError("Policy not loaded. Call load() first.")

        if not self._path.exists():
            logger.info(
                "Routing policy file doesn't exist, skipping file watch",
                extra={"path": str(self._path)}
            )
            return

        try:
            self._observer = Observer()
            self._observer.schedule(
                PolicyFileHandler(self, self._path),
                str(self._path.parent),
                recursive=False
            )
            self._observer.start()
            logger.info("Started watching routing policy", extra={"path": str(self._path)})
        except OSError as e:
            # inotify is unavailable in some containers
            logger.warning("File watching not available, using static policy", extra={"error_message": str(e)})
            self._observer = None

    def stop_watching(self) -> None:
        if self._observer is not None:
            self._observer.stop()
            self._observer.join(timeout=5)
            self._observer = None

    @property
    def is_watching(self) -> bool:
        return self._observer is not None

    @property
    def path(self) -> Optional[Path]:
        return self._path

    @property
    def policy(self) -> RoutingPolicy:
        with self._lock:
            if self._policy is None:
                raise RuntimeError("Routing policy not loaded")
            return self._policy

    def current(self) -> RoutingPolicy:
        """Callable form of ``policy`` for services that take a provider."""
        return self.policy
