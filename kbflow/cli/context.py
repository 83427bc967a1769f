# kbflow/cli/context.py
"""
Central CLI context - single source of truth for all CLI commands.

Holds the loaded configuration and knows where each knowledge base's
parameters live. `kbflow create` writes them to {base dir}/base.yaml; every
other command reads them back, so commands only need the base id.

Usage:
    ctx = CLIContext.load(config_path)
    base = ctx.load_base("docs")
    service = ctx.service()
"""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

from kbflow.backends.http import http_reranker
from kbflow.config.loader import load_config
from kbflow.config.schema import KbflowConfig
from kbflow.core.config import ConfigNotFoundError, load_yaml, save_config, validate_config
from kbflow.core.paths import KbPaths
from kbflow.knowledge.schema import KnowledgeBaseParams
from kbflow.service import KnowledgeService

BASE_FILE_NAME = "base.yaml"


@dataclass
class CLIContext:
    """Configuration and knowledge base lookup shared by CLI commands."""

    config: KbflowConfig = field(default_factory=KbflowConfig)
    config_path: Optional[Path] = None
    verbose: bool = False

    @classmethod
    def load(cls, config_path: Optional[Path] = None, verbose: bool = False) -> "CLIContext":
        """
        Load the merged configuration.

        Raises:
            ConfigError: If the config file is missing or invalid
        """
        return cls(config=load_config(config_path), config_path=config_path, verbose=verbose)

    @property
    def storage_root(self) -> Path:
        return Path(self.config.storage.root or KbPaths.storage_root())

    def base_file(self, base_id: str) -> Path:
        return KbPaths.knowledge_base(base_id, self.storage_root) / BASE_FILE_NAME

    def save_base(self, base: KnowledgeBaseParams) -> Path:
        return save_config(base.model_dump(mode="json", exclude_none=True), self.base_file(base.id))

    def load_base(self, base_id: str) -> KnowledgeBaseParams:
        """
        Read the parameters `kbflow create` stored for a base.

        Raises:
            ConfigNotFoundError: If the base was never created
        """
        path = self.base_file(base_id)
        if not path.exists():
            raise ConfigNotFoundError(
                f"Knowledge base '{base_id}' not found. Run 'kbflow create {base_id}' first",
                path=path,
            )
        return validate_config(load_yaml(path), KnowledgeBaseParams, path)

    def service(self) -> KnowledgeService:
        """Service for one command; includes the reranker when one is configured."""
        return KnowledgeService(
            self.config,
            reranker=http_reranker(self.config.reranker),
            storage_root=self.storage_root,
        )


__all__ = ["BASE_FILE_NAME", "CLIContext"]
