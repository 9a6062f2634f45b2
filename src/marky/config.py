"""
Configuration management for marky.

Handles loading environment variables from .env file with support for:
- Custom .env file path via parameter
- Default .env location at repository root
- Fallback to system environment variables
"""

import os
from pathlib import Path
from typing import Optional
import logging

logger = logging.getLogger(__name__)

# Global config holder
_config = None

_TRUE_VALUES = ("1", "true", "yes", "on")


def _env_flag(name: str, default: str) -> bool:
    return os.environ.get(name, default).strip().lower() in _TRUE_VALUES


class Config:
    """Configuration container for marky."""

    def __init__(self, dotenv_path: Optional[str] = None):
        """
        Initialize configuration.

        Args:
            dotenv_path: Path to .env file. If None, uses default location (repo root/.env)
        """
        self.dotenv_path = self._resolve_dotenv_path(dotenv_path)
        self._load_env()
        self._init_settings()

    def _resolve_dotenv_path(self, dotenv_path: Optional[str]) -> Path:
        """
        Resolve .env file path.

        Args:
            dotenv_path: Custom path or None for default

        Returns:
            Path to .env file
        """
        if dotenv_path:
            return Path(dotenv_path).resolve()

        # This file is in src/marky/config.py, repository root is 2 levels up
        repo_root = Path(__file__).parent.parent.parent
        return repo_root / ".env"

    def _load_env(self):
        """Load environment variables from .env file if it exists."""
        if not self.dotenv_path.exists():
            logger.debug(f".env file not found at: {self.dotenv_path}, using system environment only")
            return

        logger.info(f"Loading environment variables from: {self.dotenv_path}")
        with open(self.dotenv_path, 'r', encoding='utf-8') as f:
            for line in f:
                line = line.strip()
                # Skip empty lines and comments
                if not line or line.startswith('#'):
                    continue

                # Parse KEY=VALUE
                if '=' in line:
                    key, value = line.split('=', 1)
                    key = key.strip()
                    value = value.strip()

                    # Remove quotes if present
                    if value.startswith('"') and value.endswith('"'):
                        value = value[1:-1]
                    elif value.startswith("'") and value.endswith("'"):
                        value = value[1:-1]

                    # Set environment variable (only if not already set)
                    if key not in os.environ:
                        os.environ[key] = value

    def _init_settings(self):
        """Initialize settings from environment variables."""
        # DOCX images: inline as data URIs, or extract under docx_image_dir
        self.docx_embed_images = _env_flag("MARKY_DOCX_EMBED_IMAGES", "true")
        self.docx_image_dir = os.environ.get("MARKY_DOCX_IMAGE_DIR", ".")

        # PPTX images: inline as data URIs, or emit placeholder file names
        self.pptx_keep_data_uris = _env_flag("MARKY_PPTX_KEEP_DATA_URIS", "true")

        # MCP server pagination
        self.mcp_chunk_size = int(os.environ.get("MARKY_MCP_CHUNK_SIZE", "10000"))

        # Logging
        log_level = os.environ.get("LOG_LEVEL", "INFO").upper()
        logging.basicConfig(
            level=getattr(logging, log_level, logging.INFO),
            format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
        )

    def __repr__(self):
        return (
            f"Config(\n"
            f"  dotenv_path={self.dotenv_path},\n"
            f"  docx_embed_images={self.docx_embed_images},\n"
            f"  docx_image_dir={self.docx_image_dir},\n"
            f"  pptx_keep_data_uris={self.pptx_keep_data_uris},\n"
            f"  mcp_chunk_size={self.mcp_chunk_size}\n"
            f")"
        )


def get_config(dotenv_path: Optional[str] = None, reload: bool = False) -> Config:
    """
    Get global configuration instance.

    Args:
        dotenv_path: Path to .env file (only used on first call or if reload=True)
        reload: Force reload configuration from .env file

    Returns:
        Config instance
    """
    global _config

    if _config is None or reload:
        _config = Config(dotenv_path=dotenv_path)

    return _config
