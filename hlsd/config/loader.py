import logging
from pathlib import Path
from typing import Optional
import yaml
from hlsd.config.models import AppConfig

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_PATH = Path("conf/hlsd.yaml")


def load_config(config_path: Optional[Path] = None) -> AppConfig:
    """
    Load configuration from conf/hlsd.yaml or a provided path.
    Missing or empty files give the defaults; invalid values raise pydantic.ValidationError.
    """
    config_file = Path(config_path) if config_path else DEFAULT_CONFIG_PATH

    if not config_file.exists():
        logger.warning(f"Config file not found at {config_file}, using defaults.")
        return AppConfig()

    with open(config_file, "r") as f:
        data = yaml.safe_load(f) or {}

    return AppConfig(**data)
