"""Engine configuration loading.

Thresholds live in data/engine_config.json next to the package, or in
the file named by FLAGWATCH_CONFIG. Missing files fall back to the
EngineConfig defaults, so every option is tunable without code changes.
"""

import json
import logging
import os
from pathlib import Path
from typing import Optional, Union

from flagwatch.models import EngineConfig

logger = logging.getLogger(__name__)

# Resolve the data/ directory relative to this file so the service works
# regardless of which directory it is launched from.
DATA_DIR = Path(__file__).parent.parent / "data"
DEFAULT_CONFIG_PATH = DATA_DIR / "engine_config.json"
CONFIG_ENV_VAR = "FLAGWATCH_CONFIG"


def load_config(path: Optional[Union[str, Path]] = None) -> EngineConfig:
    """Load EngineConfig from `path`, $FLAGWATCH_CONFIG or the bundled file."""
    if path is None:
        path = os.getenv(CONFIG_ENV_VAR) or DEFAULT_CONFIG_PATH
    path = Path(path)

    if not path.exists():
        logger.info("No config file at %s, using defaults", path)
        return EngineConfig()

    with open(path, "r") as f:
        config = EngineConfig(**json.load(f))
    logger.info("Loaded engine config from %s", path)
    return config
