"""
Configuration management subsystem for Arcadia.

Static vs Dynamic Configuration
--------------------------------
**Static (Config):**
- Loaded from environment variables at startup (.env supported)
- Includes: database/Redis URLs, pool sizes, worker knobs, timeouts
- Validated on import

**Dynamic (ConfigManager):**
- Built-in defaults deep-merged with YAML files under `config/`
- Includes: backoff table, milestone list, opponent ratings, batch sizes
- Runtime overrides via `ConfigManager.set()`

Usage
-----
```python
from src.core.config import Config, ConfigManager

db_url = Config.DATABASE_URL
backoff = ConfigManager.get("queue.backoff_minutes")
```
"""

from src.core.config.config import Config, Environment
from src.core.config.manager import ConfigManager

__all__ = [
    "Config",
    "Environment",
    "ConfigManager",
]
