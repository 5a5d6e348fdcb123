"""
Configuration module for the realtime agent proxy.

Key components:
- constants: wire vocabulary of both protocols, audio format and defaults
- settings: ProxySettings, read once from the environment at startup
- logging_config: leveled, attribute-tagged logging with console and
  rotating file output

Usage examples:
```python
from agent_proxy.config.logging_config import configure_logging
from agent_proxy.config.settings import ProxySettings

settings = ProxySettings.from_env()
proxy_logger = configure_logging(settings.log_level, settings.debug)
proxy_logger.bind(connection_id="c1", trace_id="t-42").info("client connected")
```
"""

# Config module initialization
