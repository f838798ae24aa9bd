"""Configuration management for EditAgent.

Provides hierarchical YAML-based configuration with:
- System-level config (/etc/editagent/ or %PROGRAMDATA%)
- User-level config (~/.config/editagent/, ~/.editagent/ or %APPDATA%)
- Project-level config (<project>/.editagent/)
- Environment variable overrides (highest priority)

Example usage:
    from editagent.config import load_config

    config = load_config(project_root="/path/to/project")
    print(config.llm.model, config.session.max_steps)
"""

from editagent.config.loader import (
    get_config,
    load_config,
    reset_config,
)
from editagent.config.paths import (
    get_config_paths,
    get_project_config_path,
    get_user_data_dir,
)
from editagent.config.schema import (
    ChangesConfig,
    Config,
    HistoryConfig,
    LLMConfig,
    LoggingConfig,
    ServerConfig,
    SessionConfig,
    ToolsConfig,
)
from editagent.config.secrets import (
    clear_secret_cache,
    fetch_secret,
)

__all__ = [
    "Config",
    "load_config",
    "get_config",
    "reset_config",
    "LLMConfig",
    "SessionConfig",
    "ToolsConfig",
    "ChangesConfig",
    "HistoryConfig",
    "LoggingConfig",
    "ServerConfig",
    "fetch_secret",
    "clear_secret_cache",
    "get_config_paths",
    "get_project_config_path",
    "get_user_data_dir",
]
