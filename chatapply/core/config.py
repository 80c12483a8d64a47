# chatapply/core/config.py
"""
项目配置 (.chatapply/config.yaml) 的加载与校验。
"""

from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Optional, Union

import yaml

from applyflow.core.errors import ConfigError

STATE_DIR = Path(".chatapply")
CONFIG_FILE = STATE_DIR / "config.yaml"


def _section(data: Dict[str, Any], name: str) -> Dict[str, Any]:
    value = data.get(name)
    if value is None:
        return {}
    if not isinstance(value, dict):
        raise ConfigError(f"'{name}' must be a mapping, got {type(value).__name__}")
    return value


def _typed(section: Dict[str, Any], key: str, expected: type, default: Any, label: str) -> Any:
    value = section.get(key, default)
    # bool 是 int 的子类，这里需要排除
    if expected is int and isinstance(value, bool):
        raise ConfigError(f"'{label}' must be an integer, got bool")
    if not isinstance(value, expected):
        raise ConfigError(f"'{label}' must be {expected.__name__}, got {type(value).__name__}")
    return value


@dataclass
class ApplyConfig:
    project_root: str = "."
    max_file_size_kb: int = 100
    block_apply_all_on_errors: bool = False
    verbose: bool = False

    @property
    def max_file_size(self) -> int:
        return self.max_file_size_kb * 1024

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> 'ApplyConfig':
        if data is None:
            return cls()
        if not isinstance(data, dict):
            raise ConfigError("Configuration must be a YAML mapping")

        project = _section(data, "project")
        apply = _section(data, "apply")
        logging = _section(data, "logging")

        max_size = _typed(apply, "max_file_size_kb", int, 100, "apply.max_file_size_kb")
        if max_size <= 0:
            raise ConfigError("'apply.max_file_size_kb' must be positive")

        return cls(
            project_root=_typed(project, "root", str, ".", "project.root"),
            max_file_size_kb=max_size,
            block_apply_all_on_errors=_typed(
                apply, "block_apply_all_on_errors", bool, False, "apply.block_apply_all_on_errors"
            ),
            verbose=_typed(logging, "verbose", bool, False, "logging.verbose"),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "project": {"root": self.project_root},
            "apply": {
                "max_file_size_kb": self.max_file_size_kb,
                "block_apply_all_on_errors": self.block_apply_all_on_errors,
            },
            "logging": {"verbose": self.verbose},
        }


def parse_config(content: str) -> ApplyConfig:
    try:
        data = yaml.safe_load(content)
    except yaml.YAMLError as e:
        raise ConfigError(f"Invalid YAML: {e}")
    return ApplyConfig.from_dict(data)


def load_config(path: Union[str, Path] = CONFIG_FILE) -> ApplyConfig:
    """读取配置文件；文件不存在时返回默认配置"""
    config_path = Path(path)
    if not config_path.exists():
        return ApplyConfig()
    try:
        content = config_path.read_text(encoding="utf-8")
    except OSError as e:
        raise ConfigError(f"Cannot read {config_path}: {e}", path=str(config_path))
    return parse_config(content)
