# tests/test_config.py
import click
import pytest
import yaml

from applyflow.core.errors import ConfigError
from chatapply.core.config import ApplyConfig, load_config, parse_config
from chatapply.core.prompt import render_template
from chatapply.init import init_project, validate_config_content


def test_defaults_when_file_missing(tmp_path):
    config = load_config(tmp_path / "missing.yaml")
    assert config == ApplyConfig()
    assert config.max_file_size == 100 * 1024


def test_parse_full_config():
    config = parse_config(
        "project:\n  root: src\n"
        "apply:\n  max_file_size_kb: 8\n  block_apply_all_on_errors: true\n"
        "logging:\n  verbose: true\n"
    )
    assert config.project_root == "src"
    assert config.max_file_size == 8 * 1024
    assert config.block_apply_all_on_errors is True
    assert config.verbose is True


def test_empty_config_uses_defaults():
    assert parse_config("") == ApplyConfig()
    assert parse_config("apply:\n") == ApplyConfig()


@pytest.mark.parametrize("content", [
    "- a\n- b\n",
    "apply: 3\n",
    "apply:\n  max_file_size_kb: big\n",
    "apply:\n  max_file_size_kb: true\n",
    "apply:\n  max_file_size_kb: 0\n",
    "apply:\n  block_apply_all_on_errors: maybe\n",
    "project:\n  root: 5\n",
    "key: [unclosed\n",
])
def test_invalid_config(content):
    with pytest.raises(ConfigError):
        parse_config(content)


def test_to_dict_round_trip():
    config = ApplyConfig(project_root="app", max_file_size_kb=2, block_apply_all_on_errors=True)
    assert ApplyConfig.from_dict(config.to_dict()) == config


def test_rendered_template_is_valid():
    content = render_template(
        'config',
        project_name="demo",
        project_root=".",
        max_file_size_kb=64,
        block_apply_all_on_errors=True,
    )
    data = yaml.safe_load(content)
    assert data["project"]["name"] == "demo"
    config = parse_config(content)
    assert config.max_file_size_kb == 64
    assert config.block_apply_all_on_errors is True


def test_init_project_with_defaults(isolated_filesystem):
    content = init_project(interactive=False)
    config = parse_config(content)
    assert config == ApplyConfig()
    assert isolated_filesystem.name in content


def test_render_unknown_template():
    with pytest.raises(FileNotFoundError):
        render_template("does-not-exist.j2")


def test_validate_config_content_ok(capsys):
    config = validate_config_content("apply:\n  max_file_size_kb: 10\n")
    assert config.max_file_size_kb == 10
    assert "配置内容验证通过" in capsys.readouterr().out


def test_validate_config_content_empty(capsys):
    assert validate_config_content("") == ApplyConfig()
    assert "配置内容为空" in capsys.readouterr().out


@pytest.mark.parametrize("content", ["key: [unclosed\n", "- a\n", "apply:\n  max_file_size_kb: -1\n"])
def test_validate_config_content_rejects(content):
    with pytest.raises(click.Abort):
        validate_config_content(content)
