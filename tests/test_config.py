import pytest

from pipeline import config as config_mod
from pipeline.config import PipelineConfig, load_config
from pipeline.errors import ConfigError

ENV_VARS = (
    'GITHUB_API_URL',
    'CONTRIB_FORK_POLL_ATTEMPTS',
    'CONTRIB_FORK_POLL_INTERVAL',
    'CONTRIB_REQUEST_TIMEOUT',
    'CONTRIB_BRANCH_PREFIX',
    'CONTRIB_DB_PATH',
)


@pytest.fixture(autouse=True)
def clean_env(monkeypatch, tmp_path):
    for name in ENV_VARS:
        monkeypatch.delenv(name, raising=False)
    # keep the repo's own config/pipeline.yaml out of these tests
    monkeypatch.setattr(config_mod, 'DEFAULT_CONFIG_PATH', str(tmp_path / 'absent.yaml'))


def test_defaults():
    cfg = load_config()
    assert cfg.api_url == 'https://api.github.com'
    assert cfg.fork_poll_attempts == 15
    assert cfg.fork_poll_interval == 2.0
    assert cfg.request_timeout == 30.0
    assert cfg.branch_prefix == 'contrib'
    assert cfg.db_path == 'contributions.db'


def test_env_values(monkeypatch):
    monkeypatch.setenv('GITHUB_API_URL', 'https://ghe.example.com/api/v3/')
    monkeypatch.setenv('CONTRIB_FORK_POLL_ATTEMPTS', '4')
    monkeypatch.setenv('CONTRIB_BRANCH_PREFIX', 'bot/')
    cfg = load_config()
    assert cfg.api_url == 'https://ghe.example.com/api/v3'
    assert cfg.fork_poll_attempts == 4
    assert cfg.branch_prefix == 'bot'


def test_yaml_overrides_env_and_flags_override_yaml(monkeypatch, tmp_path):
    monkeypatch.setenv('CONTRIB_FORK_POLL_ATTEMPTS', '4')
    monkeypatch.setenv('CONTRIB_DB_PATH', 'env.db')
    path = tmp_path / 'pipeline.yaml'
    path.write_text('pipeline:\n  fork_poll_attempts: 6\n  fork_poll_interval: 0.5\n  unknown_key: 1\n', encoding='utf-8')

    cfg = load_config(str(path))
    assert cfg.fork_poll_attempts == 6
    assert cfg.fork_poll_interval == 0.5
    assert cfg.db_path == 'env.db'

    cfg = load_config(str(path), fork_poll_attempts=9, db_path=None)
    assert cfg.fork_poll_attempts == 9
    assert cfg.db_path == 'env.db'


def test_flat_yaml_and_empty_section(tmp_path):
    flat = tmp_path / 'flat.yaml'
    flat.write_text('branch_prefix: contributions\n', encoding='utf-8')
    assert load_config(str(flat)).branch_prefix == 'contributions'

    empty = tmp_path / 'empty.yaml'
    empty.write_text('pipeline:\n', encoding='utf-8')
    assert load_config(str(empty)).fork_poll_attempts == 15


def test_default_file_is_used_when_present(monkeypatch, tmp_path):
    path = tmp_path / 'pipeline.yaml'
    path.write_text('pipeline:\n  request_timeout: 5\n', encoding='utf-8')
    monkeypatch.setattr(config_mod, 'DEFAULT_CONFIG_PATH', str(path))
    assert load_config().request_timeout == 5.0


def test_errors(monkeypatch, tmp_path):
    with pytest.raises(ConfigError):
        load_config(str(tmp_path / 'missing.yaml'))

    bad = tmp_path / 'bad.yaml'
    bad.write_text('pipeline: [1, 2\n', encoding='utf-8')
    with pytest.raises(ConfigError):
        load_config(str(bad))

    with pytest.raises(ConfigError):
        load_config(no_such_setting=1)

    monkeypatch.setenv('CONTRIB_FORK_POLL_ATTEMPTS', 'many')
    with pytest.raises(ConfigError):
        load_config()


@pytest.mark.parametrize('kwargs', [
    {'fork_poll_attempts': 0},
    {'fork_poll_interval': -1},
    {'request_timeout': 0},
    {'branch_prefix': '/'},
])
def test_invalid_values(kwargs):
    with pytest.raises(ConfigError):
        PipelineConfig(**kwargs)
