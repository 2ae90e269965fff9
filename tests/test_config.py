"""Tests for settings loading and the scoped credential store."""

import json
import os

import pytest

from chaindrive.config import (
    CHANNEL,
    TOKEN,
    ConfigStore,
    Settings,
    load_settings,
    resolve_credentials,
    validate_value,
)
from chaindrive.exceptions import ConfigError
from chaindrive.file.splitter import PART_SIZE


@pytest.fixture
def config_store(tmp_path):
    return ConfigStore(tmp_path / 'conf' / 'config.json')


class TestSettings:

    def test_defaults(self, tmp_path):
        settings = Settings(config_dir=tmp_path)

        assert settings.part_size == PART_SIZE
        assert settings.batch_limit == 10
        assert settings.link_mode == 'atomic'
        assert settings.extent_cache_dir == tmp_path / 'cache'
        assert settings.config_file == tmp_path / 'config.json'

    def test_from_env(self, monkeypatch, tmp_path):
        monkeypatch.setenv('CHAINDRIVE_PART_SIZE', '1024')
        monkeypatch.setenv('CHAINDRIVE_LINK_MODE', 'edit')
        monkeypatch.setenv('CHAINDRIVE_CACHE_DIR', str(tmp_path / 'extents'))
        monkeypatch.setenv('CHAINDRIVE_LOG_LEVEL', 'debug')

        settings = Settings.from_env(Settings(config_dir=tmp_path))

        assert settings.part_size == 1024
        assert settings.link_mode == 'edit'
        assert settings.extent_cache_dir == tmp_path / 'extents'
        assert settings.log_level == 'DEBUG'

    def test_non_numeric_env(self, monkeypatch, tmp_path):
        monkeypatch.setenv('CHAINDRIVE_PART_SIZE', 'ten megs')

        with pytest.raises(ConfigError, match='CHAINDRIVE_PART_SIZE'):
            Settings.from_env(Settings(config_dir=tmp_path))

    def test_from_file(self, tmp_path):
        path = tmp_path / 'settings.json'
        path.write_text(json.dumps({'batch_limit': 4, 'page_size': 50}))

        settings = Settings.from_file(path, Settings(config_dir=tmp_path))

        assert settings.batch_limit == 4
        assert settings.page_size == 50
        assert settings.part_size == PART_SIZE

    def test_missing_file_keeps_base(self, tmp_path):
        base = Settings(config_dir=tmp_path, part_size=7)

        assert Settings.from_file(tmp_path / 'nope.json', base).part_size == 7

    def test_unreadable_file(self, tmp_path):
        path = tmp_path / 'settings.json'
        path.write_text('{not json')

        with pytest.raises(ConfigError):
            Settings.from_file(path, Settings(config_dir=tmp_path))

    @pytest.mark.parametrize('field, value', [
        ('part_size', 0),
        ('batch_limit', 0),
        ('page_size', 0),
        ('page_size', 200),
        ('link_mode', 'sideways'),
    ])
    def test_validate(self, tmp_path, field, value):
        settings = Settings(config_dir=tmp_path)
        setattr(settings, field, value)

        with pytest.raises(ConfigError):
            settings.validate()

    def test_load_settings_env_beats_file(self, monkeypatch, tmp_path):
        (tmp_path / 'settings.json').write_text(json.dumps({'part_size': 100, 'batch_limit': 3}))
        monkeypatch.setenv('CHAINDRIVE_PART_SIZE', '200')

        settings = load_settings(tmp_path)

        assert settings.config_dir == tmp_path
        assert settings.part_size == 200
        assert settings.batch_limit == 3

    def test_explicit_config_dir_beats_env(self, monkeypatch, tmp_path):
        monkeypatch.setenv('CHAINDRIVE_CONFIG_DIR', str(tmp_path / 'from-env'))

        assert load_settings(tmp_path / 'explicit').config_dir == tmp_path / 'explicit'


class TestConfigStore:

    def test_empty(self, config_store):
        assert config_store.resolve(TOKEN, cwd='/work') is None

    def test_scoped_value_wins_over_global(self, config_store):
        config_store.set(TOKEN, 'global-token')
        config_store.set(TOKEN, 'project-token', scope='/work/project')

        assert config_store.resolve(TOKEN, cwd='/work/project') == 'project-token'
        assert config_store.resolve(TOKEN, cwd='/elsewhere') == 'global-token'

    def test_global_fallback_per_key(self, config_store):
        config_store.set(CHANNEL, '123')
        config_store.set(TOKEN, 'project-token', scope='/work')

        assert config_store.resolve(CHANNEL, cwd='/work') == '123'

    def test_persisted(self, config_store):
        config_store.set(CHANNEL, '99', scope='/work')

        reloaded = ConfigStore(config_store.config_path)

        assert reloaded.scoped_value(CHANNEL, '/work') == '99'
        assert reloaded.global_value(CHANNEL) is None

    def test_scope_defaults_to_cwd(self, config_store, monkeypatch, tmp_path):
        monkeypatch.chdir(tmp_path)
        config_store.set(CHANNEL, '5', scope=os.getcwd())

        assert config_store.resolve(CHANNEL) == '5'

    def test_invalid_key(self, config_store):
        with pytest.raises(ConfigError, match='Invalid key'):
            config_store.set('colour', 'blue')

    def test_channel_must_be_numeric(self, config_store):
        with pytest.raises(ConfigError):
            config_store.set(CHANNEL, 'general')
        assert not config_store.config_path.exists()

    def test_require_missing(self, config_store):
        with pytest.raises(ConfigError, match='chaindrive config token'):
            config_store.require(TOKEN, cwd='/work')

    def test_corrupt_file(self, tmp_path):
        path = tmp_path / 'config.json'
        path.write_text('[1, 2]')

        with pytest.raises(ConfigError):
            ConfigStore(path)


def test_validate_value():
    assert validate_value(CHANNEL, '42') == '42'
    assert validate_value(TOKEN, 'anything') == 'anything'


class TestResolveCredentials:

    def test_from_store(self, config_store):
        config_store.set(TOKEN, 'tok')
        config_store.set(CHANNEL, '12')

        assert resolve_credentials(config_store, cwd='/work') == ('tok', 12)

    def test_environment_beats_store(self, config_store, monkeypatch):
        config_store.set(TOKEN, 'tok')
        config_store.set(CHANNEL, '12')
        monkeypatch.setenv('CHAINDRIVE_TOKEN', 'env-tok')
        monkeypatch.setenv('CHAINDRIVE_CHANNEL', '34')

        assert resolve_credentials(config_store, cwd='/work') == ('env-tok', 34)

    def test_explicit_beats_environment(self, config_store, monkeypatch):
        monkeypatch.setenv('CHAINDRIVE_TOKEN', 'env-tok')
        monkeypatch.setenv('CHAINDRIVE_CHANNEL', '34')

        assert resolve_credentials(config_store, token='cli', channel=56) == ('cli', 56)

    def test_missing_channel(self, config_store):
        config_store.set(TOKEN, 'tok')

        with pytest.raises(ConfigError, match='channel'):
            resolve_credentials(config_store, cwd='/work')

    def test_non_numeric_environment_channel(self, config_store, monkeypatch):
        monkeypatch.setenv('CHAINDRIVE_TOKEN', 'tok')
        monkeypatch.setenv('CHAINDRIVE_CHANNEL', 'general')

        with pytest.raises(ConfigError):
            resolve_credentials(config_store, cwd='/work')
