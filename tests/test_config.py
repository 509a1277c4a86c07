import pytest

from pvetool.config import DEFAULT_HOST, ProxmoxConfig, load_config, resolve_settings

CLUSTER_CONFIG = """
proxmox:
  token: top-token
  poll_interval: 5
  clusters:
    prod:
      hosts: ["192.168.1.100", "192.168.1.101"]
      token: prod-token
      verify_ssl: true
    dev:
      hosts: ["192.168.2.100"]
      port: 8007
      token: dev-token
"""


@pytest.fixture
def config_file(tmp_path):
    def write(content):
        path = tmp_path / 'config.proxmox.yaml'
        path.write_text(content)
        return str(path)
    return write


class TestLoadConfig:

    def test_single_host(self, config_file):
        path = config_file("proxmox:\n  host: pve.example.com\n  port: 8007\n  verify_ssl: false\n")

        config = load_config(path)

        assert config.host == 'pve.example.com'
        assert config.port == 8007
        assert config.verify_ssl is False

    def test_clusters(self, config_file):
        config = load_config(config_file(CLUSTER_CONFIG))

        assert config.clusters['prod'].hosts == ['192.168.1.100', '192.168.1.101']
        assert config.clusters['dev'].port == 8007

    def test_no_path(self):
        assert load_config(None) == ProxmoxConfig()

    def test_missing_file_is_ignored(self, tmp_path):
        assert load_config(str(tmp_path / 'absent.yaml')) == ProxmoxConfig()

    def test_unparsable_file_is_ignored(self, config_file):
        assert load_config(config_file("proxmox: [unclosed\n")) == ProxmoxConfig()

    def test_invalid_field(self, config_file):
        with pytest.raises(ValueError, match="Invalid config"):
            load_config(config_file("proxmox:\n  port: not-a-port\n"))

    @pytest.mark.parametrize('section', ["[a, b]", "pve1.example.com"])
    def test_section_not_a_mapping(self, config_file, section):
        with pytest.raises(ValueError, match="Invalid config"):
            load_config(config_file(f"proxmox: {section}\n"))


class TestResolveSettings:

    def test_defaults(self):
        settings = resolve_settings(ProxmoxConfig())

        assert settings.hosts == [DEFAULT_HOST]
        assert settings.port == 8006
        assert settings.token is None
        assert settings.verify_ssl is False
        assert settings.poll_interval == 2
        assert settings.task_timeout is None

    def test_explicit_values_override_file(self):
        config = ProxmoxConfig(host='file.example.com', port=8007, token='file-token', verify_ssl=False)

        settings = resolve_settings(config, host='env.example.com', token='env-token', verify_ssl=True)

        assert settings.hosts == ['env.example.com']
        assert settings.port == 8007
        assert settings.token == 'env-token'
        assert settings.verify_ssl is True

    def test_file_values(self):
        config = ProxmoxConfig(host='file.example.com', token='file-token', timeout=10, task_timeout=600)

        settings = resolve_settings(config)

        assert settings.hosts == ['file.example.com']
        assert settings.token == 'file-token'
        assert settings.timeout == 10
        assert settings.task_timeout == 600

    def test_named_cluster(self, config_file):
        config = load_config(config_file(CLUSTER_CONFIG))

        settings = resolve_settings(config, cluster='dev')

        assert settings.hosts == ['192.168.2.100']
        assert settings.port == 8007
        assert settings.token == 'dev-token'
        assert settings.poll_interval == 5

    def test_first_cluster_without_name(self, config_file):
        config = load_config(config_file(CLUSTER_CONFIG))

        settings = resolve_settings(config)

        assert settings.hosts == ['192.168.1.100', '192.168.1.101']
        assert settings.token == 'prod-token'
        assert settings.verify_ssl is True

    def test_explicit_host_beats_cluster(self, config_file):
        config = load_config(config_file(CLUSTER_CONFIG))

        settings = resolve_settings(config, cluster='prod', host='10.9.9.9')

        assert settings.hosts == ['10.9.9.9']
        assert settings.token == 'prod-token'

    def test_unknown_cluster(self):
        with pytest.raises(ValueError, match="Cluster 'staging' not found"):
            resolve_settings(ProxmoxConfig(), cluster='staging')

    def test_token_path(self, tmp_path):
        token_file = tmp_path / 'pve-token.txt'
        token_file.write_text('root@pam!cli=secret\n')

        settings = resolve_settings(ProxmoxConfig(host='pve1', token_path=str(token_file)))

        assert settings.token == 'root@pam!cli=secret'

    def test_unreadable_token_path(self, tmp_path):
        with pytest.raises(ValueError, match="Cannot read token file"):
            resolve_settings(ProxmoxConfig(host='pve1', token_path=str(tmp_path / 'absent.txt')))
