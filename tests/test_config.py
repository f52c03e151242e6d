import base64

import pytest
import yaml

from kubeclient import config as config_module
from kubeclient.config import ClientConfig, ConfigError

KUBECONFIG = {
    "apiVersion": "v1",
    "kind": "Config",
    "current-context": "dev",
    "contexts": [
        {"name": "dev", "context": {"cluster": "dev-cluster", "user": "dev-user"}},
        {"name": "lab", "context": {"cluster": "lab-cluster", "user": "lab-user"}},
        {"name": "broken", "context": {"cluster": "nowhere"}},
    ],
    "clusters": [
        {
            "name": "dev-cluster",
            "cluster": {
                "server": "https://dev.example.com:6443",
                "certificate-authority": "certs/ca.crt",
            },
        },
        {
            "name": "lab-cluster",
            "cluster": {
                "server": "https://lab.example.com",
                "insecure-skip-tls-verify": True,
                "certificate-authority-data": base64.b64encode(b"PEM DATA").decode(),
            },
        },
    ],
    "users": [
        {"name": "dev-user", "user": {"token": "dev-token"}},
        {"name": "lab-user", "user": {"tokenFile": "lab.token", "client-certificate": "/abs/client.crt"}},
    ],
}


@pytest.fixture(autouse=True)
def isolated_environment(monkeypatch, tmp_path):
    monkeypatch.setattr(config_module, "SERVICE_ACCOUNT_DIR", tmp_path / "serviceaccount")
    for name in ("KUBERNETES_SERVICE_HOST", "KUBERNETES_SERVICE_PORT", "KUBE_TOKEN", "KUBECONFIG"):
        monkeypatch.delenv(name, raising=False)


def test_current_context(tmp_path):
    config = ClientConfig.from_kubeconfig_dict(KUBECONFIG, base_dir=tmp_path)

    assert config.host == "https://dev.example.com:6443"
    assert config.token == "dev-token"
    assert config.ca_file == str(tmp_path / "certs" / "ca.crt")
    assert config.verify_ssl


def test_named_context(tmp_path):
    (tmp_path / "lab.token").write_text("lab-token\n")

    config = ClientConfig.from_kubeconfig_dict(KUBECONFIG, context="lab", base_dir=tmp_path)

    assert config.host == "https://lab.example.com"
    assert config.token == "lab-token"
    assert config.ca_data == "PEM DATA"
    assert config.cert_file == "/abs/client.crt"
    assert not config.verify_ssl


def test_from_file(tmp_path, monkeypatch):
    path = tmp_path / "config"
    path.write_text(yaml.safe_dump(KUBECONFIG))
    monkeypatch.setenv("KUBECONFIG", str(path))

    config = ClientConfig.from_kubeconfig()

    assert config.host == "https://dev.example.com:6443"
    assert config.ca_file == str(tmp_path / "certs" / "ca.crt")


@pytest.mark.parametrize("context", ["missing", "broken"])
def test_unknown_context_or_cluster(context):
    with pytest.raises(ConfigError):
        ClientConfig.from_kubeconfig_dict(KUBECONFIG, context=context)


def test_no_current_context():
    with pytest.raises(ConfigError):
        ClientConfig.from_kubeconfig_dict({"contexts": []})


def test_in_cluster_environment(monkeypatch, tmp_path):
    account = tmp_path / "serviceaccount"
    account.mkdir()
    (account / "token").write_text("sa-token\n")
    (account / "ca.crt").write_text("PEM")
    monkeypatch.setenv("KUBERNETES_SERVICE_HOST", "10.0.0.1")

    config = ClientConfig()

    assert config.host == "https://10.0.0.1:443"
    assert config.token == "sa-token"
    assert config.ca_file == str(account / "ca.crt")


def test_token_from_environment(monkeypatch):
    monkeypatch.setenv("KUBE_TOKEN", "env-token")
    assert ClientConfig(host="http://localhost:8001").token == "env-token"


def test_explicit_values_win(monkeypatch):
    monkeypatch.setenv("KUBERNETES_SERVICE_HOST", "10.0.0.1")
    monkeypatch.setenv("KUBE_TOKEN", "env-token")

    config = ClientConfig(host="http://localhost:8001", token="explicit")

    assert config.host == "http://localhost:8001"
    assert config.token == "explicit"
