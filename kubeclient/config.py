"""Connection settings for the REST executor."""

import base64
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Optional

import yaml


SERVICE_ACCOUNT_DIR = Path("/var/run/secrets/kubernetes.io/serviceaccount")
DEFAULT_KUBECONFIG = Path.home() / ".kube" / "config"


class ConfigError(ValueError):
    """Raised when no usable connection settings can be found."""
    pass


@dataclass
class ClientConfig:
    """API server connection configuration."""

    host: str = ""
    token: Optional[str] = None
    ca_file: Optional[str] = None
    ca_data: Optional[str] = None
    cert_file: Optional[str] = None
    key_file: Optional[str] = None
    verify_ssl: bool = True
    request_timeout: Optional[float] = None  # transport default deadline, seconds
    user_agent: str = "meshclient/0.1"

    def __post_init__(self) -> None:
        """Fill gaps from the in-cluster environment."""
        if not self.host:
            service_host = os.environ.get("KUBERNETES_SERVICE_HOST")
            service_port = os.environ.get("KUBERNETES_SERVICE_PORT", "443")
            if service_host:
                self.host = f"https://{service_host}:{service_port}"
        if not self.token:
            self.token = os.environ.get("KUBE_TOKEN")
        if not self.token and (SERVICE_ACCOUNT_DIR / "token").exists():
            self.token = (SERVICE_ACCOUNT_DIR / "token").read_text().strip()
        if not self.ca_file and not self.ca_data and (SERVICE_ACCOUNT_DIR / "ca.crt").exists():
            self.ca_file = str(SERVICE_ACCOUNT_DIR / "ca.crt")

    @classmethod
    def from_kubeconfig(
        cls,
        path: Optional[str] = None,
        context: Optional[str] = None,
    ) -> "ClientConfig":
        """Load settings for ``context`` (default: current-context) from a kubeconfig file."""
        path = path or os.environ.get("KUBECONFIG") or str(DEFAULT_KUBECONFIG)
        with open(path) as f:
            document = yaml.safe_load(f) or {}
        return cls.from_kubeconfig_dict(document, context, base_dir=Path(path).parent)

    @classmethod
    def from_kubeconfig_dict(
        cls,
        document: dict[str, Any],
        context: Optional[str] = None,
        base_dir: Optional[Path] = None,
    ) -> "ClientConfig":
        context_name = context or document.get("current-context")
        if not context_name:
            raise ConfigError("kubeconfig has no current-context and none was given")
        ctx = _named(document, "contexts", context_name, "context")
        cluster = _named(document, "clusters", ctx.get("cluster"), "cluster")
        user = _named(document, "users", ctx.get("user"), "user") if ctx.get("user") else {}

        server = cluster.get("server")
        if not server:
            raise ConfigError(f"cluster {ctx.get('cluster')!r} has no server")

        token = user.get("token")
        if not token and user.get("tokenFile"):
            token = Path(_resolve(user["tokenFile"], base_dir)).read_text().strip()

        ca_data = None
        if cluster.get("certificate-authority-data"):
            ca_data = base64.b64decode(cluster["certificate-authority-data"]).decode()

        return cls(
            host=server,
            token=token,
            ca_file=_resolve(cluster.get("certificate-authority"), base_dir),
            ca_data=ca_data,
            cert_file=_resolve(user.get("client-certificate"), base_dir),
            key_file=_resolve(user.get("client-key"), base_dir),
            verify_ssl=not cluster.get("insecure-skip-tls-verify", False),
        )


def _named(document: dict[str, Any], section: str, name: Optional[str], key: str) -> dict[str, Any]:
    for entry in document.get(section) or []:
        if entry.get("name") == name:
            return entry.get(key) or {}
    raise ConfigError(f"kubeconfig has no {key} named {name!r}")


def _resolve(path: Optional[str], base_dir: Optional[Path]) -> Optional[str]:
    """Kubeconfig paths are relative to the file that names them."""
    if not path:
        return None
    if base_dir is not None and not os.path.isabs(path):
        return str(base_dir / path)
    return path
