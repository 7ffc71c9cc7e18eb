import os
import socket
from pathlib import Path
from typing import Mapping, Optional

from pydantic import BaseModel, Field, SecretStr, field_validator

from common.topics import valid_segment

# environment variable -> NodeConfig field
ENV_VARS = {
    "OVERLAY_NAME": "name",
    "OVERLAY_NAMESPACE": "namespace",
    "BROKER_HOST": "broker_host",
    "BROKER_PORT": "broker_port",
    "KEY_DIR": "key_dir",
    "PRIVATE_KEY_PASSPHRASE": "passphrase",
    "HTTP_HOST": "http_host",
    "HTTP_PORT": "http_port",
}


class NodeConfig(BaseModel):
    """Overlay node configuration."""

    name: str = Field(default_factory=socket.gethostname, description="Identity announced to peers")
    namespace: str = Field(default="overlay", description="First topic level shared by all peers")
    broker_host: str = Field(default="127.0.0.1", description="Pub/sub broker host")
    broker_port: int = Field(default=1884, description="Pub/sub broker port")
    key_dir: Path = Field(default=Path("."), description="Directory holding public.pem and private.pem")
    passphrase: SecretStr = Field(default=SecretStr("test"), description="Protects private.pem at rest")
    http_host: str = Field(default="127.0.0.1", description="HTTP front-end host")
    http_port: int = Field(default=8080, description="HTTP front-end port")

    @field_validator("name", "namespace")
    @classmethod
    def _single_level(cls, v: str) -> str:
        if not valid_segment(v):
            raise ValueError("must be non-empty and contain no '/', '+' or '#'")
        return v

    @field_validator("passphrase")
    @classmethod
    def _non_empty(cls, v: SecretStr) -> SecretStr:
        if not v.get_secret_value():
            raise ValueError("passphrase must not be empty")
        return v

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None, **overrides) -> "NodeConfig":
        ''' Build from environment variables; explicit overrides (e.g. CLI flags) win '''
        environ = os.environ if environ is None else environ
        values = {field: environ[var] for var, field in ENV_VARS.items() if environ.get(var)}
        values.update({k: v for k, v in overrides.items() if v is not None})
        return cls(**values)
