# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/clusterjoin/join/render.py

from __future__ import annotations

import json
import posixpath
import uuid
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, List, Literal, Optional

import jinja2
import pydantic
from pydantic import BaseModel, Field, model_validator

from clusterjoin.config import defaults
from clusterjoin.config.models import DeployConfig, MQConfig
from .errors import TemplateRenderError

TEMPLATES_DIR = Path(__file__).resolve().parent / "templates"
AGENT_CONFIG_TEMPLATE = "kc-agent.yaml.j2"
AGENT_SERVICE_TEMPLATE = "kc-agent.service.j2"


@dataclass(frozen=True)
class TrustPaths:
    ca: str
    client_cert: str
    client_key: str


def remote_trust_paths(mq: MQConfig) -> TrustPaths:
    """
    Where CA/cert/key live on an agent. External certificates keep the
    paths from the deploy config; managed ones go under the agent's pki dir.
    """
    if mq.external:
        return TrustPaths(ca=mq.ca, client_cert=mq.client_cert, client_key=mq.client_key)
    ca_dir = posixpath.join(defaults.AGENT_CONFIG_DIR, defaults.CA_SUBDIR)
    nats_dir = posixpath.join(defaults.AGENT_CONFIG_DIR, defaults.NATS_PKI_SUBDIR)
    return TrustPaths(
        ca=posixpath.join(ca_dir, posixpath.basename(mq.ca)),
        client_cert=posixpath.join(nats_dir, posixpath.basename(mq.client_cert)),
        client_key=posixpath.join(nats_dir, posixpath.basename(mq.client_key)),
    )


class AgentConfig(BaseModel):
    """Everything the agent config template consumes."""

    region: str = Field(min_length=1)
    agent_id: str = Field(min_length=1)
    static_server_address: str
    log_level: Literal["debug", "info"]
    mq_server_endpoints: List[str]
    mq_external: bool
    mq_user: str
    mq_auth_token: str
    mq_tls: bool
    mq_ca_path: Optional[str] = None
    mq_client_cert_path: Optional[str] = None
    mq_client_key_path: Optional[str] = None
    op_log_dir: str
    op_log_threshold: int

    @model_validator(mode="after")
    def _tls_paths(self) -> "AgentConfig":
        paths = (self.mq_ca_path, self.mq_client_cert_path, self.mq_client_key_path)
        if self.mq_tls and not all(paths):
            raise ValueError("mq TLS is enabled but CA/cert/key paths are missing")
        if not self.mq_tls and any(paths):
            raise ValueError("mq TLS paths given while TLS is disabled")
        return self


def build_agent_config(
    cfg: DeployConfig,
    region: str,
    *,
    id_factory: Callable[[], str] = lambda: str(uuid.uuid4()),
) -> AgentConfig:
    mq = cfg.mq
    tls_paths = {}
    if mq.tls:
        paths = remote_trust_paths(mq)
        tls_paths = {
            "mq_ca_path": paths.ca,
            "mq_client_cert_path": paths.client_cert,
            "mq_client_key_path": paths.client_key,
        }
    try:
        return AgentConfig(
            region=region,
            agent_id=id_factory(),
            static_server_address=f"http://{cfg.first_server}:{cfg.static_server_port}",
            log_level="debug" if cfg.debug else "info",
            mq_server_endpoints=mq.endpoints(),
            mq_external=mq.external,
            mq_user=mq.user,
            mq_auth_token=mq.secret,
            mq_tls=mq.tls,
            op_log_dir=cfg.op_log.dir,
            op_log_threshold=cfg.op_log.threshold,
            **tls_paths,
        )
    except pydantic.ValidationError as exc:
        raise TemplateRenderError(f"agent config for region {region!r} is invalid:\n{exc}") from exc


def _yaml_bool(value: bool) -> str:
    return "true" if value else "false"


class TemplateRenderer:
    def __init__(self, templates_dir: Path = TEMPLATES_DIR):
        self.env = jinja2.Environment(
            loader=jinja2.FileSystemLoader(str(templates_dir)),
            autoescape=False,
            undefined=jinja2.StrictUndefined,
            trim_blocks=True,
            lstrip_blocks=True,
            keep_trailing_newline=True,
        )
        self.env.filters["quote"] = json.dumps
        self.env.filters["yaml_bool"] = _yaml_bool

    def render(self, template_name: str, context: dict) -> str:
        try:
            tmpl = self.env.get_template(template_name)
            return tmpl.render(**context)
        except jinja2.TemplateError as exc:
            raise TemplateRenderError(f"rendering {template_name} failed: {exc}") from exc

    def render_agent_config(self, config: AgentConfig) -> str:
        return self.render(AGENT_CONFIG_TEMPLATE, config.model_dump())

    def render_service_unit(self) -> str:
        return self.render(
            AGENT_SERVICE_TEMPLATE,
            {
                "binary_path": posixpath.join(
                    defaults.REMOTE_BIN_DIR, posixpath.basename(defaults.AGENT_BINARY_RELPATH)
                ),
                "config_path": defaults.AGENT_CONFIG_PATH,
            },
        )
