# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/clusterjoin/config/models.py

from __future__ import annotations

from typing import Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, RootModel, model_validator

from .defaults import DEFAULT_REGION


class _CamelModel(BaseModel):
    # unknown keys survive a load/write round trip
    model_config = ConfigDict(populate_by_name=True, extra="allow")


class SSHSettings(_CamelModel):
    """How to reach cluster machines."""

    user: str = "root"
    port: int = 22
    password: Optional[str] = None        # also fed to sudo -S when set
    pkey_file: Optional[str] = Field(default=None, alias="pkeyFile")
    connect_timeout: float = Field(default=30.0, alias="connectTimeout")
    command_timeout: Optional[float] = Field(default=None, alias="commandTimeout")
    connect_retries: int = Field(default=3, alias="connectRetries")


class MQConfig(_CamelModel):
    ips: List[str] = Field(default_factory=list)
    port: int = 9889
    external: bool = False
    user: str = ""
    secret: str = ""
    tls: bool = False
    ca: str = ""
    client_cert: str = Field(default="", alias="clientCert")
    client_key: str = Field(default="", alias="clientKey")

    def endpoints(self) -> List[str]:
        return [f"{ip}:{self.port}" for ip in self.ips]


class OpLogConfig(_CamelModel):
    dir: str = "/var/log/kc-agent"
    threshold: int = 1048576


class AgentRegions(RootModel[Dict[str, List[str]]]):
    """
    region -> agent addresses. An address lives in at most one region.
    """

    root: Dict[str, List[str]] = Field(default_factory=dict)

    @model_validator(mode="after")
    def _unique_addresses(self) -> "AgentRegions":
        seen: Dict[str, str] = {}
        for region, addresses in self.root.items():
            for address in addresses:
                if address in seen:
                    raise ValueError(
                        f"agent {address} listed in both region "
                        f"{seen[address]!r} and {region!r}"
                    )
                seen[address] = region
        return self

    def exists(self, address: str) -> bool:
        return any(address in addresses for addresses in self.root.values())

    def region_of(self, address: str) -> Optional[str]:
        for region, addresses in self.root.items():
            if address in addresses:
                return region
        return None

    def add(self, region: str, address: str) -> None:
        if self.exists(address):
            raise ValueError(f"agent {address} already belongs to region {self.region_of(address)!r}")
        self.root.setdefault(region, []).append(address)

    def list_addresses(self) -> List[str]:
        return [a for region in sorted(self.root) for a in self.root[region]]


class DeployConfig(_CamelModel):
    """
    The persisted cluster topology (deploy-config.yaml).

    Keys this model does not know about are kept so that rewriting the
    file after a join never drops them.
    """

    server_addresses: List[str] = Field(default_factory=list, alias="serverAddresses")
    agent_regions: AgentRegions = Field(default_factory=AgentRegions, alias="agentRegions")
    mq: MQConfig = Field(default_factory=MQConfig)
    op_log: OpLogConfig = Field(default_factory=OpLogConfig, alias="opLog")
    pkg: str = ""
    debug: bool = False
    static_server_port: int = Field(default=8081, alias="staticServerPort")
    default_region: str = Field(default=DEFAULT_REGION, alias="defaultRegion")
    ssh: SSHSettings = Field(default_factory=SSHSettings)

    @property
    def first_server(self) -> str:
        return self.server_addresses[0]
