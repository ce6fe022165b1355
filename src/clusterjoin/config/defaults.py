# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/clusterjoin/config/defaults.py

from pathlib import Path

# Local side
DEFAULT_DEPLOY_CONFIG_PATH = Path.home() / ".kc" / "deploy-config.yaml"
DEFAULT_LOG_DIR = Path.home() / ".kc" / "logs"
DEFAULT_REGION = "default"

# Remote package staging
REMOTE_PKG_DIR = "/root/kc-pkg"
UNPACKED_DIR_NAME = "kc"
AGENT_BINARY_RELPATH = "kc/bin/kubeclipper-agent"
REMOTE_BIN_DIR = "/usr/local/bin/"

# Agent service
AGENT_SERVICE_NAME = "kc-agent"
AGENT_SERVICE_UNIT_PATH = "/usr/lib/systemd/system/kc-agent.service"
AGENT_CONFIG_DIR = "/etc/kubeclipper-agent"
AGENT_CONFIG_PATH = "/etc/kubeclipper-agent/kubeclipper-agent.yaml"

# Trust material, relative to AGENT_CONFIG_DIR when certificates are managed
CA_SUBDIR = "pki"
NATS_PKI_SUBDIR = "pki/nats"

# Printed after a successful join
FOLLOW_UP_COMMAND = "kcctl get node"
