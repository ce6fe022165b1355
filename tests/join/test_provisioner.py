from pathlib import Path

import pytest

from clusterjoin.join.activator import ServiceActivator
from clusterjoin.join.errors import RemoteExecutionError
from clusterjoin.join.provisioner import CertificateCache, RemoteProvisioner
from clusterjoin.utils.ssh_runner import CommandResult, TransportError

from conftest import FakeTransport


def _tls(tmp_path, external=False):
    pki = tmp_path / "pki"
    return {
        "ips": ["10.0.0.1"],
        "tls": True,
        "external": external,
        "ca": str(pki / "ca.crt"),
        "clientCert": str(pki / "nats" / "client.crt"),
        "clientKey": str(pki / "nats" / "client.key"),
    }


def test_install_is_discrete_ordered_steps(make_config):
    cfg, _ = make_config()
    transport = FakeTransport()

    RemoteProvisioner(transport, cfg).install_binary("10.0.1.1")

    assert transport.calls == [
        ("run", "10.0.1.1", "mkdir -p /root/kc-pkg"),
        ("upload", "10.0.1.1", "/root/kc-pkg/kc-v1.4.0.tar.gz"),
        ("run", "10.0.1.1", "rm -rf /root/kc-pkg/kc"),
        ("run", "10.0.1.1", "tar -xvf /root/kc-pkg/kc-v1.4.0.tar.gz -C /root/kc-pkg"),
        ("run", "10.0.1.1", "cp -rf /root/kc-pkg/kc/bin/kubeclipper-agent /usr/local/bin/"),
    ]


def test_failed_extract_stops_before_copy(make_config):
    cfg, _ = make_config()
    transport = FakeTransport({("10.0.1.1", "tar -xvf"): CommandResult(2, "", "tar: not in gzip format")})

    with pytest.raises(RemoteExecutionError) as ei:
        RemoteProvisioner(transport, cfg).install_binary("10.0.1.1")

    assert ei.value.step == "extract package"
    assert "gzip" in str(ei.value)
    assert not any("cp -rf" in c for c in transport.commands())


def test_transport_failure_is_wrapped_with_step(make_config):
    cfg, _ = make_config()
    transport = FakeTransport({("10.0.1.1", "mkdir -p"): TransportError("connection reset")})

    with pytest.raises(RemoteExecutionError) as ei:
        RemoteProvisioner(transport, cfg).install_binary("10.0.1.1")
    assert ei.value.address == "10.0.1.1"
    assert ei.value.step == "create package dir"


def test_no_trust_material_without_tls(make_config):
    cfg, _ = make_config()
    transport = FakeTransport()
    RemoteProvisioner(transport, cfg).distribute_trust("10.0.1.1")
    assert transport.calls == []


def test_certificates_fetched_once_for_many_nodes(make_config, tmp_path):
    cfg, _ = make_config(mq=_tls(tmp_path))
    transport = FakeTransport()
    certs = CertificateCache(transport, cfg)
    prov = RemoteProvisioner(transport, cfg, certs=certs)

    for node in ("10.0.1.1", "10.0.1.2", "10.0.1.3"):
        prov.distribute_trust(node)

    assert certs.fetch_count == 1
    downloads = transport.ops("download")
    assert len(downloads) == 3
    assert {d[1] for d in downloads} == {"10.0.0.1"}
    uploads = transport.ops("upload")
    assert len(uploads) == 9
    assert ("upload", "10.0.1.2", "/etc/kubeclipper-agent/pki/ca.crt") in uploads
    assert ("upload", "10.0.1.2", "/etc/kubeclipper-agent/pki/nats/client.key") in uploads


def test_client_key_pushed_owner_only(make_config, tmp_path):
    cfg, _ = make_config(mq=_tls(tmp_path))
    transport = FakeTransport()

    RemoteProvisioner(transport, cfg).distribute_trust("10.0.1.1")

    assert transport.modes[("10.0.1.1", "/etc/kubeclipper-agent/pki/nats/client.key")] == 0o600
    assert transport.modes[("10.0.1.1", "/etc/kubeclipper-agent/pki/nats/client.crt")] == 0o644
    assert transport.modes[("10.0.1.1", "/etc/kubeclipper-agent/pki/ca.crt")] == 0o644


def test_cached_local_certificates_skip_download(make_config, tmp_path):
    cfg, _ = make_config(mq=_tls(tmp_path))
    for f in (cfg.mq.ca, cfg.mq.client_cert, cfg.mq.client_key):
        p = Path(f)
        p.parent.mkdir(parents=True, exist_ok=True)
        p.write_text("pem")
    transport = FakeTransport()
    certs = CertificateCache(transport, cfg)

    RemoteProvisioner(transport, cfg, certs=certs).distribute_trust("10.0.1.1")

    assert certs.fetch_count == 0
    assert transport.ops("download") == []


def test_external_certificates_go_to_configured_dirs(make_config, tmp_path):
    cfg, _ = make_config(mq=_tls(tmp_path, external=True))
    transport = FakeTransport()

    RemoteProvisioner(transport, cfg).distribute_trust("10.0.1.1")

    mkdir = transport.commands("10.0.1.1")[0]
    assert mkdir.startswith("mkdir -p ")
    assert str(tmp_path / "pki" / "nats") in mkdir
    assert ("upload", "10.0.1.1", cfg.mq.ca) in transport.ops("upload")


def test_render_and_deliver_writes_unit_then_config(make_config):
    cfg, _ = make_config()
    transport = FakeTransport()
    prov = RemoteProvisioner(transport, cfg, id_factory=lambda: "agent-1")

    files = prov.render("us-west-1")
    prov.deliver("10.0.1.1", files)

    assert [c[0] for c in transport.calls] == ["write", "run", "write"]
    assert transport.calls[0][2] == "/usr/lib/systemd/system/kc-agent.service"
    assert transport.calls[1][2] == "mkdir -pv /etc/kubeclipper-agent"
    config_text = transport.files[("10.0.1.1", "/etc/kubeclipper-agent/kubeclipper-agent.yaml")]
    assert 'agentID: "agent-1"' in config_text
    assert 'region: "us-west-1"' in config_text


def test_activation_reloads_then_enables():
    transport = FakeTransport()
    ServiceActivator(transport).activate("10.0.1.1")
    assert transport.commands() == ["systemctl daemon-reload", "systemctl enable kc-agent --now"]


def test_activation_failure_raises():
    transport = FakeTransport({("10.0.1.1", "enable"): CommandResult(1, "", "Unit not found")})
    with pytest.raises(RemoteExecutionError, match="Unit not found"):
        ServiceActivator(transport).activate("10.0.1.1")
