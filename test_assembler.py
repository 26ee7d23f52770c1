"""Tests for server identity resolution and provenance flags."""

from iperf_report.results.assembler import provenance_flags, resolve_servers
from iperf_report.results.models import ServerIdentity

META = {
    "meta_provider_id": "aws",
    "meta_compute_service_id": "ec2",
    "meta_region": "us-east-1",
    "meta_instance_id": "c5.large",
    "meta_os": "Ubuntu 22.04",
}


def test_resolve_servers_fallback_chain():
    servers = resolve_servers(
        ["a.example.net", "b.example.net:5202"],
        overrides={"region": ["us-east-1", "eu-west-1"], "provider": ["Amazon"]},
        defaults={"meta_os": "CentOS 7", "meta_compute_service": "EC2", "meta_instance_id": "m5.xlarge"},
    )

    a = servers["a.example.net"]
    b = servers["b.example.net:5202"]
    assert a.hostname == "a.example.net" and a.port is None
    assert b.hostname == "b.example.net" and b.port == 5202
    assert (a.region, b.region) == ("us-east-1", "eu-west-1")
    # second server inherits the first server's override
    assert b.provider == "Amazon"
    assert b.os == "CentOS 7"
    assert b.service == "EC2"
    assert b.instance_id == "m5.xlarge"
    assert b.provider_id is None


def test_resolve_servers_ignores_invalid_port():
    servers = resolve_servers(["c.example.net:abc"])
    assert servers["c.example.net:abc"].port is None


def test_provenance_full_match():
    server = ServerIdentity(
        hostname="x", provider_id="aws", service_id="ec2", region="us-east-1", instance_id="c5.large", os="Ubuntu 22.04"
    )
    assert provenance_flags(server, META) == {
        "same_provider": True,
        "same_service": True,
        "same_region": True,
        "same_instance_id": True,
        "same_os": True,
    }


def test_provenance_cascade_gates_on_service():
    server = ServerIdentity(
        hostname="x", provider_id="aws", service_id="lightsail", region="us-east-1", instance_id="c5.large", os="Debian"
    )
    flags = provenance_flags(server, META)

    assert flags["same_provider"]
    assert not flags["same_service"]
    assert not flags["same_region"]
    assert not flags["same_instance_id"]
    assert not flags["same_os"]


def test_provenance_os_is_independent():
    server = ServerIdentity(hostname="x", provider_id="gcp", os="Ubuntu 22.04")
    flags = provenance_flags(server, META)

    assert not flags["same_provider"]
    assert flags["same_os"]


def test_provenance_requires_both_values():
    flags = provenance_flags(ServerIdentity(hostname="x"), {})
    assert not any(flags.values())
