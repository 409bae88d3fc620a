"""
Tests for the tool presence ensurer.
"""

import tarfile
import zipfile

import pytest
import requests

from sonar_infra import tools
from sonar_infra.config import ToolVersions
from sonar_infra.constants import TOOL_ORDER
from sonar_infra.errors import ToolInstallError
from sonar_infra.tools import ToolSpec, ensure_tool, ensure_tools, extract_member, tool_inventory

KUBECTL = ToolSpec("kubectl", "v1.28.3", "https://dl.k8s.io/release/v1.28.3/bin/linux/amd64/kubectl", "binary")


class FakeHost:
    """Tracks which commands are on PATH and what was downloaded or installed."""

    def __init__(self, present=()):
        self.present = set(present)
        self.downloads = []
        self.privileged = []

    def command_exists(self, name):
        return name in self.present

    def download(self, url, dest):
        self.downloads.append(url)
        dest.write_bytes(b"binary")
        return dest

    def run_privileged(self, *args, **kwargs):
        self.privileged.append(args)
        if args[0] == "install" and args[-1].startswith("/usr/local/bin/"):
            self.present.add(args[-1].rsplit("/", 1)[-1])


@pytest.fixture
def host(monkeypatch):
    fake = FakeHost()
    monkeypatch.setattr(tools, "command_exists", fake.command_exists)
    monkeypatch.setattr(tools, "download", fake.download)
    monkeypatch.setattr(tools, "privileged", fake.run_privileged)
    return fake


class TestToolInventory:
    """Test the ordered tool list."""

    def test_order_matches_pipeline(self):
        specs = tool_inventory(ToolVersions())
        assert tuple(spec.name for spec in specs) == TOOL_ORDER

    def test_urls_use_pinned_versions(self):
        specs = {spec.name: spec for spec in tool_inventory(ToolVersions(
            minikube_version="v1.32.0", kubectl_version="v1.28.3",
            helm_version="v3.13.3", terraform_version="1.6.6",
        ))}
        assert specs["minikube"].source.endswith("/v1.32.0/minikube_1.32.0-0_amd64.deb")
        assert "/release/v1.28.3/" in specs["kubectl"].source
        assert specs["helm"].source.endswith("helm-v3.13.3-linux-amd64.tar.gz")
        assert specs["helm"].member == "linux-amd64/helm"
        assert specs["terraform"].source.endswith("terraform_1.6.6_linux_amd64.zip")


class TestEnsureTool:
    """Test presence checks and one-shot installs."""

    def test_present_tool_is_untouched(self, host):
        """No network or install action when the tool is on PATH."""
        host.present.add("kubectl")

        assert ensure_tool(KUBECTL, "dev") is False
        assert host.downloads == []
        assert host.privileged == []

    def test_absent_tool_installs_once_then_skips(self, host):
        """Install on the first call, no-op on the repeat; both succeed."""
        assert ensure_tool(KUBECTL, "dev") is True
        assert host.downloads == [KUBECTL.source]
        assert host.privileged[0][:3] == ("install", "-m", "0755")

        assert ensure_tool(KUBECTL, "dev") is False
        assert len(host.downloads) == 1
        assert len(host.privileged) == 1

    def test_still_missing_after_install_is_fatal(self, host, monkeypatch):
        monkeypatch.setattr(tools, "privileged", lambda *args, **kw: None)

        with pytest.raises(ToolInstallError, match="still missing"):
            ensure_tool(KUBECTL, "dev")

    def test_download_failure_is_fatal(self, host, monkeypatch):
        def _fail(url, dest):
            raise requests.exceptions.ConnectionError("offline")

        monkeypatch.setattr(tools, "download", _fail)
        with pytest.raises(ToolInstallError, match="Failed to install kubectl") as exc:
            ensure_tool(KUBECTL, "dev")
        assert exc.value.hint

    def test_deb_tool_uses_dpkg(self, host, monkeypatch):
        spec = ToolSpec("minikube", "v1.32.0", "https://example.invalid/minikube_1.32.0-0_amd64.deb", "deb")

        def _dpkg(*args, **kwargs):
            host.privileged.append(args)
            host.present.add("minikube")

        monkeypatch.setattr(tools, "privileged", _dpkg)
        assert ensure_tool(spec, "dev") is True
        assert host.privileged[0][:2] == ("dpkg", "-i")

    def test_apt_tool_runs_docker_installer(self, host, monkeypatch):
        users = []

        def _install_docker(user):
            users.append(user)
            host.present.add("docker")

        monkeypatch.setattr(tools, "install_docker", _install_docker)
        spec = ToolSpec("docker", "stable", "https://download.docker.com/linux/ubuntu", "apt")

        assert ensure_tool(spec, "dev") is True
        assert users == ["dev"]
        assert host.downloads == []

    def test_ensure_tools_reports_only_new_installs(self, host, monkeypatch):
        host.present.add("kubectl")
        helm = ToolSpec("helm", "v3.13.3", "https://get.helm.sh/helm.tar.gz", "tar", "linux-amd64/helm")
        calls = []

        def _install(spec, user):
            calls.append(spec.name)
            host.present.add(spec.name)

        monkeypatch.setattr(tools, "install_tool", _install)
        assert ensure_tools([KUBECTL, helm], "dev") == ["helm"]
        assert calls == ["helm"]


class TestExtractMember:
    """Test single-file extraction from release archives."""

    def test_tar_member(self, tmp_path):
        payload = tmp_path / "helm"
        payload.write_bytes(b"#!helm")
        archive = tmp_path / "helm.tar.gz"
        with tarfile.open(archive, "w:gz") as tar:
            tar.add(payload, arcname="linux-amd64/helm")
        out = tmp_path / "out"
        out.mkdir()

        extracted = extract_member(archive, "tar", "linux-amd64/helm", out)

        assert extracted == out / "helm"
        assert extracted.read_bytes() == b"#!helm"

    def test_zip_member(self, tmp_path):
        archive = tmp_path / "terraform.zip"
        with zipfile.ZipFile(archive, "w") as zf:
            zf.writestr("terraform", b"#!terraform")

        extracted = extract_member(archive, "zip", "terraform", tmp_path)

        assert extracted.read_bytes() == b"#!terraform"

    def test_missing_member_raises_key_error(self, tmp_path):
        archive = tmp_path / "empty.zip"
        with zipfile.ZipFile(archive, "w") as zf:
            zf.writestr("other", b"")

        with pytest.raises(KeyError):
            extract_member(archive, "zip", "terraform", tmp_path)
