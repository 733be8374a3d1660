"""Tests for build module."""

import os
import stat
from pathlib import Path

import pytest

from conftest import FakeRunner, failing_command
from pikernel.build import BuildError, KernelCompiler, adjust_text_file, config_option_name
from pikernel.config import KernelConfig
from pikernel.errors import CommandError


RELEASE = "6.12.62+rpt-rpi-v6"

DEFCONFIG = """\
CONFIG_LOCALVERSION="-v6"
# CONFIG_SQUASHFS is not set
CONFIG_IPV6=m
CONFIG_USB_SERIAL=m
CONFIG_SQUASHFS_ZLIB=y
"""


@pytest.fixture
def kernel_tree(tmp_path):
    """Create a kernel tree that looks like it was already built."""
    kernel = tmp_path / "linux-sources"
    boot = kernel / "arch" / "arm" / "boot"
    (boot / "dts" / "broadcom").mkdir(parents=True)
    (boot / "zImage").write_bytes(b"kernel-image")
    (boot / "dts" / "broadcom" / "bcm2708-rpi-zero-w.dtb").write_bytes(b"dtb0")
    (boot / "dts" / "broadcom" / "bcm2710-rpi-3-b.dtb").write_bytes(b"dtb3")
    (boot / "dts" / "broadcom" / "bcm2835-unrelated.dtb").write_bytes(b"skip")
    (kernel / ".config").write_text(DEFCONFIG)
    (kernel / "include" / "config").mkdir(parents=True)
    (kernel / "include" / "config" / "kernel.release").write_text(RELEASE + "\n")

    modules = kernel / ".modules-install" / "lib" / "modules" / RELEASE
    (modules / "kernel" / "fs").mkdir(parents=True)
    (modules / "kernel" / "fs" / "squashfs.ko").write_bytes(b"ko")
    (modules / "modules.dep").write_text("")
    (modules / "build").symlink_to(kernel)
    (modules / "source").symlink_to(kernel)
    return kernel


@pytest.fixture
def static_dir(tmp_path):
    static = tmp_path / "gokrazy"
    static.mkdir()
    (static / "cmdline.txt").write_text("console=tty1\n")
    (static / "config.txt").write_text("enable_uart=1\n")
    return static


@pytest.fixture
def config(tmp_path, kernel_tree, static_dir):
    return KernelConfig(
        kernel_dir=kernel_tree,
        dist_dir=tmp_path / "dist",
        static_files=[static_dir / "cmdline.txt", static_dir / "config.txt"],
        jobs=4,
    )


class TestConfigOptionName:
    """Tests for .config line parsing."""

    def test_set(self):
        assert config_option_name("CONFIG_SQUASHFS=y") == "CONFIG_SQUASHFS"

    def test_not_set(self):
        assert config_option_name("# CONFIG_SQUASHFS is not set") == "CONFIG_SQUASHFS"

    def test_other(self):
        assert config_option_name("# Automatically generated file") is None
        assert config_option_name("") is None


class TestAdjustTextFile:
    """Tests for in-place text rewriting."""

    def test_skip_and_append(self, tmp_path):
        path = tmp_path / "f"
        path.write_text("a\nb\nc\n")
        adjust_text_file(path, lambda line: line == "b", ["d"])
        assert path.read_text() == "a\nc\nd\n"

    def test_preserves_mode(self, tmp_path):
        path = tmp_path / "f"
        path.write_text("a\n")
        os.chmod(path, 0o600)
        adjust_text_file(path, lambda line: False, [])
        assert stat.S_IMODE(path.stat().st_mode) == 0o600


class TestKernelCompiler:
    """Tests for the build driver."""

    def test_apply_overrides(self, config, kernel_tree):
        compiler = KernelCompiler(config, FakeRunner())
        compiler.apply_overrides()
        lines = (kernel_tree / ".config").read_text().splitlines()
        assert "# CONFIG_SQUASHFS is not set" not in lines
        assert "CONFIG_IPV6=m" not in lines
        assert "CONFIG_SQUASHFS=y" in lines
        assert "CONFIG_IPV6=y" in lines
        assert "CONFIG_WIREGUARD=y" in lines
        assert "CONFIG_SQUASHFS_ZLIB=y" in lines
        assert lines[0] == 'CONFIG_LOCALVERSION="-v6"'

    def test_overrides_missing_config(self, config, kernel_tree):
        (kernel_tree / ".config").unlink()
        with pytest.raises(BuildError):
            KernelCompiler(config, FakeRunner()).apply_overrides()

    def test_command_sequence(self, config, kernel_tree):
        runner = FakeRunner()
        KernelCompiler(config, runner).compile()
        prefix = ["docker", "run", "--rm", "-v", f"{kernel_tree.resolve()}:/root/armhf", config.docker_image]
        commands = runner.commands
        assert all(cmd[:6] == prefix for cmd in commands)
        steps = [cmd[6:] for cmd in commands]
        owner = f"{os.getuid()}:{os.getgid()}"
        assert steps == [
            ["make", "bcmrpi_defconfig"],
            ["chown", "-R", owner, ".config"],
            ["make", "olddefconfig"],
            ["chown", "-R", owner, ".config"],
            ["make", "zImage", "dtbs", "modules", "-j4"],
            ["make", "modules_install", "INSTALL_MOD_PATH=.modules-install"],
            ["chown", "-R", owner, "arch/arm/boot"],
            ["chown", "-R", owner, ".modules-install"],
        ]

    def test_artifacts(self, config, tmp_path):
        dist = tmp_path / "dist"
        dist.mkdir()
        (dist / "stale.txt").write_text("old")

        KernelCompiler(config, FakeRunner()).compile()

        assert (dist / "vmlinuz").read_bytes() == b"kernel-image"
        assert (dist / "bcm2708-rpi-zero-w.dtb").exists()
        assert (dist / "bcm2710-rpi-3-b.dtb").exists()
        assert not (dist / "bcm2835-unrelated.dtb").exists()
        assert (dist / "cmdline.txt").read_text() == "console=tty1\n"
        assert (dist / "config.txt").exists()
        assert not (dist / "stale.txt").exists()

        modules = dist / "lib" / "modules" / RELEASE
        assert (modules / "kernel" / "fs" / "squashfs.ko").exists()
        assert not (modules / "build").is_symlink()
        assert not (modules / "source").is_symlink()

    def test_missing_image(self, config, kernel_tree):
        (kernel_tree / "arch" / "arm" / "boot" / "zImage").unlink()
        with pytest.raises(BuildError, match="kernel image"):
            KernelCompiler(config, FakeRunner()).compile()

    def test_missing_static_file(self, config, static_dir):
        (static_dir / "config.txt").unlink()
        with pytest.raises(BuildError, match="static file"):
            KernelCompiler(config, FakeRunner()).compile()

    def test_missing_kernel_dir(self, config, tmp_path):
        config.kernel_dir = tmp_path / "nope"
        runner = FakeRunner()
        with pytest.raises(BuildError):
            KernelCompiler(config, runner).compile()
        assert runner.calls == []

    def test_docker_failure_stops_build(self, config, kernel_tree):
        prefix = ("docker", "run", "--rm", "-v", f"{kernel_tree.resolve()}:/root/armhf", config.docker_image)
        cmd = prefix + ("make", "bcmrpi_defconfig")
        runner = FakeRunner({cmd: failing_command(*cmd, returncode=2)})
        with pytest.raises(CommandError):
            KernelCompiler(config, runner).compile()
        assert len(runner.calls) == 1
        assert not config.dist_dir.exists()
