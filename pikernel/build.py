"""
Cross-compile the pinned kernel inside a container and collect boot artifacts.
"""

import os
import shutil
from pathlib import Path
from typing import Callable, List, Optional

from pikernel.common import CommandRunner, logger
from pikernel.config import KernelConfig
from pikernel.errors import PiKernelError


class BuildError(PiKernelError):
    """Exception raised for build failures."""
    pass


def config_option_name(line: str) -> Optional[str]:
    """Get the option name from a .config line ('CONFIG_X=y' or '# CONFIG_X is not set')."""
    if line.startswith("CONFIG_") and "=" in line:
        return line.split("=", 1)[0]
    if line.startswith("# CONFIG_") and line.endswith(" is not set"):
        return line[2:-len(" is not set")]
    return None


def adjust_text_file(
    path: Path,
    skip_line: Callable[[str], bool],
    append_lines: List[str],
) -> None:
    """
    Rewrite a text file in place, dropping some lines and appending others.

    Args:
        path: File to rewrite (mode is preserved)
        skip_line: Returns True for lines to drop
        append_lines: Lines added at the end
    """
    mode = path.stat().st_mode
    lines = path.read_text().split("\n")
    if lines and lines[-1] == "":
        lines.pop()

    kept = [line for line in lines if not skip_line(line)]
    path.write_text("\n".join(kept + list(append_lines)) + "\n")
    os.chmod(path, mode)


class KernelCompiler:
    """Drive the containerized kernel build."""

    def __init__(self, config: KernelConfig, runner: CommandRunner):
        self.config = config
        self.runner = runner
        self.kernel_dir = config.kernel_dir.resolve()

    @property
    def boot_dir(self) -> Path:
        return self.kernel_dir / "arch" / self.config.arch / "boot"

    def docker_run(self, *args: str) -> None:
        """Run a command in the cross-build container with the kernel mounted."""
        cmd = [
            "docker",
            "run",
            "--rm",
            "-v", f"{self.kernel_dir}:{self.config.container_dir}",
            self.config.docker_image,
            *args,
        ]
        logger.info(" ".join(args))
        self.runner.run(cmd)

    def chown(self, path: str) -> None:
        """Give files created by the container back to the current user."""
        self.docker_run("chown", "-R", f"{os.getuid()}:{os.getgid()}", path)

    def make_defconfig(self) -> None:
        self.docker_run("make", self.config.defconfig)
        self.chown(".config")

    def apply_overrides(self) -> List[str]:
        """
        Force the feature override options into .config.

        Returns:
            Lines appended to .config
        """
        config_path = self.kernel_dir / ".config"
        if not config_path.exists():
            raise BuildError(f"kernel config not found: {config_path}")

        overrides = self.config.override_lines
        names = {config_option_name(line) for line in overrides}
        adjust_text_file(
            config_path,
            lambda line: config_option_name(line) in names,
            overrides,
        )
        logger.info(f"applied {len(overrides)} config overrides ({', '.join(sorted(self.config.feature_overrides))})")

        self.docker_run("make", "olddefconfig")
        self.chown(".config")
        return overrides

    def compile_kernel(self) -> None:
        self.docker_run(
            "make",
            self.config.image_target,
            "dtbs",
            "modules",
            f"-j{self.config.jobs}",
        )
        self.docker_run(
            "make",
            "modules_install",
            f"INSTALL_MOD_PATH={self.config.modules_staging}",
        )
        self.chown(str(Path("arch") / self.config.arch / "boot"))
        self.chown(self.config.modules_staging)

    def kernel_release(self) -> str:
        """Get the release string written by the kernel build."""
        release_file = self.kernel_dir / "include" / "config" / "kernel.release"
        if not release_file.exists():
            raise BuildError(f"kernel release not found: {release_file}")
        return release_file.read_text().strip()

    def collect_artifacts(self, dist_dir: Path) -> List[Path]:
        """
        Copy build artifacts into the dist directory.

        Args:
            dist_dir: Output directory; recreated from scratch

        Returns:
            Paths written into dist_dir
        """
        shutil.rmtree(dist_dir, ignore_errors=True)
        dist_dir.mkdir(parents=True)
        written: List[Path] = []

        image = self.boot_dir / self.config.image_target
        if not image.exists():
            raise BuildError(f"kernel image not found: {image}")
        dst = dist_dir / self.config.image_name
        shutil.copyfile(image, dst)
        written.append(dst)

        for dtb in sorted((self.boot_dir / "dts").rglob(self.config.dtb_glob)):
            dst = dist_dir / dtb.name
            shutil.copyfile(dtb, dst)
            written.append(dst)

        written.append(self._collect_modules(dist_dir))

        for static in self.config.static_files:
            if not static.exists():
                raise BuildError(f"static file not found: {static}")
            dst = dist_dir / static.name
            shutil.copyfile(static, dst)
            written.append(dst)

        return written

    def _collect_modules(self, dist_dir: Path) -> Path:
        release = self.kernel_release()
        src = self.kernel_dir / self.config.modules_staging / "lib" / "modules" / release
        if not src.is_dir():
            raise BuildError(f"modules not installed: {src}")

        # symlinks back into the build tree
        for link in ("build", "source"):
            path = src / link
            if path.is_symlink():
                path.unlink()

        dst = dist_dir / "lib" / "modules" / release
        shutil.copytree(src, dst, symlinks=True)
        return dst

    def compile(self, dist_dir: Optional[Path] = None) -> List[Path]:
        """Run the whole build and return the produced artifacts."""
        dist_dir = dist_dir or self.config.dist_dir
        logger.info(f"[kernel] {self.kernel_dir}")
        if not self.kernel_dir.is_dir():
            raise BuildError(f"kernel source not found: {self.kernel_dir}")

        self.make_defconfig()
        self.apply_overrides()
        self.compile_kernel()
        artifacts = self.collect_artifacts(dist_dir)
        logger.info(f"wrote {len(artifacts)} artifacts to {dist_dir}")
        return artifacts
