"""
Configuration values and distribution channel mappings for pikernel.
"""

from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Dict, List, Optional
import os

from pikernel.errors import ConfigError


class IndexMatch(str, Enum):
    """How the kernel package is located inside a package index."""
    FILENAME_PREFIX = "filename-prefix"
    PACKAGE_NAME = "package-name"


class ArchiveMarker(str, Enum):
    """Which file inside a source archive records the upstream commit."""
    GIT_HASH_FILE = "git-hash-file"
    CHANGELOG = "changelog"


class PinMode(str, Enum):
    """How the local pin is read."""
    COMMIT = "commit"
    TAGS = "tags"


@dataclass
class ChannelMapping:
    """Where one distribution era publishes its kernel package and sources."""
    name: str
    index_url: str
    index_match: IndexMatch
    package_key: str
    archive_url_template: str
    archive_marker: ArchiveMarker

    def archive_url(self, tag: str) -> str:
        """Get the source archive URL for a resolved tag."""
        return self.archive_url_template.format(tag=tag)


# Supported distribution channels
CHANNELS: Dict[str, ChannelMapping] = {
    "bullseye": ChannelMapping(
        name="bullseye",
        index_url="https://archive.raspberrypi.org/debian/dists/bullseye/main/binary-armhf/Packages.gz",
        index_match=IndexMatch.FILENAME_PREFIX,
        package_key="Filename: pool/main/r/raspberrypi-firmware/raspberrypi-kernel_",
        archive_url_template=(
            "https://archive.raspberrypi.org/debian/pool/main/r/raspberrypi-firmware/"
            "raspberrypi-firmware_{tag}.orig.tar.xz"
        ),
        archive_marker=ArchiveMarker.GIT_HASH_FILE,
    ),
    "bookworm": ChannelMapping(
        name="bookworm",
        index_url="https://archive.raspberrypi.com/debian/dists/bookworm/main/binary-armhf/Packages.gz",
        index_match=IndexMatch.PACKAGE_NAME,
        package_key="linux-image-rpi-v6",
        archive_url_template=(
            "https://archive.raspberrypi.com/debian/pool/main/l/linux/"
            "linux_{tag}.debian.tar.xz"
        ),
        archive_marker=ArchiveMarker.CHANGELOG,
    ),
}

SUPPORTED_CHANNELS = list(CHANNELS.keys())

DEFAULT_CHANNEL = "bookworm"

# Kernel options forced on top of the defconfig, grouped by feature
FEATURE_OVERRIDES: Dict[str, List[str]] = {
    "filesystem": [
        "CONFIG_SQUASHFS=y",
        "CONFIG_SQUASHFS_XZ=y",
    ],
    "networking": [
        "CONFIG_IPV6=y",
        "CONFIG_PACKET=y",
        "CONFIG_BRIDGE=y",
    ],
    "wireless": [
        "CONFIG_CFG80211=y",
        "CONFIG_BRCMFMAC=y",
    ],
    "usb-serial": [
        "CONFIG_USB_SERIAL=y",
        "CONFIG_USB_SERIAL_CP210X=y",
        "CONFIG_USB_SERIAL_FTDI_SIO=y",
        "CONFIG_USB_SERIAL_PL2303=y",
    ],
    "vpn": [
        "CONFIG_TUN=y",
        "CONFIG_WIREGUARD=y",
    ],
}


@dataclass
class KernelConfig:
    """Configuration for one pikernel invocation."""

    # Upstream
    channel: str = DEFAULT_CHANNEL
    github_api_url: str = "https://api.github.com"
    github_repo: str = "raspberrypi/linux"
    github_token: Optional[str] = None

    # Network settings
    network_timeout: int = 30

    # Local pin
    repo_dir: Path = field(default_factory=lambda: Path("."))
    pinned_source: str = "linux-sources"
    pin_mode: PinMode = PinMode.COMMIT
    force_marker: Path = field(default_factory=lambda: Path(".force-update"))

    # Build settings
    kernel_dir: Path = field(default_factory=lambda: Path("./linux-sources"))
    defconfig: str = "bcmrpi_defconfig"
    dist_dir: Path = field(default_factory=lambda: Path("./dist"))
    docker_image: str = "ghcr.io/gokrazy-community/crossbuild-armhf:impish-20220316"
    container_dir: str = "/root/armhf"
    arch: str = "arm"
    image_target: str = "zImage"
    image_name: str = "vmlinuz"
    dtb_glob: str = "bcm*-rpi-*.dtb"
    modules_staging: str = ".modules-install"
    static_files: List[Path] = field(
        default_factory=lambda: [Path("gokrazy/cmdline.txt"), Path("gokrazy/config.txt")]
    )
    feature_overrides: Dict[str, List[str]] = field(
        default_factory=lambda: {name: list(lines) for name, lines in FEATURE_OVERRIDES.items()}
    )
    jobs: int = field(default_factory=lambda: os.cpu_count() or 1)

    # Logging
    log_file: Optional[Path] = None

    def __post_init__(self):
        """Validate the channel and coerce enum values."""
        if not validate_channel(self.channel):
            raise ConfigError(
                f"unknown channel {self.channel!r} (supported: {', '.join(SUPPORTED_CHANNELS)})"
            )
        try:
            self.pin_mode = PinMode(self.pin_mode)
        except ValueError:
            raise ConfigError(f"unknown pin mode {self.pin_mode!r}") from None

    @classmethod
    def from_env(cls) -> "KernelConfig":
        """Create configuration from environment variables."""
        log_file = os.getenv("PIKERNEL_LOG_FILE")
        return cls(
            channel=os.getenv("PIKERNEL_CHANNEL", DEFAULT_CHANNEL),
            github_api_url=os.getenv("PIKERNEL_GITHUB_API", "https://api.github.com"),
            github_repo=os.getenv("PIKERNEL_GITHUB_REPO", "raspberrypi/linux"),
            github_token=os.getenv("GITHUB_TOKEN") or None,
            network_timeout=int(os.getenv("PIKERNEL_TIMEOUT", "30")),
            pinned_source=os.getenv("PIKERNEL_PINNED_SOURCE", "linux-sources"),
            pin_mode=os.getenv("PIKERNEL_PIN_MODE", PinMode.COMMIT.value),
            docker_image=os.getenv(
                "PIKERNEL_DOCKER_IMAGE",
                "ghcr.io/gokrazy-community/crossbuild-armhf:impish-20220316",
            ),
            log_file=Path(log_file) if log_file else None,
        )

    @property
    def channel_mapping(self) -> ChannelMapping:
        """Get the mapping for the configured channel."""
        return get_channel(self.channel)

    @property
    def tag_api_url(self) -> str:
        """Get the GitHub API prefix for tag refs."""
        return f"{self.github_api_url.rstrip('/')}/repos/{self.github_repo}/git/ref/tags/"

    @property
    def override_lines(self) -> List[str]:
        """Get all feature override lines in a stable order."""
        lines = []
        for name in sorted(self.feature_overrides):
            lines.extend(self.feature_overrides[name])
        return lines


def get_channel(name: str) -> ChannelMapping:
    """Get a channel mapping by name."""
    mapping = CHANNELS.get(name)
    if mapping is None:
        raise ConfigError(f"unknown channel {name!r} (supported: {', '.join(SUPPORTED_CHANNELS)})")
    return mapping


def validate_channel(name: str) -> bool:
    """Check if a channel is supported."""
    return name in CHANNELS
