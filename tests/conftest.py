import pytest

from sysextboot.internal.config import BootConfig, TransferPolicy

VERSION = "3510.2.1"
BOARD = "amd64-usr"


@pytest.fixture
def fast_transfer():
    """Retry policy small enough to exhaust within a test."""
    return TransferPolicy(
        probe_attempts=3,
        probe_interval=0.0,
        retries=2,
        retry_max_time=60.0,
        retry_delay=0.0,
        connect_timeout=1.0,
        read_timeout=1.0,
    )


@pytest.fixture
def boot_config(tmp_path, fast_transfer) -> BootConfig:
    """A BootConfig whose whole filesystem layout lives under tmp_path."""
    config = BootConfig(version=VERSION, board=BOARD, transfer=fast_transfer)
    return config.rebased(tmp_path)


@pytest.fixture(autouse=True)
def no_global_logging_setup(mocker):
    """CLI commands must not install handlers on the real root logger during tests."""
    mocker.patch("sysextboot.cli.core.setup_logging")
