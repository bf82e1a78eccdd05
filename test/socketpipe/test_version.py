import subprocess
from unittest import mock

from socketpipe import version


def test_get_dev_version():
    with mock.patch("subprocess.check_output") as m:
        m.return_value = b"v0.4.0-0-gcafecafe\n"
        assert version.get_dev_version() == version.VERSION

        m.return_value = b"v0.4.0-2-gcafecafe\n"
        assert version.get_dev_version() == f"{version.VERSION} (+2, commit cafecaf)"

        m.return_value = b"garbage"
        assert version.get_dev_version() == version.VERSION

        m.side_effect = subprocess.CalledProcessError(128, "git describe")
        assert version.get_dev_version() == version.VERSION

        m.side_effect = FileNotFoundError("git")
        assert version.get_dev_version() == version.VERSION
