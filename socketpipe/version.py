import os
import subprocess

VERSION = "0.4.0"


def get_dev_version() -> str:
    """
    VERSION, extended by the distance to the last tag and the commit hash
    when running from a git checkout that is not at a release tag.
    """
    checkout = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
    try:
        described = subprocess.check_output(
            ["git", "describe", "--tags", "--long"],
            stderr=subprocess.DEVNULL,
            cwd=checkout,
        )
        _, distance, commit = described.decode().strip().rsplit("-", 2)
        distance_n = int(distance)
    except (OSError, subprocess.CalledProcessError, ValueError):
        return VERSION
    if distance_n == 0:
        return VERSION
    return f"{VERSION} (+{distance_n}, commit {commit.lstrip('g')[:7]})"


if __name__ == "__main__":  # pragma: no cover
    print(VERSION)
