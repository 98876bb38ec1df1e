import re
from setuptools import setup, find_packages


def get_version():
    """Parse version from bounce/__init__.py without importing."""
    with open("bounce/__init__.py", "r") as f:
        content = f.read()
    match = re.search(
        r'^__version__\s*=\s*["\']([^"\']+)["\']', content, re.MULTILINE
    )
    if match:
        return match.group(1)
    raise RuntimeError("Unable to find version string in bounce/__init__.py")


setup(
    name="bounce",
    version=get_version(),
    description="Bounce a ball of bytes among ranked processes to exercise a transport",
    packages=find_packages(include=["bounce", "bounce.*"]),
    license="Apache-2.0",
    install_requires=["torch"],
    classifiers=[
        "Programming Language :: Python :: 3",
    ],
    python_requires=">=3.8",
    extras_require={
        "mpi": ["mpi4py", "numpy"],
        "test": ["pytest"],
    },
    entry_points={
        "console_scripts": ["bounce=bounce.cli:main"],
    },
)
