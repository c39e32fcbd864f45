from setuptools import setup, find_packages


setup(
    name="ocmigrator",
    version="0.1",
    packages=find_packages(exclude=["tests", "tests.*"]),
    description="Encrypted export/restore of OpenClaw agent state with path healing.",
    python_requires=">=3.9",
    install_requires=[
        "pycryptodomex>=3.23.0",
        "argon2-cffi>=23.1.0",
    ],
    entry_points={
        "console_scripts": [
            "ocmigrator=ocmigrator.cli:main",
        ]
    },
)
