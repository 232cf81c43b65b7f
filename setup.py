from setuptools import find_packages, setup

setup(
    name="ezsync",
    version="1.0.0",
    packages=find_packages(exclude=["tests", "tests.*"]),
    python_requires=">=3.9",
    install_requires=[
        "httpx[socks]>=0.26.0",
        "beautifulsoup4>=4.11.0",
        "rich>=12.0.0",
    ],
    extras_require={
        "test": [
            "pytest>=7.0",
        ],
    },
    entry_points={
        "console_scripts": [
            "ezsync=ezsync.__main__:main",
        ],
    },
)

# When updating the version, also:
# - update ezsync/version.py
# - set a tag on the update commit
